"""Filesystem helpers shared by the build store and the release ledger."""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any
from uuid import uuid4

__all__ = [
    "atomic_symlink",
    "atomic_write_json",
    "is_empty_dir",
    "list_files",
    "merge_copy",
    "remove_empty_dirs",
]


def atomic_write_json(path: Path, data: Any) -> None:
    """Write tab-indented JSON to path atomically using temp file + replace."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(json.dumps(data, indent="\t", ensure_ascii=False))
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def atomic_symlink(link: Path, target: str) -> None:
    """Point `link` at `target` without a window where `link` is missing.

    The new link is created under a temporary name next to `link` and renamed over it.
    `target` is stored as given, so pass a path relative to `link.parent` to keep the
    tree relocatable.
    """

    tmp = link.with_name(f".{link.name}.{uuid4().hex}.tmp")
    os.symlink(target, tmp)
    try:
        os.replace(tmp, link)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def is_empty_dir(path: Path) -> bool:
    return next(path.iterdir(), None) is None


def list_files(root: Path) -> list[str]:
    """All files under root (recursively), as sorted POSIX paths relative to root."""

    out: list[str] = []
    for dirpath, _dirnames, filenames in os.walk(root):
        base = Path(dirpath)
        for name in filenames:
            out.append((base / name).relative_to(root).as_posix())
    return sorted(out)


def merge_copy(src: Path, dst: Path) -> None:
    """Copy src's contents into dst, overwriting same-named files and keeping the rest."""

    shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)


def remove_empty_dirs(root: Path) -> None:
    for dirpath, _dirnames, _filenames in os.walk(root, topdown=False):
        path = Path(dirpath)
        if path != root and is_empty_dir(path):
            path.rmdir()
