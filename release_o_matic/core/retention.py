from __future__ import annotations

import logging
import shutil
from pathlib import Path

from release_o_matic.core.build_key import is_version_name

logger = logging.getLogger(__name__)


def numeric_build_dirs(env_dir: Path) -> list[tuple[int, Path]]:
    """(version, path) for every real directory under env_dir whose name is an integer."""

    if not env_dir.is_dir():
        return []
    out: list[tuple[int, Path]] = []
    for child in env_dir.iterdir():
        if child.is_symlink() or not child.is_dir() or not is_version_name(child.name):
            continue
        out.append((int(child.name), child))
    out.sort(key=lambda item: item[0])
    return out


def prune_deployments(env_dir: Path, *, keep: int, protect: Path | None = None) -> list[Path]:
    """Delete all but the `keep` highest-versioned build directories.

    `protect` (normally the `latest` target) is never deleted even when it falls
    outside the kept window.
    """

    if keep < 0:
        raise ValueError("keep must be >= 0")

    ordered = sorted(numeric_build_dirs(env_dir), key=lambda item: item[0], reverse=True)
    protected = protect.resolve() if protect is not None else None

    removed: list[Path] = []
    for _version, path in ordered[keep:]:
        if protected is not None and path.resolve() == protected:
            continue
        shutil.rmtree(path)
        removed.append(path)

    if removed:
        logger.info("Pruned %d deployment(s) in %s: %s", len(removed), env_dir, ", ".join(p.name for p in removed))
    return removed
