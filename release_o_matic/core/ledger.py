"""The per-platform release ledger (`releases.json`).

The ledger records which release is live (`current`) and every retained release,
newest first. All writes go through `save_releases`, which replaces the file
atomically; callers serialize read-modify-write cycles with `release_lock`.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from release_o_matic.api.models import ReleaseInfo, Releases
from release_o_matic.core.build_key import require_name
from release_o_matic.core.errors import ErrorKind, ReleaseError, conflict, not_found
from release_o_matic.core.fs import atomic_symlink, atomic_write_json, list_files, remove_empty_dirs

logger = logging.getLogger(__name__)

RELEASES_FILE = "releases.json"
INDEX_LINK = "index.html"
PROD_DIR = "prod"


def platform_dir(root: Path, game: str, platform: str) -> Path:
    return root / require_name(game, what="game") / PROD_DIR / require_name(platform, what="platform")


def index_file_name(key: str) -> str:
    return f"index_{key}.html"


def files_manifest_name(key: str) -> str:
    return f"files_{key}.json"


def load_releases(platform_path: Path) -> Releases:
    path = platform_path / RELEASES_FILE
    if not path.is_file():
        return Releases()
    try:
        return Releases.model_validate_json(path.read_text(encoding="utf-8"))
    except (ValidationError, OSError) as e:
        raise ReleaseError(ErrorKind.unreadable, f"can't read {path}: {e}") from e


def save_releases(platform_path: Path, releases: Releases) -> None:
    atomic_write_json(platform_path / RELEASES_FILE, releases.to_json_dict())


def sorted_builds(releases: Releases) -> list[ReleaseInfo]:
    """Builds ordered by `releasedAt`, newest first; ties keep ledger order."""

    return sorted(releases.builds, key=lambda b: b.released_at, reverse=True)


def find_release(releases: Releases, key: str) -> ReleaseInfo | None:
    return next((b for b in releases.builds if b.key == key), None)


def current_release(releases: Releases) -> ReleaseInfo | None:
    if releases.current is None:
        return None
    return find_release(releases, releases.current)


def record_publish(releases: Releases, release: ReleaseInfo) -> Releases:
    if find_release(releases, release.key) is not None:
        raise conflict(f"build '{release.key}' was already released")
    return Releases(current=release.key, builds=[release, *releases.builds])


def record_rollback(releases: Releases, key: str) -> Releases:
    if key == releases.current:
        raise conflict(f"build '{key}' is current release")
    if find_release(releases, key) is None:
        raise not_found(f"release '{key}' doesn't exist")
    return Releases(current=key, builds=list(releases.builds))


def read_files_manifest(platform_path: Path, release: ReleaseInfo) -> list[str]:
    path = platform_path / release.files
    try:
        files = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ReleaseError(ErrorKind.unreadable, f"can't read file list {path}: {e}") from e
    if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
        raise ReleaseError(ErrorKind.unreadable, f"file list {path} must be a JSON array of strings")
    return files


def prune_releases(platform_path: Path, releases: Releases, *, keep: int) -> tuple[Releases, list[str]]:
    """Keep the `keep` newest releases and delete every file no kept release lists.

    Files are shared between releases when they have the same relative path, so the
    keep-set is the union of the kept releases' manifests. The current release is always
    kept. The trimmed ledger is validated and saved before any file is deleted; it is
    returned along with the removed keys.
    """

    if keep < 1:
        raise ValueError("keep must be >= 1")

    ordered = sorted_builds(releases)
    kept = ordered[:keep]
    live = current_release(releases)
    if live is not None and all(b.key != live.key for b in kept):
        # releasedAt is wall-clock time; after a clock step back the live release can
        # sort below older ones. It is never pruned.
        kept = [*ordered[: keep - 1], live]
    kept_keys = {b.key for b in kept}
    removed = [b for b in ordered if b.key not in kept_keys]
    if not removed:
        return releases, []

    trimmed = Releases(current=releases.current, builds=[b for b in releases.builds if b.key in kept_keys])

    keep_set = {INDEX_LINK, RELEASES_FILE}
    for release in kept:
        keep_set.update(read_files_manifest(platform_path, release))

    save_releases(platform_path, trimmed)
    for rel in list_files(platform_path):
        if rel not in keep_set:
            (platform_path / rel).unlink()
    remove_empty_dirs(platform_path)

    removed_keys = [b.key for b in removed]
    logger.info("Pruned release(s) %s from %s", ", ".join(removed_keys), platform_path)
    return trimmed, removed_keys


def point_index_at(platform_path: Path, key: str) -> None:
    """Make the platform's `index.html` serve release `key`."""

    atomic_symlink(platform_path / INDEX_LINK, index_file_name(key))
