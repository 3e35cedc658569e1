from __future__ import annotations

import logging
from pathlib import Path

import redis

from release_o_matic.api.models import ReleaseResponse, Releases
from release_o_matic.core.build_key import normalize_build_key
from release_o_matic.core.errors import conflict, not_found
from release_o_matic.core.ledger import (
    current_release,
    load_releases,
    platform_dir,
    point_index_at,
    record_rollback,
    save_releases,
    sorted_builds,
)
from release_o_matic.lock import LockOptions, release_lock

logger = logging.getLogger(__name__)


def previous_build_key(releases: Releases) -> str:
    """The release published right before the current one (by `releasedAt`)."""

    ordered = sorted_builds(releases)
    keys = [b.key for b in ordered]
    if releases.current in keys:
        idx = keys.index(releases.current)
        if idx + 1 < len(keys):
            return keys[idx + 1]
    raise conflict("there are no previous releases to roll back to")


def rollback_release(
    *,
    r: redis.Redis,
    root: Path,
    game: str,
    platform: str,
    build_key: str | None = None,
    lock_options: LockOptions = LockOptions(),
) -> ReleaseResponse:
    """Point the platform back at an already published release.

    Only `releases.json` and the `index.html` link change; release files are already
    on disk, so no copying happens.
    """

    key = normalize_build_key(build_key) if build_key is not None else None
    platform_path = platform_dir(root, game, platform)

    with release_lock(r=r, game=game, platform=platform, options=lock_options):
        releases = load_releases(platform_path)
        if key is None:
            key = previous_build_key(releases)

        updated = record_rollback(releases, key)
        release = current_release(updated)
        if release is None:
            raise not_found(f"release '{key}' doesn't exist")
        save_releases(platform_path, updated)
        point_index_at(platform_path, key)

    logger.info("Rolled back %s/%s to %s", game, platform, key)
    return ReleaseResponse(path=str(platform_path), release=release)
