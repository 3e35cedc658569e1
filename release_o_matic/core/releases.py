from __future__ import annotations

from pathlib import Path

from release_o_matic.api.models import ReleaseDetail, ReleaseInfo, Releases
from release_o_matic.core.errors import not_found
from release_o_matic.core.ledger import (
    RELEASES_FILE,
    current_release,
    find_release,
    load_releases,
    platform_dir,
    read_files_manifest,
    sorted_builds,
)


def list_releases(*, root: Path, game: str, platform: str) -> Releases:
    """The ledger for display: builds newest first, whatever order they are stored in."""

    releases = load_releases(platform_dir(root, game, platform))
    return Releases(current=releases.current, builds=sorted_builds(releases))


def _require_ledger(root: Path, game: str, platform: str) -> tuple[Path, Releases]:
    platform_path = platform_dir(root, game, platform)
    if not platform_path.is_dir():
        raise not_found(f"platform '{platform}' doesn't exist for game '{game}'")
    if not (platform_path / RELEASES_FILE).is_file():
        raise not_found(f"there are no published builds for {game}/{platform}")
    return platform_path, load_releases(platform_path)


def get_current_release(*, root: Path, game: str, platform: str) -> ReleaseInfo:
    _platform_path, releases = _require_ledger(root, game, platform)
    release = current_release(releases)
    if release is None:
        raise not_found(f"there is no current release for {game}/{platform}")
    return release


def get_release_detail(*, root: Path, game: str, platform: str, build_key: str) -> ReleaseDetail:
    platform_path, releases = _require_ledger(root, game, platform)
    release = find_release(releases, build_key)
    if release is None:
        raise not_found(f"build '{build_key}' doesn't exist")

    return ReleaseDetail(
        **release.model_dump(),
        is_current=releases.current == build_key,
        files_list=read_files_manifest(platform_path, release),
    )
