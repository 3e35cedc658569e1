from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

import redis
from redis.lock import Lock
from statemachine import State, StateMachine

from release_o_matic.api.models import BuildInfo, ReleaseInfo, ReleaseResponse
from release_o_matic.core.build_key import create_build_key, normalize_build_key, parse_build_key
from release_o_matic.core.build_store import (
    BUILD_INFO_FILE,
    INDEX_FILE,
    build_dir,
    latest_build_version,
    read_build_info,
)
from release_o_matic.core.dates import now_ms, to_readable_date_string
from release_o_matic.core.errors import conflict, not_found
from release_o_matic.core.fs import atomic_write_json, list_files, merge_copy
from release_o_matic.core.ledger import (
    files_manifest_name,
    find_release,
    index_file_name,
    load_releases,
    platform_dir,
    point_index_at,
    prune_releases,
    record_publish,
    save_releases,
)
from release_o_matic.lock import LockOptions, refresh_lock, release_lock

logger = logging.getLogger(__name__)

# Environments searched (in order) when publish is called without a build key.
DEFAULT_PUBLISH_ENVS: tuple[str, ...] = ("master", "main")
RELEASES_TO_KEEP = 5


class PublishFSM(StateMachine):
    """Guards the order of publish steps.

    requested -> validated -> staged -> committed. The pipeline performs the work;
    the FSM only refuses out-of-order steps.
    """

    requested = State("requested", value="requested", initial=True)
    validated = State("validated", value="validated")
    staged = State("staged", value="staged")
    committed = State("committed", value="committed", final=True)

    accept = requested.to(validated)
    stage = validated.to(staged)
    commit = staged.to(committed)

    def __init__(self, build_key: str):
        self.build_key = build_key
        super().__init__()


@dataclass(frozen=True, slots=True)
class StagedRelease:
    temp_dir: Path
    index_name: str
    files_name: str
    files: list[str]


def default_publish_key(*, root: Path, game: str) -> str:
    for env in DEFAULT_PUBLISH_ENVS:
        version = latest_build_version(root, game, env)
        if version is not None:
            return create_build_key(env, version)
    envs = " or ".join(DEFAULT_PUBLISH_ENVS)
    raise not_found(f"there are no builds in {envs} to publish for game '{game}'")


def _validate(*, root: Path, game: str, platform_path: Path, build_key: str) -> tuple[Path, BuildInfo]:
    if find_release(load_releases(platform_path), build_key) is not None:
        raise conflict(f"build '{build_key}' was already released")

    parsed = parse_build_key(build_key)
    src = build_dir(root, game, parsed.env, parsed.version)
    if not src.is_dir():
        raise not_found(f"build '{build_key}' doesn't exist")
    if not (src / INDEX_FILE).is_file():
        raise not_found(f"build '{build_key}' doesn't exist: {INDEX_FILE} is missing")
    info = read_build_info(src)
    return src, info


def _stage(*, src: Path, platform_path: Path, build_key: str) -> StagedRelease:
    temp_dir = platform_path.with_name(f"{platform_path.name}_temp")
    if temp_dir.exists():
        # Left over from a publish that crashed before committing.
        logger.warning("Removing stale staging directory %s", temp_dir)
        shutil.rmtree(temp_dir)

    shutil.copytree(src, temp_dir, symlinks=True)

    # build_info.json describes the build, not the release; it is not served.
    (temp_dir / BUILD_INFO_FILE).unlink()

    index_name = index_file_name(build_key)
    (temp_dir / INDEX_FILE).rename(temp_dir / index_name)

    files_name = files_manifest_name(build_key)
    files = [files_name, *list_files(temp_dir)]
    atomic_write_json(temp_dir / files_name, files)

    return StagedRelease(temp_dir=temp_dir, index_name=index_name, files_name=files_name, files=files)


def _commit(
    *,
    staged: StagedRelease,
    platform_path: Path,
    build_key: str,
    info: BuildInfo,
    lock: Lock,
) -> ReleaseInfo:
    merge_copy(staged.temp_dir, platform_path)
    shutil.rmtree(staged.temp_dir)

    # Copying a large build can take a while; the ledger is only read and written
    # while the lock is still ours.
    refresh_lock(lock)

    release = ReleaseInfo(
        key=build_key,
        index=staged.index_name,
        files=staged.files_name,
        released_at=to_readable_date_string(now_ms()),
        built_at=to_readable_date_string(info.built_at),
        git_branch=info.git_branch,
        git_commit=info.git_commit_hash,
    )

    releases = record_publish(load_releases(platform_path), release)
    save_releases(platform_path, releases)
    prune_releases(platform_path, releases, keep=RELEASES_TO_KEEP)
    point_index_at(platform_path, build_key)
    return release


def publish_release(
    *,
    r: redis.Redis,
    root: Path,
    game: str,
    platform: str,
    build_key: str | None = None,
    lock_options: LockOptions = LockOptions(),
) -> ReleaseResponse:
    """Make a deployed build the live release for `platform`.

    Nothing is recorded in `releases.json` until every file is in place, so a crash
    part way through never leaves a half-published release behind.
    """

    platform_path = platform_dir(root, game, platform)
    key = normalize_build_key(build_key) if build_key is not None else default_publish_key(root=root, game=game)
    fsm = PublishFSM(key)

    with release_lock(r=r, game=game, platform=platform, options=lock_options) as lock:
        src, info = _validate(root=root, game=game, platform_path=platform_path, build_key=key)
        fsm.accept()

        staged = _stage(src=src, platform_path=platform_path, build_key=key)
        fsm.stage()

        release = _commit(staged=staged, platform_path=platform_path, build_key=key, info=info, lock=lock)
        fsm.commit()

    logger.info("Published %s to %s/%s", key, game, platform)
    return ReleaseResponse(path=str(platform_path), release=release)
