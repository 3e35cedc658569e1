from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

import redis
from pydantic import ValidationError

from release_o_matic.api.models import (
    BuildInfo,
    DeployInfo,
    FinalizeDeploymentResponse,
    PrepareBuildResponse,
)
from release_o_matic.core.build_key import is_version_name, require_name
from release_o_matic.core.dates import to_readable_date_string
from release_o_matic.core.errors import ErrorKind, ReleaseError, conflict, invalid_input, not_found
from release_o_matic.core.fs import atomic_symlink, is_empty_dir
from release_o_matic.core.ledger import PROD_DIR
from release_o_matic.core.retention import numeric_build_dirs, prune_deployments
from release_o_matic.lock import LockOptions, build_lock

logger = logging.getLogger(__name__)

BUILD_INFO_FILE = "build_info.json"
INDEX_FILE = "index.html"
LATEST_LINK = "latest"


def env_dir(root: Path, game: str, env: str) -> Path:
    return root / require_name(game, what="game") / require_name(env, what="environment")


def build_dir(root: Path, game: str, env: str, version: int) -> Path:
    return env_dir(root, game, env) / str(version)


def latest_link(root: Path, game: str, env: str) -> Path:
    return env_dir(root, game, env) / LATEST_LINK


def build_versions(env_path: Path) -> list[int]:
    """Versions of real builds, ascending. Empty directories are not builds."""

    return [version for version, path in numeric_build_dirs(env_path) if not is_empty_dir(path)]


def latest_build_version(root: Path, game: str, env: str) -> int | None:
    versions = build_versions(env_dir(root, game, env))
    return versions[-1] if versions else None


def read_build_info(build_path: Path, *, invalid_kind: ErrorKind = ErrorKind.invalid_input) -> BuildInfo:
    info_path = build_path / BUILD_INFO_FILE
    if not info_path.is_file():
        raise not_found(f"{BUILD_INFO_FILE} doesn't exist in {build_path}")
    try:
        return BuildInfo.model_validate_json(info_path.read_text(encoding="utf-8"))
    except (ValidationError, OSError) as e:
        raise ReleaseError(invalid_kind, f"invalid {BUILD_INFO_FILE} in {build_path}: {e}") from e


def _require_positive(version: int) -> int:
    if version <= 0:
        raise invalid_input(f"build version must be a positive integer, got {version}")
    return version


def _require_deploy_env(env: str) -> str:
    require_name(env, what="environment")
    if env == PROD_DIR:
        raise invalid_input(f"'{PROD_DIR}' is reserved for platform releases and can't be used as an environment")
    return env


def prepare_build(
    *,
    r: redis.Redis,
    root: Path,
    game: str,
    env: str,
    version: int,
    lock_options: LockOptions = LockOptions(),
) -> PrepareBuildResponse:
    """Create the directory a producer uploads build `version` into.

    The new directory starts as a copy of the newest existing build so the producer
    only needs to upload changed files.
    """

    _require_positive(version)
    _require_deploy_env(env)
    env_path = env_dir(root, game, env)

    with build_lock(r=r, game=game, env=env, options=lock_options):
        env_path.mkdir(parents=True, exist_ok=True)
        existing = build_versions(env_path)

        if version in existing:
            next_version = existing[-1] + 1
            raise conflict(
                f"build version {version} already exists",
                hint=f"next free version is {next_version}",
            )

        new_path = env_path / str(version)
        if existing:
            source = env_path / str(existing[-1])
            shutil.copytree(source, new_path, symlinks=True, dirs_exist_ok=True)
            logger.info("Prepared build %s/%s/%s from version %s", game, env, version, existing[-1])
        else:
            new_path.mkdir(exist_ok=True)
            logger.info("Prepared empty build %s/%s/%s", game, env, version)

    return PrepareBuildResponse(new_build_version=version, new_build_dir=str(new_path), builds=existing)


def finalize_deployment(
    *,
    r: redis.Redis,
    root: Path,
    game: str,
    env: str,
    version: int,
    keep: int,
    lock_options: LockOptions = LockOptions(),
) -> FinalizeDeploymentResponse:
    """Mark an uploaded build as deployed: validate it, point `latest` at it, prune old ones."""

    _require_positive(version)
    _require_deploy_env(env)
    env_path = env_dir(root, game, env)
    build_path = env_path / str(version)

    with build_lock(r=r, game=game, env=env, options=lock_options):
        if not build_path.is_dir():
            raise not_found(f"build directory {build_path} doesn't exist")
        read_build_info(build_path)
        if not (build_path / INDEX_FILE).is_file():
            raise not_found(f"{INDEX_FILE} doesn't exist in {build_path}")

        link = env_path / LATEST_LINK
        atomic_symlink(link, str(version))

        try:
            os.utime(build_path)
        except OSError as e:
            logger.warning("Could not update modification time of %s: %s", build_path, e)

        removed = prune_deployments(env_path, keep=keep, protect=build_path)

    logger.info("Deployed %s/%s/%s", game, env, version)
    return FinalizeDeploymentResponse(
        build_version=str(version),
        build_dir=str(build_path),
        build_dir_alias=str(link),
        removed_builds=sorted(int(p.name) for p in removed),
    )


def _current_version(env_path: Path) -> int | None:
    link = env_path / LATEST_LINK
    if not link.is_symlink():
        return None
    name = Path(os.path.realpath(link)).name
    return int(name) if is_version_name(name) else None


def _deploy_info(build_path: Path, info: BuildInfo, *, is_current: bool) -> DeployInfo:
    mtime_ms = build_path.stat().st_mtime * 1000
    return DeployInfo(
        version=int(build_path.name),
        git_branch=info.git_branch,
        git_commit_hash=info.git_commit_hash,
        built_at=info.built_at,
        built_at_readable=info.built_at_readable,
        deployed_at=to_readable_date_string(mtime_ms),
        is_current=is_current,
    )


def list_deployments(*, root: Path, game: str, env: str) -> list[DeployInfo]:
    env_path = env_dir(root, game, env)
    if not env_path.is_dir():
        raise not_found(f"environment '{env}' doesn't exist for game '{game}'")

    current = _current_version(env_path)
    out: list[DeployInfo] = []
    for version in reversed(build_versions(env_path)):
        build_path = env_path / str(version)
        if not (build_path / BUILD_INFO_FILE).is_file():
            continue
        try:
            info = read_build_info(build_path)
        except ReleaseError as e:
            logger.warning("Skipping deployment %s: %s", build_path, e.message)
            continue
        out.append(_deploy_info(build_path, info, is_current=version == current))
    return out


def current_deployment(*, root: Path, game: str, env: str) -> DeployInfo:
    link = latest_link(root, game, env)
    if not link.is_symlink():
        raise not_found(f"there is no current deployment for {game}/{env}")

    target = Path(os.path.realpath(link))
    if not is_version_name(target.name):
        raise ReleaseError(ErrorKind.unreadable, f"latest points at '{target.name}', which is not a build version")
    if not target.is_dir():
        raise ReleaseError(ErrorKind.unreadable, f"latest points at missing build directory {target}")

    info = read_build_info(target, invalid_kind=ErrorKind.unreadable)
    return _deploy_info(target, info, is_current=True)


def deployment_detail(*, root: Path, game: str, env: str, version: int) -> DeployInfo:
    env_path = env_dir(root, game, env)
    build_path = env_path / str(version)
    if not build_path.is_dir():
        raise not_found(f"deployment {game}/{env}/{version} doesn't exist")

    info = read_build_info(build_path, invalid_kind=ErrorKind.unreadable)
    return _deploy_info(build_path, info, is_current=_current_version(env_path) == version)
