from __future__ import annotations

import time

import redis
from fastapi import APIRouter, Depends, HTTPException, status

from release_o_matic.api.deps import get_redis, require_auth
from release_o_matic.api.models import (
    DeployInfo,
    EnvResponse,
    FinalizeDeploymentResponse,
    HealthResponse,
    PrepareBuildResponse,
    ReleaseDetail,
    ReleaseInfo,
    ReleaseResponse,
    Releases,
    RootResponse,
)
from release_o_matic.core.build_key import is_version_name
from release_o_matic.core.build_store import (
    current_deployment,
    deployment_detail,
    finalize_deployment,
    list_deployments,
    prepare_build,
)
from release_o_matic.core.errors import ErrorKind, ReleaseError, invalid_input
from release_o_matic.core.publish import publish_release
from release_o_matic.core.releases import get_current_release, get_release_detail, list_releases
from release_o_matic.core.rollback import rollback_release
from release_o_matic.settings import Settings, get_settings

_STARTED_AT = time.monotonic()

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.invalid_input: status.HTTP_400_BAD_REQUEST,
    ErrorKind.conflict: status.HTTP_400_BAD_REQUEST,
    ErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    ErrorKind.busy: status.HTTP_409_CONFLICT,
    ErrorKind.unreadable: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

router = APIRouter()
# Everything except the health check sits behind the bearer token (when enabled).
api = APIRouter(dependencies=[Depends(require_auth)])
# Routes that copy builds or wait on a lock are plain `def`, so FastAPI runs them in
# its threadpool instead of blocking the event loop.


def _http_error(e: ReleaseError) -> HTTPException:
    return HTTPException(status_code=STATUS_BY_KIND[e.kind], detail=e.to_dict())


def _parse_version(raw: str) -> int:
    if not is_version_name(raw) or int(raw) <= 0:
        raise invalid_input(f"build version must be a positive integer, got '{raw}'")
    return int(raw)


@router.get("/health", response_model=HealthResponse)
async def health(settings: Settings = Depends(get_settings)) -> HealthResponse:
    return HealthResponse(
        status="ok",
        build_version=settings.build_version,
        deployed_at=settings.deployed_at,
        timestamp=int(time.time() * 1000),
        uptime=round(time.monotonic() - _STARTED_AT, 3),
    )


@api.get("/", response_model=RootResponse)
async def root(settings: Settings = Depends(get_settings)) -> RootResponse:
    return RootResponse(game_builds_dir=str(settings.game_builds_dir))


@api.get("/env", response_model=EnvResponse)
async def env_route(settings: Settings = Depends(get_settings)) -> EnvResponse:
    return EnvResponse(
        game_builds_dir=str(settings.game_builds_dir),
        game_builds_dir_host=settings.game_builds_dir_host,
        bearer_token="***" if settings.bearer_token else None,
        build_version=settings.build_version,
        deployed_at=settings.deployed_at,
        auth_required=settings.auth_required,
        deployments_to_keep=settings.deployments_to_keep,
        releases_to_keep=settings.releases_to_keep,
    )


@api.get("/preDeploy/{game}/{env}/{version}", response_model=PrepareBuildResponse)
def pre_deploy_route(
    game: str,
    env: str,
    version: str,
    settings: Settings = Depends(get_settings),
    r: redis.Redis = Depends(get_redis),
) -> PrepareBuildResponse:
    try:
        return prepare_build(
            r=r,
            root=settings.game_builds_dir,
            game=game,
            env=env,
            version=_parse_version(version),
            lock_options=settings.lock_options,
        )
    except ReleaseError as e:
        raise _http_error(e) from e


@api.get("/postDeploy/{game}/{env}/{version}", response_model=FinalizeDeploymentResponse)
def post_deploy_route(
    game: str,
    env: str,
    version: str,
    settings: Settings = Depends(get_settings),
    r: redis.Redis = Depends(get_redis),
) -> FinalizeDeploymentResponse:
    try:
        return finalize_deployment(
            r=r,
            root=settings.game_builds_dir,
            game=game,
            env=env,
            version=_parse_version(version),
            keep=settings.deployments_to_keep,
            lock_options=settings.lock_options,
        )
    except ReleaseError as e:
        raise _http_error(e) from e


@api.get("/deployments/{game}/{env}", response_model=list[DeployInfo])
def list_deployments_route(game: str, env: str, settings: Settings = Depends(get_settings)) -> list[DeployInfo]:
    try:
        return list_deployments(root=settings.game_builds_dir, game=game, env=env)
    except ReleaseError as e:
        raise _http_error(e) from e


@api.get("/deployments/{game}/{env}/current", response_model=DeployInfo)
def current_deployment_route(game: str, env: str, settings: Settings = Depends(get_settings)) -> DeployInfo:
    try:
        return current_deployment(root=settings.game_builds_dir, game=game, env=env)
    except ReleaseError as e:
        raise _http_error(e) from e


@api.get("/deployments/{game}/{env}/{version}", response_model=DeployInfo)
def deployment_detail_route(
    game: str,
    env: str,
    version: str,
    settings: Settings = Depends(get_settings),
) -> DeployInfo:
    try:
        return deployment_detail(root=settings.game_builds_dir, game=game, env=env, version=_parse_version(version))
    except ReleaseError as e:
        raise _http_error(e) from e


@api.get("/releases/{game}/{platform}", response_model=Releases)
def list_releases_route(game: str, platform: str, settings: Settings = Depends(get_settings)) -> Releases:
    try:
        return list_releases(root=settings.game_builds_dir, game=game, platform=platform)
    except ReleaseError as e:
        raise _http_error(e) from e


@api.get("/releases/{game}/{platform}/current", response_model=ReleaseInfo)
def current_release_route(game: str, platform: str, settings: Settings = Depends(get_settings)) -> ReleaseInfo:
    try:
        return get_current_release(root=settings.game_builds_dir, game=game, platform=platform)
    except ReleaseError as e:
        raise _http_error(e) from e


@api.get("/releases/{game}/{platform}/{build_key}", response_model=ReleaseDetail)
def release_detail_route(
    game: str,
    platform: str,
    build_key: str,
    settings: Settings = Depends(get_settings),
) -> ReleaseDetail:
    try:
        return get_release_detail(root=settings.game_builds_dir, game=game, platform=platform, build_key=build_key)
    except ReleaseError as e:
        raise _http_error(e) from e


@api.get("/publish/{game}/{platform}", response_model=ReleaseResponse)
@api.get("/publish/{game}/{platform}/{build_key}", response_model=ReleaseResponse)
def publish_route(
    game: str,
    platform: str,
    build_key: str | None = None,
    settings: Settings = Depends(get_settings),
    r: redis.Redis = Depends(get_redis),
) -> ReleaseResponse:
    try:
        return publish_release(
            r=r,
            root=settings.game_builds_dir,
            game=game,
            platform=platform,
            build_key=build_key,
            lock_options=settings.lock_options,
        )
    except ReleaseError as e:
        raise _http_error(e) from e


@api.get("/rollback/{game}/{platform}", response_model=ReleaseResponse)
@api.get("/rollback/{game}/{platform}/{build_key}", response_model=ReleaseResponse)
def rollback_route(
    game: str,
    platform: str,
    build_key: str | None = None,
    settings: Settings = Depends(get_settings),
    r: redis.Redis = Depends(get_redis),
) -> ReleaseResponse:
    try:
        return rollback_release(
            r=r,
            root=settings.game_builds_dir,
            game=game,
            platform=platform,
            build_key=build_key,
            lock_options=settings.lock_options,
        )
    except ReleaseError as e:
        raise _http_error(e) from e


router.include_router(api)
