from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from release_o_matic.core.publish import RELEASES_TO_KEEP
from release_o_matic.infra.redis_client import DEFAULT_REDIS_URL
from release_o_matic.lock import LockOptions

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True, slots=True)
class Settings:
    game_builds_dir: Path
    # Same directory as seen from the host when the service runs in a container.
    game_builds_dir_host: str
    bearer_token: str | None
    auth_required: bool
    build_version: str | None
    deployed_at: str | None
    deployments_to_keep: int
    lock_ttl_ms: int
    lock_wait_seconds: float

    releases_to_keep: int = RELEASES_TO_KEEP
    redis_url: str = DEFAULT_REDIS_URL

    @property
    def lock_options(self) -> LockOptions:
        return LockOptions(ttl_ms=self.lock_ttl_ms, wait_seconds=self.lock_wait_seconds)


def _env(name: str) -> str | None:
    # Empty strings count as unset (e.g. `BUILD_VERSION=` in a .env file).
    value = os.environ.get(name)
    return value if value else None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().casefold()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise RuntimeError(f"{name} must be a boolean, got {raw!r}")


def _env_int(name: str, default: int, *, minimum: int) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}, got {value}")
    return value


def settings_from_env() -> Settings:
    builds_dir = _env("GAME_BUILDS_DIR")
    if builds_dir is None:
        raise RuntimeError("Set GAME_BUILDS_DIR to the absolute path of the game builds directory")
    if not Path(builds_dir).is_absolute():
        raise RuntimeError(f"GAME_BUILDS_DIR must be an absolute path, got {builds_dir!r}")

    bearer_token = _env("BEARER_TOKEN")
    auth_required = _env_bool("AUTH_REQUIRED", False)
    if auth_required and bearer_token is None:
        raise RuntimeError("AUTH_REQUIRED is enabled but BEARER_TOKEN is not set")

    return Settings(
        game_builds_dir=Path(builds_dir),
        game_builds_dir_host=_env("GAME_BUILDS_DIR_HOST") or builds_dir,
        bearer_token=bearer_token,
        auth_required=auth_required,
        build_version=_env("BUILD_VERSION"),
        deployed_at=_env("DEPLOYED_AT"),
        deployments_to_keep=_env_int("DEPLOYMENTS_TO_KEEP", 10, minimum=1),
        lock_ttl_ms=_env_int("LOCK_TTL_MS", 30_000, minimum=1),
        lock_wait_seconds=float(_env_int("LOCK_WAIT_SECONDS", 10, minimum=0)),
        redis_url=_env("REDIS_URL") or DEFAULT_REDIS_URL,
    )


_SETTINGS: Settings | None = None


def init_settings(settings: Settings | None = None) -> Settings:
    """Load settings once and cache them.

    Safe to call multiple times; subsequent calls return the already loaded instance.
    """

    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = settings if settings is not None else settings_from_env()
    return _SETTINGS


def reset_settings_for_tests() -> None:
    global _SETTINGS
    _SETTINGS = None


def get_settings() -> Settings:
    if _SETTINGS is None:
        raise RuntimeError("Settings not initialized. Call init_settings() at startup.")
    return _SETTINGS
