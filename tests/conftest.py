from __future__ import annotations

import json
from collections.abc import Callable, Generator
from pathlib import Path

import fakeredis
import pytest
from fastapi.testclient import TestClient

from release_o_matic.settings import Settings, init_settings, reset_settings_for_tests

GAME = "test-game"
PLATFORM = "web"

MakeBuild = Callable[..., Path]


def make_settings(root: Path, **overrides: object) -> Settings:
    values: dict[str, object] = {
        "game_builds_dir": root,
        "game_builds_dir_host": str(root),
        "bearer_token": None,
        "auth_required": False,
        "build_version": None,
        "deployed_at": None,
        "deployments_to_keep": 3,
        "lock_ttl_ms": 5_000,
        "lock_wait_seconds": 0.2,
    }
    values.update(overrides)
    return Settings(**values)  # type: ignore[arg-type]


def build_info_for(version: int, *, branch: str = "master", built_at: int = 1_710_936_000_000) -> dict[str, object]:
    return {
        "version": version,
        "builtAt": built_at,
        "builtAtReadable": "2024-03-20 12:00:00",
        "gitCommitHash": f"commit{version}",
        "gitBranch": branch,
    }


@pytest.fixture()
def builds_root(tmp_path: Path) -> Path:
    root = tmp_path / "builds"
    root.mkdir()
    return root


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def make_build(builds_root: Path) -> MakeBuild:
    """Write a complete build directory (build_info.json + index.html + extra files)."""

    def _make(
        version: int,
        *,
        env: str = "master",
        game: str = GAME,
        files: dict[str, str] | None = None,
        with_index: bool = True,
        with_info: bool = True,
    ) -> Path:
        path = builds_root / game / env / str(version)
        path.mkdir(parents=True, exist_ok=True)
        if with_info:
            (path / "build_info.json").write_text(json.dumps(build_info_for(version, branch=env)), encoding="utf-8")
        if with_index:
            (path / "index.html").write_text(f"<html>Build {version}</html>", encoding="utf-8")
        for rel, content in (files or {}).items():
            target = path / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return path

    return _make


@pytest.fixture()
def client_and_redis(builds_root: Path) -> Generator[tuple[TestClient, fakeredis.FakeRedis], None, None]:
    """FastAPI TestClient wired to fakeredis and a temporary GAME_BUILDS_DIR."""

    from release_o_matic.api.deps import get_redis
    from release_o_matic.main import app

    reset_settings_for_tests()
    init_settings(make_settings(builds_root))

    fake = fakeredis.FakeRedis(decode_responses=True)

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield fake

    app.dependency_overrides[get_redis] = _override
    with TestClient(app) as c:
        yield c, fake
    app.dependency_overrides.clear()
    reset_settings_for_tests()


@pytest.fixture()
def client(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> TestClient:
    return client_and_redis[0]
