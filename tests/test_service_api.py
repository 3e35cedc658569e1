from __future__ import annotations

import inspect
import time
from collections.abc import Generator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import fakeredis
import pytest
from fastapi.testclient import TestClient

from conftest import GAME, PLATFORM, MakeBuild, make_settings
from release_o_matic.api.deps import get_redis
from release_o_matic.lock import release_lock_key
from release_o_matic.main import app
from release_o_matic.settings import init_settings, reset_settings_for_tests

TOKEN = "s3cret"


@pytest.fixture()
def auth_client(builds_root: Path) -> Generator[TestClient, None, None]:
    reset_settings_for_tests()
    init_settings(make_settings(builds_root, auth_required=True, bearer_token=TOKEN, build_version="42"))
    fake = fakeredis.FakeRedis(decode_responses=True)

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield fake

    app.dependency_overrides[get_redis] = _override
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    reset_settings_for_tests()


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["timestamp"] > 0
    assert data["uptime"] >= 0


def test_root_and_env(client: TestClient, builds_root: Path) -> None:
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json() == {"gameBuildsDir": str(builds_root)}

    resp = client.get("/env")
    assert resp.status_code == 200
    data = resp.json()
    assert data["gameBuildsDir"] == str(builds_root)
    assert data["authRequired"] is False
    assert data["releasesToKeep"] == 5


def test_auth_required(auth_client: TestClient) -> None:
    # Health is always public.
    resp = auth_client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["buildVersion"] == "42"

    assert auth_client.get(f"/releases/{GAME}/{PLATFORM}").status_code == 401
    assert auth_client.get(f"/releases/{GAME}/{PLATFORM}", headers={"Authorization": "Bearer nope"}).status_code == 401

    resp = auth_client.get(f"/releases/{GAME}/{PLATFORM}", headers={"Authorization": f"Bearer {TOKEN}"})
    assert resp.status_code == 200

    resp = auth_client.get("/env", headers={"Authorization": f"Bearer {TOKEN}"})
    assert resp.json()["bearerToken"] == "***"


def test_unsafe_names_are_rejected(client: TestClient) -> None:
    resp = client.get(f"/releases/{GAME}/we.b")
    assert resp.status_code == 400


def test_blocking_routes_run_in_threadpool() -> None:
    from fastapi.routing import APIRoute

    blocking = [r for r in app.routes if isinstance(r, APIRoute) and r.path not in ("/health", "/", "/env")]

    assert {r.path.split("/")[1] for r in blocking} == {
        "preDeploy",
        "postDeploy",
        "deployments",
        "releases",
        "publish",
        "rollback",
    }
    for route in blocking:
        assert not inspect.iscoroutinefunction(route.endpoint), route.path


def test_health_answers_while_a_publish_waits_on_the_lock(builds_root: Path, make_build: MakeBuild) -> None:
    reset_settings_for_tests()
    init_settings(make_settings(builds_root, lock_wait_seconds=1))
    fake = fakeredis.FakeRedis(decode_responses=True)
    fake.set(release_lock_key(game=GAME, platform=PLATFORM), "held")
    make_build(1)

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield fake

    app.dependency_overrides[get_redis] = _override
    try:
        with TestClient(app) as c, ThreadPoolExecutor(max_workers=1) as pool:
            pending = pool.submit(c.get, f"/publish/{GAME}/{PLATFORM}/master-1")
            time.sleep(0.1)

            started = time.monotonic()
            assert c.get("/health").status_code == 200
            assert time.monotonic() - started < 0.5
            assert pending.result().status_code == 409
    finally:
        app.dependency_overrides.clear()
        reset_settings_for_tests()
