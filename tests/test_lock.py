from __future__ import annotations

from pathlib import Path

import fakeredis
import pytest

from conftest import MakeBuild
from release_o_matic.core.errors import ErrorKind, ReleaseError
from release_o_matic.core.fs import merge_copy
from release_o_matic.core.publish import publish_release
from release_o_matic.lock import LockOptions, refresh_lock, release_lock, release_lock_key

FAST = LockOptions(ttl_ms=5_000, wait_seconds=0.05, retry_interval_seconds=0.01)


def test_lock_is_exclusive_per_platform() -> None:
    r = fakeredis.FakeRedis(decode_responses=True)

    with release_lock(r=r, game="g", platform="web", options=FAST):
        with pytest.raises(ReleaseError) as exc:
            with release_lock(r=r, game="g", platform="web", options=FAST):
                pass
        assert exc.value.kind == ErrorKind.busy

        # Other platforms are independent.
        with release_lock(r=r, game="g", platform="android", options=FAST):
            pass

    assert r.get(release_lock_key(game="g", platform="web")) is None


def test_lock_released_on_error() -> None:
    r = fakeredis.FakeRedis(decode_responses=True)

    with pytest.raises(RuntimeError):
        with release_lock(r=r, game="g", platform="web", options=FAST):
            raise RuntimeError("boom")

    with release_lock(r=r, game="g", platform="web", options=FAST):
        pass


def test_expired_lock_is_not_deleted_by_old_holder() -> None:
    r = fakeredis.FakeRedis(decode_responses=True)
    key = release_lock_key(game="g", platform="web")

    with release_lock(r=r, game="g", platform="web", options=FAST):
        # Simulate expiry followed by another holder taking the lock.
        r.set(key, "someone-else")

    assert r.get(key) == "someone-else"


def test_publish_while_locked_reports_busy(builds_root: Path, make_build: MakeBuild) -> None:
    r = fakeredis.FakeRedis(decode_responses=True)
    make_build(1)
    r.set(release_lock_key(game="test-game", platform="web"), "held")

    with pytest.raises(ReleaseError) as exc:
        publish_release(r=r, root=builds_root, game="test-game", platform="web", build_key="master-1", lock_options=FAST)
    assert exc.value.kind == ErrorKind.busy
    assert not (builds_root / "test-game" / "prod").exists()


def test_refresh_fails_once_lock_was_taken_over() -> None:
    r = fakeredis.FakeRedis(decode_responses=True)
    key = release_lock_key(game="g", platform="web")

    with release_lock(r=r, game="g", platform="web", options=FAST) as lock:
        refresh_lock(lock)
        r.set(key, "someone-else")
        with pytest.raises(ReleaseError) as exc:
            refresh_lock(lock)
        assert exc.value.kind == ErrorKind.busy

    assert r.get(key) == "someone-else"


def test_publish_does_not_record_after_losing_the_lock(
    builds_root: Path, make_build: MakeBuild, monkeypatch: pytest.MonkeyPatch
) -> None:
    r = fakeredis.FakeRedis(decode_responses=True)
    key = release_lock_key(game="test-game", platform="web")
    make_build(1)

    def slow_copy(src: Path, dst: Path) -> None:
        merge_copy(src, dst)
        # The lock expired during the copy and another publisher took it.
        r.set(key, "other-publisher")

    monkeypatch.setattr("release_o_matic.core.publish.merge_copy", slow_copy)

    with pytest.raises(ReleaseError) as exc:
        publish_release(r=r, root=builds_root, game="test-game", platform="web", build_key="master-1", lock_options=FAST)

    assert exc.value.kind == ErrorKind.busy
    assert not (builds_root / "test-game" / "prod" / "web" / "releases.json").exists()
    assert r.get(key) == "other-publisher"
