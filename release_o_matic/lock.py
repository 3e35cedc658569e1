from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import redis
from redis.exceptions import LockError, LockNotOwnedError
from redis.lock import Lock

from release_o_matic.core.errors import ErrorKind, ReleaseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LockOptions:
    # Lock expiry; protects against a crashed holder keeping the lock forever.
    ttl_ms: int = 30_000
    # How long to keep retrying before reporting the resource as busy.
    wait_seconds: float = 10.0
    retry_interval_seconds: float = 0.05


def release_lock_key(*, game: str, platform: str) -> str:
    return f"lock:release:{game}:{platform}"


def build_lock_key(*, game: str, env: str) -> str:
    return f"lock:build:{game}:{env}"


@contextmanager
def redis_lock(*, r: redis.Redis, key: str, options: LockOptions = LockOptions()) -> Iterator[Lock]:
    """Mutual exclusion across requests (and processes) sharing one redis.

    Built on redis-py's `Lock`: release and `refresh_lock` run as Lua scripts that
    check the holder's token, so an expired holder never touches a lock that has
    since been taken by someone else.
    """

    lock = r.lock(
        key,
        timeout=options.ttl_ms / 1000,
        sleep=options.retry_interval_seconds,
        blocking_timeout=options.wait_seconds,
    )
    try:
        acquired = lock.acquire()
    except LockError as e:
        raise ReleaseError(ErrorKind.busy, f"can't take lock '{key}': {e}") from e
    if not acquired:
        raise ReleaseError(ErrorKind.busy, f"'{key}' is busy, try again later")

    try:
        yield lock
    finally:
        try:
            lock.release()
        except LockNotOwnedError:
            logger.warning("Lock %s expired before it was released", key)


def refresh_lock(lock: Lock) -> None:
    """Restart the lock's TTL before a write; `busy` if it was lost in the meantime."""

    try:
        lock.reacquire()
    except LockNotOwnedError as e:
        raise ReleaseError(
            ErrorKind.busy,
            f"lock '{lock.name}' expired before the operation finished, nothing was recorded",
            hint="raise LOCK_TTL_MS and retry",
        ) from e


@contextmanager
def release_lock(*, r: redis.Redis, game: str, platform: str, options: LockOptions = LockOptions()) -> Iterator[Lock]:
    """Serialize publish/rollback for one (game, platform) ledger."""

    with redis_lock(r=r, key=release_lock_key(game=game, platform=platform), options=options) as lock:
        yield lock


@contextmanager
def build_lock(*, r: redis.Redis, game: str, env: str, options: LockOptions = LockOptions()) -> Iterator[Lock]:
    """Serialize prepare/finalize for one (game, environment) tree."""

    with redis_lock(r=r, key=build_lock_key(game=game, env=env), options=options) as lock:
        yield lock
