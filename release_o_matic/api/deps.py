from __future__ import annotations

import hmac
from collections.abc import Generator

import redis
from fastapi import Depends, Header, HTTPException, status

from release_o_matic.infra.redis_client import create_redis
from release_o_matic.settings import Settings, get_settings


def get_redis(settings: Settings = Depends(get_settings)) -> Generator[redis.Redis, None, None]:
    client = create_redis(settings.redis_url)
    try:
        yield client
    finally:
        client.close()


def require_auth(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject requests without the configured bearer token when AUTH_REQUIRED is on."""

    if not settings.auth_required:
        return

    scheme, _, token = (authorization or "").partition(" ")
    expected = settings.bearer_token or ""
    if scheme.casefold() != "bearer" or not token or not hmac.compare_digest(token.strip(), expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"kind": "unauthorized", "message": "missing or invalid bearer token", "hint": None},
            headers={"WWW-Authenticate": "Bearer"},
        )
