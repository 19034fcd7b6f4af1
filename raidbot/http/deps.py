from __future__ import annotations

import secrets

from fastapi import Header, HTTPException, Request, status

from ..engine import RaidEngine


def get_engine(request: Request) -> RaidEngine:
    return request.app.state.engine


async def api_key_auth(
    request: Request,
    x_api_key: str | None = Header(None, alias="X-Api-Key"),
) -> None:
    expected = request.app.state.api_key
    if not expected:
        return
    if not x_api_key or not secrets.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
