from __future__ import annotations

import hmac
from typing import Mapping

from fastapi import HTTPException, Request, WebSocket, status

from smartflow_server.core.config import settings

HEADER_NAME = 'x-smartflow-api-key'
QUERY_PARAM = 'api_key'
WS_CLOSE_UNAUTHORIZED = 4401
WS_CLOSE_FORBIDDEN = 4403


def configured_key() -> str | None:
    """Return the shared key, or None when the API is open."""
    raw = settings.shared_api_key
    if raw is None:
        return None
    return str(raw).strip() or None


def _check(headers: Mapping[str, str], query: Mapping[str, str]) -> int | None:
    """Return an HTTP status describing the rejection, or None if allowed."""
    secret = configured_key()
    if not secret:
        return None
    provided = (headers.get(HEADER_NAME) or query.get(QUERY_PARAM) or '').strip()
    if not provided:
        return status.HTTP_401_UNAUTHORIZED
    try:
        ok = hmac.compare_digest(secret.encode('utf-8'), provided.encode('utf-8'))
    except (TypeError, ValueError):
        ok = False
    return None if ok else status.HTTP_403_FORBIDDEN


async def require_shared_api_key(request: Request) -> None:
    rejected = _check(request.headers, request.query_params)
    if rejected == status.HTTP_401_UNAUTHORIZED:
        raise HTTPException(status_code=rejected, detail='Shared API key required')
    if rejected is not None:
        raise HTTPException(status_code=rejected, detail='Invalid shared API key')


async def enforce_shared_key_websocket(ws: WebSocket) -> bool:
    """Close an unauthenticated socket before accepting it; returns False when closed."""
    rejected = _check(ws.headers, ws.query_params)
    if rejected is None:
        return True
    if rejected == status.HTTP_401_UNAUTHORIZED:
        code, reason = WS_CLOSE_UNAUTHORIZED, 'Shared API key required'
    else:
        code, reason = WS_CLOSE_FORBIDDEN, 'Invalid shared API key'
    await ws.close(code=code, reason=reason)
    return False
