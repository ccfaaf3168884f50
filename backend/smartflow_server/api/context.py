from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel

from smartflow_server.core.api_key import require_shared_api_key
from smartflow_server.core.context import AppContext
from smartflow_server.core.dependencies import ContextRegistryDep, EntityStoreDep
from smartflow_server.schemas.entities import MalformedRowError, UserRow, parse_row
from smartflow_server.store.client import EntityStoreError

CONTEXT_HEADER = 'x-smartflow-context'

router = APIRouter(prefix='/context', tags=['context'], dependencies=[Depends(require_shared_api_key)])


class SignInRequest(BaseModel):
    user_id: str


class SidebarUpdate(BaseModel):
    collapsed: bool


def _context_payload(ctx: AppContext, token: Optional[str] = None) -> dict:
    body = {
        'user': ctx.user.model_dump(mode='json') if ctx.user else None,
        'sidebar_collapsed': ctx.sidebar_collapsed,
        'signed_in_at': ctx.signed_in_at.isoformat() if ctx.signed_in_at else None,
    }
    if token is not None:
        body['token'] = token
    return body


async def require_context(
    registry: ContextRegistryDep,
    token: Optional[str] = Header(None, alias=CONTEXT_HEADER),
) -> AppContext:
    ctx = registry.get(token)
    if ctx is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='No active context')
    return ctx


@router.post('/sign-in')
async def sign_in(payload: SignInRequest, registry: ContextRegistryDep, store: EntityStoreDep):
    """Look the user up in the store and open a context for them."""
    try:
        row = await store.fetch_by_id('users', payload.user_id)
        user = parse_row(UserRow, row, table='users') if row is not None else None
    except (EntityStoreError, MalformedRowError) as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    if user is None:
        raise HTTPException(status_code=404, detail=f'User {payload.user_id} not found')
    token, ctx = registry.sign_in(user)
    return _context_payload(ctx, token)


@router.post('/sign-out')
async def sign_out(registry: ContextRegistryDep, token: Optional[str] = Header(None, alias=CONTEXT_HEADER)):
    return {'signed_out': registry.sign_out(token)}


@router.get('')
async def current_context(ctx: AppContext = Depends(require_context)):
    return _context_payload(ctx)


@router.put('/sidebar')
async def set_sidebar(payload: SidebarUpdate, ctx: AppContext = Depends(require_context)):
    ctx.sidebar_collapsed = payload.collapsed
    return _context_payload(ctx)
