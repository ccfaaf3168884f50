from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from smartflow_server.api.flows import load_bundle_or_502
from smartflow_server.core.api_key import require_shared_api_key
from smartflow_server.core.dependencies import EntityStoreDep
from smartflow_server.schemas.entities import (
    FlowSession,
    JourneyStep,
    MalformedRowError,
    UserJourney,
    parse_row,
)
from smartflow_server.services import analytics as analytics_service
from smartflow_server.store.client import EntityStoreError

router = APIRouter(tags=['analytics'], dependencies=[Depends(require_shared_api_key)])


class WatchTimeIn(BaseModel):
    watch_time: float = Field(..., ge=0, description='Seconds watched in one viewing')


class LeadIn(BaseModel):
    form_title: str = ''
    form_data: Dict[str, Any] = Field(default_factory=dict)
    steps: List[JourneyStep] = Field(default_factory=list)


def _store_failure(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


async def _session(store, session_id: str) -> FlowSession:
    try:
        row = await store.fetch_by_id('sessions', session_id)
        if row is None:
            raise HTTPException(status_code=404, detail=f'Session {session_id} not found')
        return parse_row(FlowSession, row, table='sessions')
    except (EntityStoreError, MalformedRowError) as exc:
        raise _store_failure(exc) from exc


@router.post('/flows/{session_id}/watch-time', status_code=201)
async def post_watch_time(session_id: str, payload: WatchTimeIn, store: EntityStoreDep):
    try:
        record = await analytics_service.record_watch_time(store, session_id, payload.watch_time)
    except (EntityStoreError, MalformedRowError) as exc:
        raise _store_failure(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return record.model_dump(mode='json')


@router.get('/flows/{session_id}/analytics')
async def get_analytics(session_id: str, store: EntityStoreDep):
    bundle = await load_bundle_or_502(store, session_id)
    try:
        summary = await analytics_service.load_watch_time_summary(store, session_id)
    except (EntityStoreError, MalformedRowError) as exc:
        raise _store_failure(exc) from exc
    return {
        'session': bundle.session.model_dump(mode='json'),
        'watch_time': summary.to_dict(),
        'videos': len(bundle.videos),
        'questions': len(bundle.questions),
    }


@router.post('/flows/{session_id}/leads', status_code=201)
async def post_lead(session_id: str, payload: LeadIn, store: EntityStoreDep):
    session = await _session(store, session_id)
    journey = UserJourney(session_id=session_id, steps=payload.steps) if payload.steps else None
    try:
        lead = await analytics_service.submit_lead(store, session, payload.form_title, payload.form_data, journey)
    except (EntityStoreError, MalformedRowError) as exc:
        raise _store_failure(exc) from exc
    return lead.model_dump(mode='json')


@router.get('/companies/{company_id}/leads')
async def company_leads(company_id: str, store: EntityStoreDep, session_id: Optional[str] = Query(None)):
    try:
        leads = await analytics_service.list_leads(store, company_id, session_id)
    except (EntityStoreError, MalformedRowError) as exc:
        raise _store_failure(exc) from exc
    return {'company_id': company_id, 'count': len(leads), 'leads': [l.model_dump(mode='json') for l in leads]}
