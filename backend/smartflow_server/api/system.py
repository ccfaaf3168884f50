from __future__ import annotations

import asyncio
import time

from fastapi import APIRouter, Depends, HTTPException

from smartflow_server.api.playback import playback_connections
from smartflow_server.api.version import get_version_payload
from smartflow_server.core.api_key import configured_key, require_shared_api_key
from smartflow_server.core.config import settings
from smartflow_server.core.dependencies import get_entity_store
from smartflow_server.schemas.health import HealthComponent, HealthStatus, SystemHealthSnapshot, worst

router = APIRouter(prefix="/system", tags=["system"], dependencies=[Depends(require_shared_api_key)])

def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


async def _probe_entity_store() -> HealthComponent:
    start = time.perf_counter()
    details = {
        "configured_url": settings.entity_store_url or None,
        "api_key_configured": bool(settings.entity_store_key),
    }
    try:
        store = get_entity_store()
    except HTTPException:
        return HealthComponent(
            status=HealthStatus.WARN,
            message="Entity store URL not configured",
            details=details,
            latency_ms=_elapsed_ms(start),
        )

    probe = await store.check_ready()
    details["probe"] = probe.describe()
    if not probe.ok:
        details["last_error"] = probe.error
        return HealthComponent(
            status=HealthStatus.ERROR,
            message="Failed to reach entity store",
            details=details,
            latency_ms=probe.latency_ms if probe.latency_ms is not None else _elapsed_ms(start),
        )
    return HealthComponent(
        status=HealthStatus.OK,
        message="Entity store reachable",
        details=details,
        latency_ms=probe.latency_ms if probe.latency_ms is not None else _elapsed_ms(start),
    )


async def _probe_configuration() -> HealthComponent:
    start = time.perf_counter()
    diagnostics = list(settings.diagnostics or [])
    problems = [line for line in diagnostics if line.startswith("invalid_")]
    details = {
        "diagnostics": diagnostics,
        "shared_key_enabled": configured_key() is not None,
        "docker_mode": settings.docker_mode,
    }
    if problems:
        details["problems"] = problems
        return HealthComponent(
            status=HealthStatus.WARN,
            message="Configuration loaded with warnings",
            details=details,
            latency_ms=_elapsed_ms(start),
        )
    return HealthComponent(
        status=HealthStatus.OK,
        message="Configuration loaded",
        details=details,
        latency_ms=_elapsed_ms(start),
    )


def _probe_playback() -> HealthComponent:
    open_streams = len(playback_connections)
    return HealthComponent(
        status=HealthStatus.OK,
        message=f"{open_streams} playback stream(s) open",
        details={"open_streams": open_streams, "tick_logging": settings.log_playback_ticks},
    )


@router.get("/health", response_model=SystemHealthSnapshot)
async def get_system_health() -> SystemHealthSnapshot:
    store_component, config_component = await asyncio.gather(
        _probe_entity_store(), _probe_configuration()
    )
    playback_component = _probe_playback()
    overall = worst(store_component.status, config_component.status, playback_component.status)
    version_payload = get_version_payload()
    return SystemHealthSnapshot(
        status=overall,
        entity_store=store_component,
        configuration=config_component,
        playback=playback_component,
        backend_version=version_payload.get("version"),
        version_payload=version_payload,
    )
