from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class HealthStatus(str, Enum):
    OK = "ok"
    WARN = "warn"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _RANK[self]


_RANK = {HealthStatus.OK: 0, HealthStatus.WARN: 1, HealthStatus.ERROR: 2}


def worst(*statuses: HealthStatus) -> HealthStatus:
    """Most severe of ``statuses``; OK when none are given."""
    return max(statuses, key=lambda s: s.rank, default=HealthStatus.OK)


class HealthComponent(BaseModel):
    status: HealthStatus
    message: str = Field(..., description="One-line summary shown on the status page")
    details: Dict[str, Any] | None = None
    latency_ms: float | None = Field(default=None, description="Time spent probing, in ms")


class SystemHealthSnapshot(BaseModel):
    """Health of the server and the hosted table API it proxies."""

    model_config = ConfigDict(use_enum_values=True)

    status: HealthStatus
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    entity_store: HealthComponent
    configuration: HealthComponent
    playback: HealthComponent
    backend_version: Optional[str] = None
    version_payload: Optional[Dict[str, Any]] = None
