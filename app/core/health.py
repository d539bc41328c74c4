"""
Health check utilities for the FitTrack API.

Reports the state of configuration and the document store so operators can
tell at a glance whether challenge operations can succeed.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.core.config import settings
from app.core.database import CHALLENGES_TABLE, get_document_store
from app.services.logger import logger


class HealthStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    NOT_CONFIGURED = "not_configured"


class HealthCheckResult(BaseModel):
    component: str
    status: HealthStatus
    details: str = ""
    latency_ms: Optional[float] = Field(default=None, ge=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class HealthReport(BaseModel):
    status: HealthStatus
    version: str
    environment: str
    timestamp: datetime
    checks: List[HealthCheckResult]


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


async def _check_environment() -> HealthCheckResult:
    missing = []
    if not settings.SECRET_KEY:
        missing.append("SECRET_KEY")
    if settings.DOCUMENT_STORE != "memory":
        if not settings.SUPABASE_URL:
            missing.append("SUPABASE_URL")
        if not settings.SUPABASE_SERVICE_KEY:
            missing.append("SUPABASE_SERVICE_KEY")

    if missing:
        return HealthCheckResult(
            component="environment",
            status=HealthStatus.CRITICAL,
            details=f"Missing settings: {', '.join(missing)}",
            metadata={"missing": missing},
        )

    return HealthCheckResult(
        component="environment",
        status=HealthStatus.OK,
        details="Required settings present",
        metadata={"document_store": settings.DOCUMENT_STORE},
    )


async def _check_document_store() -> HealthCheckResult:
    component = "document_store"
    start = time.perf_counter()

    if settings.DOCUMENT_STORE != "memory" and not (
        settings.SUPABASE_URL and settings.SUPABASE_SERVICE_KEY
    ):
        return HealthCheckResult(
            component=component,
            status=HealthStatus.NOT_CONFIGURED,
            details="Supabase credentials are not set",
        )

    try:
        store = get_document_store()
        total = await asyncio.to_thread(lambda: store.count_rows(CHALLENGES_TABLE))
        return HealthCheckResult(
            component=component,
            status=HealthStatus.OK,
            details=f"{type(store).__name__} reachable",
            latency_ms=_elapsed_ms(start),
            metadata={"total_challenges": total},
        )
    except Exception as exc:
        return HealthCheckResult(
            component=component,
            status=HealthStatus.CRITICAL,
            details=f"Document store request failed: {exc}",
            latency_ms=_elapsed_ms(start),
        )


def _aggregate_status(checks: List[HealthCheckResult]) -> HealthStatus:
    statuses = {check.status for check in checks}
    if HealthStatus.CRITICAL in statuses:
        return HealthStatus.CRITICAL
    if HealthStatus.DEGRADED in statuses or HealthStatus.NOT_CONFIGURED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.OK


async def build_health_report(api_version: str) -> HealthReport:
    checks = list(await asyncio.gather(_check_environment(), _check_document_store()))
    overall_status = _aggregate_status(checks)

    if overall_status != HealthStatus.OK:
        logger.warning(
            f"Health check reported {overall_status.value}",
            {"checks": [c.model_dump(mode="json") for c in checks]},
        )

    return HealthReport(
        status=overall_status,
        version=api_version,
        environment=settings.ENVIRONMENT,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )
