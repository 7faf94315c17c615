"""Read API response models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ..analytics.models import HistoryRecord


class HealthResponse(BaseModel):
    """Response for /health endpoint."""

    status: str  # "healthy" or "degraded"
    state: str  # "idle" or "running"
    last_successful_run: Optional[datetime] = None
    consecutive_error_count: int = 0
    last_error: Optional[str] = None
    store_enabled: bool
    uptime_seconds: float
    timestamp: datetime


class TriggerResponse(BaseModel):
    """Response for /monitor endpoint."""

    success: bool
    status: str  # "success", "skipped" or "failed"
    message: Optional[str] = None
    error: Optional[str] = None
    signatures: Optional[int] = None
    progress: Optional[str] = None
    timestamp: datetime


class HistoryPage(BaseModel):
    """Response for /history endpoint, newest first."""

    data: list[HistoryRecord]
    total: int
    limit: int
    offset: int


class HistoryStats(BaseModel):
    """Response for /history-stats endpoint."""

    total_entries: int
    first_entry: datetime
    last_entry: datetime
    first_signatures: int
    latest_signatures: int
    min_signatures: int
    max_signatures: int
    avg_signatures: float
    total_growth: int
