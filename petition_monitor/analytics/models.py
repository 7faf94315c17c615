"""Data models for counter snapshots and the analytics derived from them."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Snapshot(BaseModel):
    """One normalized sample of the signature counter."""

    captured_at: datetime
    count: int = Field(ge=0)
    goal: int = Field(gt=0)
    deadline: Optional[datetime] = None

    @property
    def remaining(self) -> int:
        """Signatures still missing; negative once the goal is exceeded."""
        return self.goal - self.count

    @property
    def progress_percent(self) -> float:
        return 100 * self.count / self.goal


class RequiredPace(BaseModel):
    """
    Pace needed to close the remaining gap by the deadline.

    Each figure uses its own floored unit count, so a figure is None when
    that unit floors to zero even if coarser units do not.
    """

    deadline: datetime
    days_remaining: int
    per_week: Optional[float] = None
    per_day: Optional[float] = None
    per_hour: Optional[float] = None
    per_minute: Optional[float] = None
    per_second: Optional[float] = None


class ObservedPace(BaseModel):
    """Pace measured between the oldest and newest sample of a window."""

    window_start: datetime
    window_end: datetime
    sample_count: int
    signature_diff: int
    per_minute: float
    per_hour: float
    per_day: float
    per_week: float


class Trend(str, Enum):
    """Last 24h hourly rate compared with the 24h before it."""

    ACCELERATING = "accelerating"
    SLOWING = "slowing"
    STEADY = "steady"
    UNKNOWN = "unknown"


class HistoryRecord(BaseModel):
    """A snapshot plus everything derived from it, as stored."""

    snapshot: Snapshot
    progress_percent: float
    remaining: int
    required_pace: Optional[RequiredPace] = None
    observed_pace: Optional[ObservedPace] = None
    on_track_daily: Optional[bool] = None
    on_track_hourly: Optional[bool] = None
    trend: Trend = Trend.UNKNOWN

    @property
    def captured_at(self) -> datetime:
        return self.snapshot.captured_at

    @property
    def count(self) -> int:
        return self.snapshot.count
