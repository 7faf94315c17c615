"""Required pace, observed pace and trend calculation."""

import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence

from .models import (
    HistoryRecord,
    ObservedPace,
    RequiredPace,
    Snapshot,
    Trend,
)

logger = logging.getLogger(__name__)

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR
MS_PER_WEEK = 7 * MS_PER_DAY

TREND_WINDOW = timedelta(hours=24)
ACCELERATING_RATIO = 1.10
SLOWING_RATIO = 0.90


def _milliseconds(delta: timedelta) -> int:
    return delta // timedelta(milliseconds=1)


def _rate(amount: float, units: float) -> Optional[float]:
    """Divide, or None when the denominator is not positive."""
    if units <= 0:
        return None
    return amount / units


class PaceCalculator:
    """
    Derives a HistoryRecord from a snapshot and the history preceding it.

    Stateless: every figure is a function of the snapshot and the history
    passed in. "Now" is always the snapshot's own capture time.
    """

    def __init__(self, observed_window: timedelta = timedelta(days=7)):
        """
        Initialize calculator.

        Args:
            observed_window: Trailing window used for observed pace
        """
        self.observed_window = observed_window

    @property
    def history_window(self) -> timedelta:
        """How much history compute() needs to see."""
        return max(self.observed_window, 2 * TREND_WINDOW)

    def compute(
        self, snapshot: Snapshot, history: Sequence[HistoryRecord]
    ) -> HistoryRecord:
        """
        Compute analytics for a snapshot.

        Args:
            snapshot: The freshly captured sample
            history: Previously stored records, in capture order

        Returns:
            New HistoryRecord (history is not modified)
        """
        points = self._points(snapshot, history)

        required = self._required_pace(snapshot)
        observed = self._observed_pace(snapshot, points)
        trend = self._classify_trend(snapshot.captured_at, points)

        on_track_daily = None
        on_track_hourly = None
        if required and observed:
            on_track_daily = self._on_track(observed.per_day, required.per_day)
            on_track_hourly = self._on_track(observed.per_hour, required.per_hour)

        return HistoryRecord(
            snapshot=snapshot,
            progress_percent=snapshot.progress_percent,
            remaining=snapshot.remaining,
            required_pace=required,
            observed_pace=observed,
            on_track_daily=on_track_daily,
            on_track_hourly=on_track_hourly,
            trend=trend,
        )

    def _points(
        self, snapshot: Snapshot, history: Sequence[HistoryRecord]
    ) -> list[tuple[datetime, int]]:
        """
        (captured_at, count) pairs not newer than the snapshot, time-ordered.

        The snapshot itself is always the newest point.
        """
        points = []
        for record in history:
            if record.captured_at > snapshot.captured_at:
                logger.warning(
                    f"Ignoring record captured after snapshot: {record.captured_at.isoformat()}"
                )
                continue
            points.append((record.captured_at, record.count))

        points.sort(key=lambda point: point[0])
        points.append((snapshot.captured_at, snapshot.count))
        return points

    def _required_pace(self, snapshot: Snapshot) -> Optional[RequiredPace]:
        """
        Pace needed per unit to reach the goal by the deadline.

        Every unit floors the remaining time on its own, e.g. 1 day 23 hours
        left is 1 day but 47 hours. The weekly figure is seven times the daily.
        """
        if snapshot.deadline is None:
            return None

        ms_left = _milliseconds(snapshot.deadline - snapshot.captured_at)
        if ms_left <= 0:
            return None

        days_left = ms_left // MS_PER_DAY
        hours_left = ms_left // MS_PER_HOUR
        minutes_left = ms_left // MS_PER_MINUTE
        seconds_left = ms_left // MS_PER_SECOND

        # Nothing left to collect once the goal is reached
        remaining = max(snapshot.remaining, 0)

        per_day = _rate(remaining, days_left)
        per_hour = _rate(remaining, hours_left)
        per_minute = _rate(remaining, minutes_left)
        per_second = _rate(remaining, seconds_left)

        if per_second is None:
            return None

        return RequiredPace(
            deadline=snapshot.deadline,
            days_remaining=days_left,
            per_week=per_day * 7 if per_day is not None else None,
            per_day=per_day,
            per_hour=per_hour,
            per_minute=per_minute,
            per_second=per_second,
        )

    def _observed_pace(
        self, snapshot: Snapshot, points: list[tuple[datetime, int]]
    ) -> Optional[ObservedPace]:
        """
        Pace between the oldest and newest point of the trailing window.

        Unlike required pace, every unit divides the same unfloored elapsed time.
        """
        window_start = snapshot.captured_at - self.observed_window
        window = [point for point in points if point[0] >= window_start]

        if len(window) < 2:
            return None

        (first_at, first_count), (last_at, last_count) = window[0], window[-1]
        elapsed_ms = _milliseconds(last_at - first_at)
        if elapsed_ms <= 0:
            return None

        diff = last_count - first_count
        return ObservedPace(
            window_start=first_at,
            window_end=last_at,
            sample_count=len(window),
            signature_diff=diff,
            per_minute=diff / (elapsed_ms / MS_PER_MINUTE),
            per_hour=diff / (elapsed_ms / MS_PER_HOUR),
            per_day=diff / (elapsed_ms / MS_PER_DAY),
            per_week=diff / (elapsed_ms / MS_PER_WEEK),
        )

    def _classify_trend(
        self, now: datetime, points: list[tuple[datetime, int]]
    ) -> Trend:
        """
        Compare the hourly rate of the last 24h with the 24h before it.

        Returns:
            Trend.UNKNOWN unless both windows hold at least two points
        """
        recent_start = now - TREND_WINDOW
        previous_start = recent_start - TREND_WINDOW

        recent = [p for p in points if recent_start < p[0] <= now]
        previous = [p for p in points if previous_start < p[0] <= recent_start]

        recent_rate = self._hourly_rate(recent)
        previous_rate = self._hourly_rate(previous)
        if recent_rate is None or previous_rate is None:
            return Trend.UNKNOWN

        if previous_rate <= 0:
            if recent_rate > previous_rate:
                return Trend.ACCELERATING
            if recent_rate < previous_rate:
                return Trend.SLOWING
            return Trend.STEADY

        # Inclusive bounds: 110/100 and 90/100 sit exactly on the thresholds
        ratio = recent_rate / previous_rate
        if ratio >= ACCELERATING_RATIO:
            return Trend.ACCELERATING
        if ratio <= SLOWING_RATIO:
            return Trend.SLOWING
        return Trend.STEADY

    def _hourly_rate(self, points: list[tuple[datetime, int]]) -> Optional[float]:
        if len(points) < 2:
            return None

        (first_at, first_count), (last_at, last_count) = points[0], points[-1]
        hours = (last_at - first_at).total_seconds() / 3600
        return _rate(last_count - first_count, hours)

    def _on_track(
        self, observed: Optional[float], required: Optional[float]
    ) -> Optional[bool]:
        if observed is None or required is None:
            return None
        return observed >= required
