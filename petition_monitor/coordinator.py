"""Run coordination: one fetch, compute, store cycle at a time."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from .analytics.models import HistoryRecord
from .analytics.pace import PaceCalculator
from .eci.collector import SnapshotCollector
from .errors import MonitorError
from .storage.store import VersionedStore

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class RunStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RunResult:
    """Outcome of one run() call."""

    status: RunStatus
    timestamp: datetime
    record: Optional[HistoryRecord] = None
    persisted: bool = False
    reason: Optional[str] = None
    error: Optional[str] = None


class RunCoordinator:
    """
    Drives collector -> calculator -> store, at most one run at a time.

    Timer and manual triggers share one instance. A trigger that arrives
    while a run is in flight is skipped, not queued. Failures never
    propagate out of run(); they are counted and logged.
    """

    def __init__(
        self,
        collector: SnapshotCollector,
        calculator: PaceCalculator,
        store: VersionedStore,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.collector = collector
        self.calculator = calculator
        self.store = store
        self.clock = clock

        self.state = RunState.IDLE
        self.last_successful_run: Optional[datetime] = None
        self.consecutive_error_count = 0
        self.last_error: Optional[str] = None

    async def run(self) -> RunResult:
        """Run one cycle unless one is already running."""
        # Check-and-set happens before the first await, so no other task
        # can interleave between them.
        if self.state == RunState.RUNNING:
            logger.info("⏭️ Run skipped, already running")
            return RunResult(
                status=RunStatus.SKIPPED,
                timestamp=self.clock(),
                reason="already_running",
            )

        self.state = RunState.RUNNING
        try:
            return await self._run_cycle()
        finally:
            self.state = RunState.IDLE

    async def _run_cycle(self) -> RunResult:
        logger.info("🔄 Running monitor...")

        try:
            snapshot = await self.collector.fetch()
            history = await self.store.recent_history(
                self.calculator.history_window, now=snapshot.captured_at
            )
            record = self.calculator.compute(snapshot, history)
            persisted = await self.store.append(record)

        except Exception as e:
            self.consecutive_error_count += 1
            reason = e.reason if isinstance(e, MonitorError) else "internal_error"
            self.last_error = f"{reason}: {e}"
            logger.error(
                f"❌ Monitor error ({self.consecutive_error_count} in a row): {self.last_error}",
                exc_info=not isinstance(e, MonitorError),
            )
            return RunResult(
                status=RunStatus.FAILED,
                timestamp=self.clock(),
                reason=reason,
                error=str(e),
            )

        self.last_successful_run = self.clock()
        self.consecutive_error_count = 0
        self.last_error = None

        logger.info(
            f"✅ Updated: {record.count} signatures ({record.progress_percent:.2f}%, "
            f"trend: {record.trend.value})"
        )
        return RunResult(
            status=RunStatus.SUCCESS,
            timestamp=self.last_successful_run,
            record=record,
            persisted=persisted,
        )

    def health(self) -> dict:
        """State exposed for health reporting."""
        return {
            "state": self.state.value,
            "last_successful_run": self.last_successful_run,
            "consecutive_error_count": self.consecutive_error_count,
            "last_error": self.last_error,
        }
