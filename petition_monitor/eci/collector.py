"""Snapshot collection from the ECI endpoints."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ..analytics.models import Snapshot
from ..errors import UpstreamDataInvalid
from .client import ECIClient

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_closing_date(closing_date: str) -> datetime:
    """
    Convert a DD/MM/YYYY closing date to the last second of that day in UTC.

    Example:
        "01/08/2026" -> 2026-08-01T23:59:59+00:00
    """
    day, month, year = (int(part) for part in closing_date.strip().split("/"))
    return datetime(year, month, day, 23, 59, 59, tzinfo=timezone.utc)


class SnapshotCollector:
    """Fetches the counter and deadline and normalizes them into a Snapshot."""

    def __init__(self, client: ECIClient, clock: Callable[[], datetime] = utc_now):
        """
        Initialize with ECI client.

        Args:
            client: Client for the upstream endpoints
            clock: Source of the capture timestamp
        """
        self.client = client
        self.clock = clock

    async def fetch(self) -> Snapshot:
        """
        Fetch a fresh snapshot.

        Both endpoints are queried concurrently. A failing description only
        leaves the deadline empty; a failing counter fails the fetch.

        Raises:
            UpstreamUnavailable: counter endpoint timed out or errored
            UpstreamDataInvalid: counter payload lacks a valid count/goal
        """
        progression, description = await asyncio.gather(
            self.client.get_progression(),
            self.client.get_description(),
            return_exceptions=True,
        )
        captured_at = self.clock()

        if isinstance(progression, BaseException):
            raise progression

        count, goal = self._parse_progression(progression)
        deadline = self._parse_deadline(description)

        snapshot = Snapshot(
            captured_at=captured_at, count=count, goal=goal, deadline=deadline
        )
        logger.info(
            f"Fetched snapshot: {count}/{goal} signatures "
            f"(deadline: {deadline.isoformat() if deadline else 'unknown'})"
        )
        return snapshot

    def _parse_progression(self, data: dict) -> tuple[int, int]:
        """
        Extract (count, goal) from a progression payload.

        Raises:
            UpstreamDataInvalid: missing, non-integer, negative count or non-positive goal
        """
        count = data.get("signatureCount")
        goal = data.get("goal")

        # bool is an int subclass; reject it explicitly
        for name, value in (("signatureCount", count), ("goal", goal)):
            if not isinstance(value, int) or isinstance(value, bool):
                raise UpstreamDataInvalid(f"Progression field {name} is not an integer: {value!r}")

        if count < 0:
            raise UpstreamDataInvalid(f"Negative signature count: {count}")
        if goal <= 0:
            raise UpstreamDataInvalid(f"Goal must be positive: {goal}")

        return count, goal

    def _parse_deadline(self, description) -> Optional[datetime]:
        """
        Extract the deadline from a description payload, or None (degraded).

        Args:
            description: Payload dict, or the exception the request raised
        """
        if isinstance(description, BaseException):
            logger.warning(f"Could not fetch deadline info: {description}")
            return None

        info = description.get("initiativeInfo")
        closing_date = info.get("closingDate") if isinstance(info, dict) else None
        if not isinstance(closing_date, str):
            logger.warning("Description has no initiativeInfo.closingDate, deadline unknown")
            return None

        try:
            return parse_closing_date(closing_date)
        except ValueError as e:
            logger.warning(f"Malformed closing date {closing_date!r}: {e}")
            return None


async def demo_fetch():
    """Demo: Fetch and print one snapshot."""
    from dotenv import load_dotenv

    from ..config import Settings

    load_dotenv()
    settings = Settings()

    client = ECIClient(
        settings.counter_url,
        settings.description_url,
        settings.counter_timeout,
        settings.description_timeout,
    )

    try:
        snapshot = await SnapshotCollector(client).fetch()

        print("\n" + "=" * 60)
        print("SNAPSHOT")
        print("=" * 60 + "\n")
        print(f"Captured at: {snapshot.captured_at.isoformat()}")
        print(f"Signatures:  {snapshot.count:,} / {snapshot.goal:,} ({snapshot.progress_percent:.2f}%)")
        print(f"Remaining:   {snapshot.remaining:,}")
        print(f"Deadline:    {snapshot.deadline.isoformat() if snapshot.deadline else 'unknown'}")

    finally:
        await client.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(demo_fetch())
