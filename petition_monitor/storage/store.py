"""Append-only history store with a "latest" projection."""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import ValidationError

from ..analytics.models import HistoryRecord
from ..errors import StoreConflict, StoreDisabled, StoreError
from .backends import BlobBackend, build_backend

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = 10000


class VersionedStore:
    """
    History of records plus a copy of the newest one.

    Both live as blobs on a BlobBackend and are only ever changed through
    read, modify, conditional write. No lock is held across a round-trip;
    a concurrent writer shows up as StoreConflict.
    """

    def __init__(
        self,
        backend: Optional[BlobBackend],
        latest_name: str = "eci_data_latest.json",
        history_name: str = "eci_data_history.json",
        retention: int = DEFAULT_RETENTION,
    ):
        """
        Initialize store.

        Args:
            backend: Backing medium, or None when storage is disabled
            latest_name: Blob holding the latest record
            history_name: Blob holding the record sequence
            retention: Maximum number of records kept in history
        """
        if retention < 1:
            raise ValueError(f"retention must be positive: {retention}")

        self.backend = backend
        self.latest_name = latest_name
        self.history_name = history_name
        self.retention = retention

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    async def close(self):
        if self.backend:
            await self.backend.close()

    # Writes

    async def append(self, record: HistoryRecord) -> bool:
        """
        Persist a record: append to history, then replace latest.

        Each write is retried once on conflict with a fresh read.

        Returns:
            True if written, False if the store is disabled

        Raises:
            StoreError: a write failed (including a conflict on the retry)
        """
        if not self.enabled:
            logger.warning("⚠️ Store disabled - skipping save")
            return False

        length = await self._retry_on_conflict(self.append_history, record)
        await self._retry_on_conflict(self.append_latest, record)

        logger.info(f"💾 Saved record ({length} history entries)")
        return True

    async def _retry_on_conflict(self, write, record: HistoryRecord):
        try:
            return await write(record)
        except StoreConflict as e:
            logger.warning(f"Write conflict, retrying once: {e}")
            return await write(record)

    async def append_latest(self, record: HistoryRecord):
        """
        Replace the latest record.

        Raises:
            StoreConflict: latest changed between read and write
            StoreError: any other failure
        """
        backend = self._require_backend()
        current = await backend.read(self.latest_name)
        version = current.version if current else None

        await backend.write(self.latest_name, _dump(record.model_dump(mode="json")), version)

    async def append_history(self, record: HistoryRecord) -> int:
        """
        Append a record to history, dropping the oldest beyond retention.

        Returns:
            History length after the append

        Raises:
            StoreConflict: history changed between read and write
            StoreError: any other failure
        """
        backend = self._require_backend()
        current = await backend.read(self.history_name)

        documents = self._parse_history(current.content) if current else []
        documents.append(record.model_dump(mode="json"))

        if len(documents) > self.retention:
            dropped = len(documents) - self.retention
            documents = documents[dropped:]
            logger.info(f"🔄 Trimmed {dropped} oldest entries (retention {self.retention})")

        await backend.write(
            self.history_name, _dump(documents), current.version if current else None
        )
        return len(documents)

    # Reads

    async def latest(self) -> Optional[HistoryRecord]:
        """The most recent record, or None if there is none (or no store)."""
        if not self.enabled:
            return None

        blob = await self.backend.read(self.latest_name)
        if not blob or not blob.content.strip():
            return None

        try:
            return HistoryRecord.model_validate_json(blob.content)
        except ValidationError as e:
            raise StoreError(f"{self.latest_name} is not a valid record: {e}") from e

    async def history(self) -> list[HistoryRecord]:
        """Every stored record, in capture order."""
        if not self.enabled:
            return []

        blob = await self.backend.read(self.history_name)
        if not blob:
            return []

        records = []
        for document in self._parse_history(blob.content):
            try:
                records.append(HistoryRecord.model_validate(document))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable history entry: {e}")
        return records

    async def recent_history(
        self, window: timedelta, now: Optional[datetime] = None
    ) -> list[HistoryRecord]:
        """
        Records captured within [now - window, now], in capture order.

        Args:
            window: How far back to look
            now: End of the window (defaults to the current time)
        """
        end = now or datetime.now(timezone.utc)
        start = end - window
        return [r for r in await self.history() if start <= r.captured_at <= end]

    async def page(self, limit: int = 100, offset: int = 0) -> tuple[list[HistoryRecord], int]:
        """
        A page of history, newest first.

        Returns:
            Tuple of (records, total number of records)
        """
        records = await self.history()
        newest_first = list(reversed(records))
        return newest_first[offset:offset + limit], len(records)

    async def stats(self) -> Optional[dict]:
        """Summary of the stored history, or None when it is empty."""
        records = await self.history()
        if not records:
            return None

        counts = [r.count for r in records]
        first, last = records[0], records[-1]

        return {
            "total_entries": len(records),
            "first_entry": first.captured_at,
            "last_entry": last.captured_at,
            "first_signatures": first.count,
            "latest_signatures": last.count,
            "min_signatures": min(counts),
            "max_signatures": max(counts),
            "avg_signatures": sum(counts) / len(counts),
            "total_growth": last.count - first.count if len(records) > 1 else 0,
        }

    def _require_backend(self) -> BlobBackend:
        if self.backend is None:
            raise StoreDisabled("No store backend configured")
        return self.backend

    def _parse_history(self, content: str) -> list[dict]:
        if not content.strip():
            return []

        try:
            documents = json.loads(content)
        except json.JSONDecodeError as e:
            raise StoreError(f"{self.history_name} is not valid JSON: {e}") from e

        if not isinstance(documents, list):
            raise StoreError(f"{self.history_name} does not hold a JSON array")
        return documents


def _dump(data) -> str:
    return json.dumps(data, indent=2)


def build_store(settings) -> VersionedStore:
    """Create the store described by settings; disabled if credentials are missing."""
    try:
        backend = build_backend(settings)
    except StoreDisabled as e:
        logger.warning(f"⚠️ {e} - store disabled, records will not be saved")
        backend = None

    return VersionedStore(
        backend,
        latest_name=settings.latest_blob,
        history_name=settings.history_blob,
        retention=settings.history_retention,
    )
