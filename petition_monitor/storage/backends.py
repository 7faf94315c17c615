"""Blob backends with version-checked writes."""

import asyncio
import base64
import logging
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import httpx

from ..errors import StoreConflict, StoreDisabled, StoreUnavailable

logger = logging.getLogger(__name__)


@dataclass
class VersionedBlob:
    """Blob content plus the version token it was read at."""

    content: str
    version: str


class BlobBackend(ABC):
    """
    Named blobs with optimistic concurrency.

    write() takes the version token the caller read (None when the blob did
    not exist) and either returns the new token or raises StoreConflict.
    """

    @abstractmethod
    async def read(self, name: str) -> Optional[VersionedBlob]:
        """Read a blob, or None if it does not exist."""

    @abstractmethod
    async def write(self, name: str, content: str, version: Optional[str]) -> str:
        """Write a blob if it is still at `version`; return the new version."""

    async def close(self):
        """Release any held resources."""


class GitHubContentsBackend(BlobBackend):
    """Blobs stored as files in a GitHub repository; the version is the blob SHA."""

    def __init__(
        self,
        token: str,
        repo_owner: str,
        repo_name: str,
        branch: str = "",
        api_url: str = "https://api.github.com",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize GitHub backend.

        Args:
            token: Token with contents read/write permission
            repo_owner: Repository owner
            repo_name: Repository name
            branch: Branch to commit to (repository default when empty)
            api_url: GitHub API base URL
            timeout: Seconds per request
            transport: Optional httpx transport (tests inject a mock here)
        """
        self.repo = f"{repo_owner}/{repo_name}"
        self.timeout = timeout
        self.branch = branch
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            headers={
                "Authorization": f"token {token}",
                "Accept": "application/vnd.github+json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def close(self):
        await self._client.aclose()

    def _path(self, name: str) -> str:
        return f"/repos/{self.repo}/contents/{name}"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await asyncio.wait_for(
                self._client.request(method, url, **kwargs), self.timeout
            )
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(f"GitHub {method} {url} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise StoreUnavailable(f"GitHub {method} {url} failed: {e}") from e

    async def read(self, name: str) -> Optional[VersionedBlob]:
        params = {"ref": self.branch} if self.branch else None
        response = await self._request("GET", self._path(name), params=params)

        if response.status_code == 404:
            return None
        if not response.is_success:
            raise StoreUnavailable(f"GitHub read of {name} returned HTTP {response.status_code}")

        try:
            data = response.json()
            sha = data["sha"]
        except (ValueError, TypeError, KeyError) as e:
            raise StoreUnavailable(f"GitHub read of {name} returned an unexpected body") from e

        # Files over 1 MB come back without inline content
        if data.get("encoding") == "base64" and data.get("content"):
            content = base64.b64decode(data["content"]).decode("utf-8")
        elif data.get("download_url"):
            raw = await self._request("GET", data["download_url"])
            if not raw.is_success:
                raise StoreUnavailable(f"GitHub download of {name} returned HTTP {raw.status_code}")
            content = raw.text
        else:
            content = ""

        return VersionedBlob(content=content, version=sha)

    async def write(self, name: str, content: str, version: Optional[str]) -> str:
        body = {
            "message": f"Update {name} - {datetime.now(timezone.utc).isoformat()}",
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if version:
            body["sha"] = version
        if self.branch:
            body["branch"] = self.branch

        response = await self._request("PUT", self._path(name), json=body)

        # 409: sha does not match; 422: sha missing for an existing file
        if response.status_code in (409, 422):
            raise StoreConflict(f"{name} changed since it was read (HTTP {response.status_code})")
        if not response.is_success:
            raise StoreUnavailable(
                f"GitHub write of {name} returned HTTP {response.status_code}: {response.text}"
            )

        new_version = response.json()["content"]["sha"]
        logger.debug(f"Wrote {name} ({version} -> {new_version})")
        return new_version


class SQLiteBackend(BlobBackend):
    """Blobs stored as rows in SQLite; the version is an integer counter."""

    def __init__(self, db_path: str = "data/history.db"):
        """Initialize database."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Create database tables if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS blobs (
                    name TEXT PRIMARY KEY,
                    content TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()
        logger.info(f"Database initialized at {self.db_path}")

    async def read(self, name: str) -> Optional[VersionedBlob]:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(
                "SELECT content, version FROM blobs WHERE name = ?", (name,)
            )
            row = cursor.fetchone()

            if not row:
                return None

            return VersionedBlob(content=row["content"], version=str(row["version"]))

    async def write(self, name: str, content: str, version: Optional[str]) -> str:
        updated_at = datetime.now(timezone.utc).isoformat()

        with sqlite3.connect(self.db_path) as conn:
            if version is None:
                try:
                    conn.execute(
                        """
                        INSERT INTO blobs (name, content, version, updated_at)
                        VALUES (?, ?, 1, ?)
                        """,
                        (name, content, updated_at),
                    )
                except sqlite3.IntegrityError as e:
                    raise StoreConflict(f"{name} was created by another writer") from e
                conn.commit()
                return "1"

            cursor = conn.execute(
                """
                UPDATE blobs SET content = ?, version = version + 1, updated_at = ?
                WHERE name = ? AND version = ?
                """,
                (content, updated_at, name, int(version)),
            )
            if cursor.rowcount == 0:
                raise StoreConflict(f"{name} is no longer at version {version}")
            conn.commit()

        return str(int(version) + 1)


def build_backend(settings) -> BlobBackend:
    """
    Create the configured backend.

    Raises:
        StoreDisabled: the GitHub backend is selected but credentials are missing
        ValueError: unknown backend name
    """
    if settings.store_backend == "sqlite":
        return SQLiteBackend(settings.sqlite_path)

    if settings.store_backend == "github":
        if not settings.github_configured:
            raise StoreDisabled("Missing GitHub credentials (GITHUB_TOKEN, REPO_OWNER, REPO_NAME)")
        return GitHubContentsBackend(
            settings.github_token,
            settings.repo_owner,
            settings.repo_name,
            branch=settings.github_branch,
            api_url=settings.github_api_url,
            timeout=settings.store_timeout,
        )

    raise ValueError(f"Unknown store backend: {settings.store_backend}")
