"""Tests for settings-driven store construction."""

import pytest

from petition_monitor.config import Settings
from petition_monitor.errors import StoreDisabled
from petition_monitor.storage.backends import GitHubContentsBackend, SQLiteBackend, build_backend
from petition_monitor.storage.store import build_store


def test_github_without_credentials_disables_store():
    settings = Settings(store_backend="github", github_token="", repo_owner="", repo_name="")

    with pytest.raises(StoreDisabled):
        build_backend(settings)
    assert build_store(settings).enabled is False


def test_github_with_credentials():
    settings = Settings(store_backend="github", github_token="t", repo_owner="o", repo_name="r")

    backend = build_backend(settings)

    assert isinstance(backend, GitHubContentsBackend)
    assert backend.repo == "o/r"


def test_sqlite_backend(tmp_path):
    settings = Settings(store_backend="sqlite", sqlite_path=str(tmp_path / "db" / "h.db"), history_retention=8640)

    store = build_store(settings)

    assert isinstance(store.backend, SQLiteBackend)
    assert store.retention == 8640


def test_unknown_backend():
    with pytest.raises(ValueError):
        build_backend(Settings(store_backend="s3"))
