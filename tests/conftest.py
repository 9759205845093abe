import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from typer.testing import CliRunner
from unittest.mock import MagicMock

from hypercli.domain.interfaces.remote import RemoteGateway
from hypercli.domain.interfaces.user_interface import UserInterface
from hypercli.domain.models.resource import RemoteResource, ResourcePage
from hypercli.infrastructure.cache.workspace_cache import WorkspaceCache
from hypercli.infrastructure.config import settings as config_settings
from hypercli.infrastructure.monitoring.logger_setup import DIAGNOSTICS_LOGGER_NAME

TASKS_ID = "1fb79d4c71bb8032b722c82305b63a00"
NOTES_ID = "2a3b4c5d6e7f80918273645546372819"
PROJECTS_ID = "abcdefabcdefabcdefabcdefabcdef12"


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records requested sleeps instead of waiting."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeGateway(RemoteGateway):
    """In-memory RemoteGateway with scripted search results and pages."""

    def __init__(self):
        self.search_results: Dict[str, List[RemoteResource]] = {}
        self.pages: List[ResourcePage] = []
        self.search_calls: List[str] = []
        self.list_calls: List[Optional[str]] = []
        self.search_errors: List[Exception] = []

    async def search(self, query: str) -> List[RemoteResource]:
        self.search_calls.append(query)
        if self.search_errors:
            raise self.search_errors.pop(0)
        return list(self.search_results.get(query.lower(), []))

    async def list_resources(self, cursor: Optional[str] = None) -> ResourcePage:
        self.list_calls.append(cursor)
        index = 0 if cursor is None else int(cursor)
        return self.pages[index]


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path: Path):
    """Keeps user config files and HYPERCLI_* variables out of every test."""
    for key in list(os.environ):
        if key.startswith("HYPERCLI_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HYPERCLI_CONFIG_FILE", str(tmp_path / "missing-config.yaml"))
    monkeypatch.chdir(tmp_path)
    config_settings.reset_configuration()
    config_settings.clear_test_config()
    yield
    config_settings.reset_configuration()
    config_settings.clear_test_config()


@pytest.fixture(autouse=True)
def restore_logging():
    """Undoes handler changes made by setup_logging and configure_diagnostics."""
    root = logging.getLogger()
    diagnostics = logging.getLogger(DIAGNOSTICS_LOGGER_NAME)
    saved = (root.level, root.handlers[:], diagnostics.level, diagnostics.handlers[:], diagnostics.propagate)
    yield
    root.setLevel(saved[0])
    root.handlers[:] = saved[1]
    diagnostics.setLevel(saved[2])
    diagnostics.handlers[:] = saved[3]
    diagnostics.propagate = saved[4]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def mock_ui():
    return MagicMock(spec=UserInterface)


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    return tmp_path / "hypercli" / "workspace.json"


@pytest.fixture
def sync_time() -> datetime:
    return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def workspace_cache(cache_path: Path, sync_time: datetime) -> WorkspaceCache:
    """Workspace cache at a temp path whose clock reads one hour after ``sync_time``."""
    return WorkspaceCache(cache_path, clock=lambda: sync_time + timedelta(hours=1))


@pytest.fixture
def populated_cache_file(cache_path: Path) -> Path:
    cache_path.parent.mkdir(parents=True, exist_ok=True)
    cache_path.write_text(
        """{
  "version": 1,
  "syncedAt": "2024-05-01T12:00:00Z",
  "resources": [
    {"id": "%s", "title": "Tasks Database",
     "aliases": ["tasks database", "tasks", "task", "tasks db", "td"],
     "url": "https://example.com/Tasks-%s", "lastSyncedAt": "2024-05-01T12:00:00Z"},
    {"id": "%s", "title": "Meeting Notes", "aliases": ["meeting notes", "notes", "mn"]},
    {"id": "%s", "title": "Projects", "aliases": ["projects", "project"],
     "lastSyncedAt": "2024-04-01T12:00:00Z"}
  ]
}""" % (TASKS_ID, TASKS_ID, NOTES_ID, PROJECTS_ID),
        encoding="utf-8",
    )
    return cache_path
