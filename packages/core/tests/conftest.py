"""Shared fixtures for sqls-next tests."""

import io
from pathlib import Path

import pytest
from rich.console import Console

from sqls_next.config import Settings, reset_settings
from sqls_next.connections import ConnectionConfigStore
from sqls_next.notifications import MessageType, Notifier
from sqls_next.state import GlobalState


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path, monkeypatch):
    """Point the cached settings at a temp state dir for every test."""
    monkeypatch.setenv("SQLS_NEXT_STATE_DIR", str(tmp_path / "state"))
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(state_dir=str(tmp_path / "state"))


@pytest.fixture
def state_file(tmp_path) -> Path:
    return tmp_path / "state" / "state.yaml"


@pytest.fixture
def store(state_file) -> ConnectionConfigStore:
    return ConnectionConfigStore(GlobalState(state_file))


class RecordingNotifier(Notifier):
    """Notifier that records (severity, message) instead of printing."""

    def __init__(self):
        super().__init__(console=Console(file=io.StringIO()))
        self.messages: list[tuple[MessageType, str]] = []

    def _show(self, severity, message, items):
        self.messages.append((severity, message))
        return None

    def of(self, severity: MessageType) -> list[str]:
        return [message for sev, message in self.messages if sev == severity]


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
