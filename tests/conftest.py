"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import os
import sys
from pathlib import Path
import pytest

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from conversation_history.kv import InMemoryStore  # noqa: E402
from conversation_history.models import Message  # noqa: E402


class TickingClock:
    """Deterministic millisecond clock; every read advances by ``step``."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 1):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        return value


def make_message(i: int, *, role: str = "user", ts: int | None = None, content: str | None = None) -> Message:
    return Message(
        id=f"m{i}",
        role=role,
        content=content if content is not None else f"message {i}",
        timestamp=ts if ts is not None else 1000 + i,
    )


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the root directory of the project."""
    return Path(__file__).resolve().parent.parent


@pytest.fixture(scope="function")
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture(scope="function")
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture(scope="function")
def tmp_data_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for the disk store during tests."""
    d = tmp_path / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run with a clean environment (no leftover vars)."""
    for var in list(os.environ):
        if var.startswith("CONVERSATION_HISTORY"):
            monkeypatch.delenv(var, raising=False)
    yield
