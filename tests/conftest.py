"""Pytest fixtures for XHE kernel tests.

Every kernel built here uses an explicit config, an in-memory store and a
journal under tmp_path, so tests never touch the project directory.
"""

from __future__ import annotations

# Load environment variables from .env before any tests run
from dotenv import load_dotenv

load_dotenv()

from pathlib import Path
from typing import Any, Iterable, Mapping

import pytest

from xhe.config_schema import AppConfig
from xhe.kernel import Kernel, MemoryStore, ResetJournal


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (real SQLite files, many operations)"
    )


class RecordingStore(MemoryStore):
    """MemoryStore that remembers every save_many call."""

    def __init__(self) -> None:
        super().__init__()
        self.commits: list[tuple[set[str], set[str]]] = []

    def save_many(self, values: Mapping[str, Any], delete: Iterable[str] = ()) -> bool:
        deletions = list(delete)
        self.commits.append((set(values), set(deletions)))
        return super().save_many(values, deletions)


@pytest.fixture
def settings(tmp_path: Path) -> AppConfig:
    """Default config with file paths pointed at tmp_path."""
    return AppConfig.model_validate({
        "storage": {"path": str(tmp_path / "kernel.db")},
        "journal": {"path": str(tmp_path / "journal.jsonl")},
    })


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def journal(settings: AppConfig) -> ResetJournal:
    return ResetJournal(settings.journal.path)


@pytest.fixture
def kernel(store: RecordingStore, settings: AppConfig, journal: ResetJournal) -> Kernel:
    """A freshly bootstrapped kernel (KERNEL_INIT already emitted)."""
    return Kernel(store, settings, journal)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "kernel.db"
