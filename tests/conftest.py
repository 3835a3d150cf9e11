"""Shared fixtures and fakes for the recap tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest

from recap.config import DEFAULTS, merge_config
from recap.errors import NotificationError, SummarizationError
from recap.storage.db import DatabaseManager

T0 = datetime(2025, 1, 15, 8, 0, 0)


def ts(minutes: int) -> datetime:
    """Fixed timestamps relative to T0 so ordering is deterministic."""
    return T0 + timedelta(minutes=minutes)


class FakeSummarizer:
    """Returns a canned reply (or raises) and records every input."""

    def __init__(self, reply: str = "d1", error: Optional[Exception] = None, delay: float = 0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls: List[str] = []

    async def summarize(self, text: str) -> str:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.reply


class RecordingNotifier:
    """Records announced digest texts; optionally fails."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[str] = []

    async def notify(self, digest_text: str) -> None:
        self.calls.append(digest_text)
        if self.error:
            raise self.error


def make_config(**sections: Dict[str, Any]) -> Dict[str, Any]:
    return merge_config(DEFAULTS, sections)


@pytest.fixture
def config() -> Dict[str, Any]:
    return make_config()


@pytest.fixture
def tmp_db(tmp_path):
    """Return a path to a temporary database file."""
    return str(tmp_path / "data" / "recap.db")


@pytest.fixture
async def db(tmp_db):
    """Return an initialized DatabaseManager."""
    manager = DatabaseManager(tmp_db)
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def summarizer() -> FakeSummarizer:
    return FakeSummarizer()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_summarizer() -> FakeSummarizer:
    return FakeSummarizer(error=SummarizationError("503 from summarization API"))


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(error=NotificationError("Webhook returned HTTP 500", status=500))
