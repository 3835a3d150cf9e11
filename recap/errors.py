"""Exception taxonomy for the recap pipeline.

Each external dependency fails with its own kind so the scheduler can decide
per kind whether a cycle aborts or carries on:

- ``StorageReadError``: watermark or pending-set query failed (cycle-fatal).
- ``StorageWriteError``: digest persistence failed (cycle aborts).
- ``SummarizationError``: the summarization service failed (cycle aborts).
- ``NotificationError``: webhook missing or failed (logged, swallowed).
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, Type, TypeVar

T = TypeVar("T")


class RecapError(Exception):
    """Base class for all recap pipeline errors."""


class ConfigError(RecapError):
    """Invalid configuration value."""


class StorageReadError(RecapError):
    """A read query against the store failed."""


class StorageWriteError(RecapError):
    """A write against the store failed; nothing was committed."""


class SummarizationError(RecapError):
    """Transport, auth or service-side failure of the summarization call."""


class NotificationError(RecapError):
    """The webhook is not configured, unreachable, or returned non-2xx."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


async def bounded(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    error_cls: Type[RecapError],
    what: str,
) -> T:
    """Await with a timeout; expiry raises ``error_cls`` instead of TimeoutError."""
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise error_cls(f"{what} timed out after {timeout}s") from e
