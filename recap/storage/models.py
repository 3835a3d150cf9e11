"""Data models for the recap storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from recap.errors import StorageReadError


@dataclass(frozen=True)
class Summary:
    """One upstream condensation; immutable and append-only."""

    id: int
    text: str
    timestamp: datetime

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Summary:
        return cls(
            id=row["id"],
            text=row["text"],
            timestamp=_row_ts(row, "summaries"),
        )


@dataclass
class Digest:
    """A recap of the summaries pending at the time it was produced."""

    id: int
    text: str
    timestamp: datetime
    covered_summary_ids: List[int] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any], covered: Optional[List[int]] = None) -> Digest:
        return cls(
            id=row["id"],
            text=row["text"],
            timestamp=_row_ts(row, "daily_digests"),
            covered_summary_ids=list(covered or []),
        )


# --- Helpers ---

def utcnow() -> datetime:
    """Naive UTC now, the form every stored timestamp takes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_ts(val: datetime) -> str:
    """Serialize a timestamp as naive-UTC ISO-8601 with microseconds."""
    if val.tzinfo is not None:
        val = val.astimezone(timezone.utc).replace(tzinfo=None)
    return val.isoformat(timespec="microseconds")


def parse_ts(val: Any) -> Optional[datetime]:
    """Parse a timestamp string into naive UTC, or return None."""
    if val is None:
        return None
    if isinstance(val, datetime):
        parsed = val
    else:
        try:
            from dateutil.parser import parse
            parsed = parse(str(val))
        except (ValueError, OverflowError, TypeError):
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _row_ts(row: Dict[str, Any], table: str) -> datetime:
    ts = parse_ts(row["timestamp"])
    if ts is None:
        raise StorageReadError(
            f"Unreadable timestamp {row['timestamp']!r} in {table} row {row['id']}"
        )
    return ts
