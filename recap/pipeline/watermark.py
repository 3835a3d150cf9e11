"""Watermark resolution and pending-set loading.

The watermark is the timestamp of the most recent digest. Summaries at or
after it are pending. In ``exclusive`` mode the boundary is instead the
highest summary id already covered by a digest, which keeps covered sets
strictly disjoint when several summaries share a timestamp.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from recap.errors import StorageReadError, bounded
from recap.storage.db import DatabaseManager
from recap.storage.models import Summary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Watermark:
    """Boundary between recapped and pending summaries."""

    digest_id: int
    timestamp: datetime
    last_summary_id: Optional[int] = None


class WatermarkResolver:
    """Find the boundary left by the last completed digest."""

    def __init__(self, db: DatabaseManager, config: Dict[str, Any]) -> None:
        self.db = db
        self.mode: str = config.get("watermark", {}).get("mode", "inclusive")
        self.timeout = config.get("timeouts", {}).get("storage_seconds")

    async def resolve(self) -> Optional[Watermark]:
        """Return None when no digest has ever been produced.

        Raises StorageReadError if the store cannot be queried.
        """
        last = await bounded(
            self.db.get_last_digest(), self.timeout, StorageReadError, "Watermark query"
        )
        if last is None:
            return None

        last_summary_id = None
        if self.mode == "exclusive":
            last_summary_id = await bounded(
                self.db.get_max_covered_summary_id(),
                self.timeout,
                StorageReadError,
                "Covered-id query",
            )
        return Watermark(
            digest_id=last.id,
            timestamp=last.timestamp,
            last_summary_id=last_summary_id,
        )


class PendingSetLoader:
    """Fetch the summaries a new digest should cover, oldest first."""

    def __init__(self, db: DatabaseManager, config: Dict[str, Any]) -> None:
        self.db = db
        self.mode: str = config.get("watermark", {}).get("mode", "inclusive")
        self.timeout = config.get("timeouts", {}).get("storage_seconds")

    async def load(self, watermark: Optional[Watermark]) -> List[Summary]:
        if watermark is None:
            query = self.db.get_summaries()
        elif self.mode == "exclusive" and watermark.last_summary_id is not None:
            query = self.db.get_summaries(after_id=watermark.last_summary_id)
        else:
            # Inclusive: a summary stamped exactly at the watermark is re-read
            query = self.db.get_summaries(since=watermark.timestamp)

        summaries = await bounded(query, self.timeout, StorageReadError, "Pending-set query")
        logger.debug(
            "Loaded %d pending summaries (watermark=%s, mode=%s)",
            len(summaries),
            watermark.timestamp.isoformat() if watermark else "none",
            self.mode,
        )
        return summaries
