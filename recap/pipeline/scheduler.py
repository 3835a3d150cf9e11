"""Recap scheduler: one sequential read → summarize → write → notify cycle per tick.

The scheduler holds no state between cycles. Each cycle rebuilds the
watermark and pending set from storage, so a restart loses at most the
cycle that was in flight.

Usage:
    scheduler = RecapScheduler(db, config)
    await scheduler.run()
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from recap.digest.producer import DigestProducer, Notifier, Summarizer
from recap.digest.summarizer import LLMSummarizer
from recap.errors import RecapError, StorageWriteError, SummarizationError
from recap.notify.webhook import WebhookNotifier
from recap.pipeline.watermark import PendingSetLoader, WatermarkResolver
from recap.storage.db import DatabaseManager
from recap.storage.models import utcnow

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 86400


class CycleStage(str, Enum):
    RESOLVING_WATERMARK = "resolving_watermark"
    LOADING_PENDING = "loading_pending"
    SUMMARIZING = "summarizing"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"


class CycleOutcome(str, Enum):
    COMPLETED = "completed"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass
class CycleResult:
    """What one cycle did. Informational only; cycles never raise."""

    outcome: CycleOutcome
    pending_count: int = 0
    digest_id: Optional[int] = None
    covered_summary_ids: List[int] = field(default_factory=list)
    notified: bool = False
    failed_stage: Optional[CycleStage] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.outcome != CycleOutcome.FAILED


# Failures raised from inside DigestProducer.produce identify their own stage
_PRODUCER_FAILURE_STAGE = {
    SummarizationError: CycleStage.SUMMARIZING,
    StorageWriteError: CycleStage.PERSISTING,
}


class RecapScheduler:
    """Drive recap cycles on a fixed interval, strictly one at a time."""

    def __init__(
        self,
        db: DatabaseManager,
        config: Dict[str, Any],
        summarizer: Optional[Summarizer] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.db = db
        self.interval: float = config.get("scheduler", {}).get("interval_seconds", DEFAULT_INTERVAL)
        self.resolver = WatermarkResolver(db, config)
        self.loader = PendingSetLoader(db, config)
        self.producer = DigestProducer(
            db,
            summarizer if summarizer is not None else LLMSummarizer(config),
            notifier if notifier is not None else WebhookNotifier(config),
            config,
        )
        self._stop = asyncio.Event()
        self._cycle_lock = asyncio.Lock()

    async def run_cycle(self) -> CycleResult:
        """Run one full cycle. Failures are logged and reported, never raised."""
        async with self._cycle_lock:
            t0 = time.monotonic()
            result = await self._cycle()
            result.duration_seconds = time.monotonic() - t0
            return result

    async def _cycle(self) -> CycleResult:
        logger.info("Running daily recap of summaries...")
        stage = CycleStage.RESOLVING_WATERMARK
        try:
            watermark = await self.resolver.resolve()

            stage = CycleStage.LOADING_PENDING
            # The new digest is stamped with the time the pending set was read,
            # so anything written after that is at or past the next watermark.
            read_at = utcnow()
            pending = await self.loader.load(watermark)
            if not pending:
                logger.info("No summaries to recap")
                return CycleResult(outcome=CycleOutcome.EMPTY)

            stage = CycleStage.SUMMARIZING
            produced = await self.producer.produce(pending, at=read_at)
        except RecapError as e:
            stage = _PRODUCER_FAILURE_STAGE.get(type(e), stage)
            logger.error("Recap cycle aborted while %s: %s", stage.value, e)
            return CycleResult(
                outcome=CycleOutcome.FAILED,
                failed_stage=stage,
                error=str(e),
            )
        except Exception as e:
            logger.exception("Unexpected error while %s; cycle aborted", stage.value)
            return CycleResult(
                outcome=CycleOutcome.FAILED,
                failed_stage=stage,
                error=f"{type(e).__name__}: {e}",
            )

        digest = produced.digest
        logger.info(
            "Recap cycle complete: digest %d covers %d summaries (notified=%s)",
            digest.id,
            len(digest.covered_summary_ids),
            produced.notified,
        )
        return CycleResult(
            outcome=CycleOutcome.COMPLETED,
            pending_count=len(pending),
            digest_id=digest.id,
            covered_summary_ids=list(digest.covered_summary_ids),
            notified=produced.notified,
        )

    async def run(self, max_cycles: Optional[int] = None) -> int:
        """Tick immediately, then every ``interval`` seconds until stopped.

        The interval is measured from the start of each cycle. A cycle that
        overruns it is followed immediately by the next one, never overlapped.
        Returns the number of cycles run.
        """
        self._stop.clear()
        cycles = 0
        logger.info("Recap scheduler started (interval=%ss)", self.interval)

        while not self._stop.is_set():
            started = time.monotonic()
            await self.run_cycle()
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break

            delay = max(0.0, self.interval - (time.monotonic() - started))
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        logger.info("Recap scheduler stopped after %d cycle(s)", cycles)
        return cycles

    def stop(self) -> None:
        """Ask :meth:`run` to return at the next tick boundary."""
        self._stop.set()
