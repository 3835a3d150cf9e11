"""Digest producer: concatenate → summarize → persist → notify."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from recap.errors import NotificationError, SummarizationError, bounded
from recap.storage.db import DatabaseManager
from recap.storage.models import Digest, Summary

logger = logging.getLogger(__name__)


class Summarizer(Protocol):
    """Anything that condenses text (see :class:`LLMSummarizer`)."""

    async def summarize(self, text: str) -> str:
        """Return the condensed text or raise SummarizationError."""
        ...


class Notifier(Protocol):
    """Anything that announces a digest (see :class:`WebhookNotifier`)."""

    async def notify(self, digest_text: str) -> None:
        """Deliver the digest or raise NotificationError."""
        ...


@dataclass
class ProducedDigest:
    """A committed digest and whether its announcement went out."""

    digest: Digest
    notified: bool


class DigestProducer:
    """Fold a non-empty pending set into one persisted, announced digest.

    Summarization and persistence failures propagate as
    :class:`SummarizationError` / :class:`StorageWriteError` so the caller can
    abort the cycle. Notification failures never propagate: the digest is
    already committed when the announcement is attempted.
    """

    def __init__(
        self,
        db: DatabaseManager,
        summarizer: Summarizer,
        notifier: Notifier,
        config: Dict[str, Any],
    ) -> None:
        self.db = db
        self.summarizer = summarizer
        self.notifier = notifier
        timeouts = config.get("timeouts", {})
        self.summarize_timeout = timeouts.get("summarize_seconds")
        self.notify_timeout = timeouts.get("notify_seconds")

    @staticmethod
    def build_input(summaries: Sequence[Summary]) -> Tuple[str, List[int]]:
        """Join summary texts with single spaces, keeping the given order."""
        text = " ".join(s.text for s in summaries)
        return text, [s.id for s in summaries]

    async def produce(
        self, summaries: Sequence[Summary], at: Optional[datetime] = None
    ) -> ProducedDigest:
        """Summarize, commit and announce ``summaries`` as one digest.

        ``at`` is the digest timestamp to record (see
        :meth:`DatabaseManager.insert_digest`); it defaults to commit time.
        """
        if not summaries:
            raise ValueError("produce() needs at least one summary")

        text, summary_ids = self.build_input(summaries)
        digest_text = await self.summarize(text)
        logger.info("Obtained a summarized daily digest (%d chars)", len(digest_text))

        digest = await self.commit(digest_text, summary_ids, at)
        logger.info(
            "Saved daily digest %d covering %d summaries", digest.id, len(summary_ids)
        )

        notified = await self.announce(digest)
        return ProducedDigest(digest=digest, notified=notified)

    async def summarize(self, text: str) -> str:
        return await bounded(
            self.summarizer.summarize(text),
            self.summarize_timeout,
            SummarizationError,
            "Summarization",
        )

    async def commit(
        self, digest_text: str, summary_ids: Sequence[int], at: Optional[datetime] = None
    ) -> Digest:
        # Bounded by SQLite's busy timeout, not wait_for: a commit already
        # running on the sqlite thread cannot be cancelled.
        return await self.db.insert_digest(digest_text, summary_ids, at=at)

    async def announce(self, digest: Digest) -> bool:
        """Best-effort notification. Returns True if delivered."""
        try:
            await bounded(
                self.notifier.notify(digest.text),
                self.notify_timeout,
                NotificationError,
                "Webhook notification",
            )
        except NotificationError as e:
            logger.warning("Daily digest %d not announced: %s", digest.id, e)
            return False
        except Exception:
            logger.exception("Notifier crashed while announcing daily digest %d", digest.id)
            return False
        logger.info("Announced daily digest %d", digest.id)
        return True
