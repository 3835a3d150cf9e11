"""Storage layer: SQLite summaries log, daily digests and migrations."""

from recap.storage.db import DatabaseManager
from recap.storage.models import Digest, Summary

__all__ = ["DatabaseManager", "Digest", "Summary"]
