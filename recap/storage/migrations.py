"""Versioned schema migrations for the recap store."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import List, Tuple

logger = logging.getLogger(__name__)

# (version, description, statements)
MigrationStep = Tuple[int, str, List[str]]

SCHEMA_SQL_PATH = Path(__file__).parent / "schema.sql"


def _get_migrations() -> List[MigrationStep]:
    """Return ordered list of migrations."""
    return [
        (
            1,
            "Initial schema: summaries, daily_digests, digest_summaries",
            [SCHEMA_SQL_PATH.read_text(encoding="utf-8")],
        ),
    ]


def get_current_version(conn: sqlite3.Connection) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row and row[0] is not None else 0
    except sqlite3.OperationalError:
        return 0


def apply_migrations(db_path: str) -> int:
    """Apply all pending migrations. Returns the final schema version."""
    conn = sqlite3.connect(db_path)
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")

        current = get_current_version(conn)
        applied = 0

        for version, description, statements in _get_migrations():
            if version <= current:
                continue

            logger.info("Applying migration v%d: %s", version, description)
            try:
                for sql in statements:
                    conn.executescript(sql)
                conn.execute(
                    "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                    (version, description),
                )
                conn.commit()
                applied += 1
            except Exception:
                conn.rollback()
                logger.exception("Migration v%d failed", version)
                raise

        final = get_current_version(conn)
    finally:
        conn.close()

    if applied:
        logger.info("Applied %d migration(s). Schema at v%d", applied, final)
    else:
        logger.debug("Schema up to date at v%d", final)

    return final

