"""SQLite storage for composed email drafts."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from email_drafter.processing.types import ComposedEmail
from email_drafter.storage.models import ALL_TABLES, DRAFT_COLUMNS, DraftRecord

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = Path("data/drafts.db")


class DraftDatabase:
    """Wraps SQLite for create/read/update/delete/list of email drafts.

    Designed for single-threaded use from the CLI or an event loop; calls
    are synchronous but fast enough for a personal drafts folder.

    Usage::

        db = DraftDatabase()
        draft = db.create(to="bob@example.com", subject="Hello")
        recent = db.list_recent(10)
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    def close(self) -> None:
        """Close the underlying database connection."""
        self._conn.close()

    # ── Write API ───────────────────────────────────────────────────────────────

    def create(
        self,
        to: str,
        subject: str,
        cc: str = "",
        bcc: str = "",
        body: str = "",
    ) -> DraftRecord:
        """Insert a draft and return the stored row.

        Raises:
            ValueError: if ``to`` or ``subject`` is empty.
        """
        if not to.strip() or not subject.strip():
            raise ValueError("To and Subject are required")
        with self._conn:
            cursor = self._conn.execute(
                'INSERT INTO drafts ("to", cc, bcc, subject, body) VALUES (?, ?, ?, ?, ?)',
                (to, cc, bcc, subject, body),
            )
        draft_id = cursor.lastrowid
        logger.info("draft %s created (to=%s)", draft_id, to)
        record = self.get(int(draft_id or 0))
        assert record is not None
        return record

    def create_from_composed(
        self,
        composed: ComposedEmail,
        to: str,
        cc: str = "",
        bcc: str = "",
    ) -> DraftRecord:
        """Save a generated email as a new draft."""
        return self.create(to=to, subject=composed.subject, cc=cc, bcc=bcc, body=composed.body)

    def update(
        self,
        draft_id: int,
        *,
        to: str = "",
        cc: str = "",
        bcc: str = "",
        subject: str = "",
        body: str = "",
    ) -> DraftRecord | None:
        """Replace a draft's fields. Returns None if draft_id does not exist.

        An empty subject keeps the stored subject; every other field is
        overwritten, so omitted ones are cleared.
        """
        existing = self.get(draft_id)
        if existing is None:
            return None
        with self._conn:
            self._conn.execute(
                'UPDATE drafts SET "to" = ?, cc = ?, bcc = ?, subject = ?, body = ? '
                "WHERE id = ?",
                (to, cc, bcc, subject or existing.subject, body, draft_id),
            )
        return self.get(draft_id)

    def delete(self, draft_id: int) -> bool:
        """Delete a draft. Returns False if it did not exist."""
        with self._conn:
            cursor = self._conn.execute("DELETE FROM drafts WHERE id = ?", (draft_id,))
        return cursor.rowcount > 0

    # ── Read API ────────────────────────────────────────────────────────────────

    def get(self, draft_id: int) -> DraftRecord | None:
        """Return the draft with draft_id, or None if not found."""
        row = self._conn.execute(
            f"SELECT {DRAFT_COLUMNS} FROM drafts WHERE id = ?", (draft_id,)
        ).fetchone()
        return DraftRecord(**dict(row)) if row else None

    def list_recent(self, limit: int = 50) -> list[DraftRecord]:
        """Return up to limit drafts, newest first."""
        rows = self._conn.execute(
            f"SELECT {DRAFT_COLUMNS} FROM drafts ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [DraftRecord(**dict(r)) for r in rows]

    # ── Private ─────────────────────────────────────────────────────────────────

    def _create_tables(self) -> None:
        with self._conn:
            for ddl in ALL_TABLES:
                self._conn.execute(ddl)
