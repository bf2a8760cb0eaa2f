"""SQLite table schema and typed row for the draft store."""

from dataclasses import dataclass


# ── DDL ────────────────────────────────────────────────────────────────────────

_CREATE_DRAFTS = """
CREATE TABLE IF NOT EXISTS drafts (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    "to"        TEXT NOT NULL,
    cc          TEXT NOT NULL DEFAULT '',
    bcc         TEXT NOT NULL DEFAULT '',
    subject     TEXT NOT NULL,
    body        TEXT NOT NULL DEFAULT '',
    created_at  TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

_CREATE_DRAFTS_CREATED_INDEX = """
CREATE INDEX IF NOT EXISTS idx_drafts_created_at ON drafts (created_at)
"""

#: All DDL statements in creation order.
ALL_TABLES: list[str] = [
    _CREATE_DRAFTS,
    _CREATE_DRAFTS_CREATED_INDEX,
]

#: Column list for SELECTs; "to" is quoted because it is an SQL keyword.
DRAFT_COLUMNS = 'id, "to", cc, bcc, subject, body, created_at'


@dataclass(frozen=True)
class DraftRecord:
    """A row from the drafts table."""

    id: int
    to: str
    cc: str
    bcc: str
    subject: str
    body: str
    created_at: str
