"""SQLite-backed snapshots of suggestion sections."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Dict, List, Tuple

from .utils import now_iso

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Persist one JSON array of suggestion records per ``(scope, section)``."""

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self.db_path = str(db_path)
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS suggestion_sections (
                    scope_id TEXT NOT NULL,
                    section_id TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (scope_id, section_id)
                )
                """
            )
            self.conn.commit()

    def save_section(self, scope_id: str, section_id: str, records: List[Dict[str, Any]]) -> None:
        payload = (scope_id, section_id, json.dumps(records, ensure_ascii=False), now_iso())
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                """
                INSERT INTO suggestion_sections (scope_id, section_id, payload, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(scope_id, section_id) DO UPDATE SET
                    payload=excluded.payload,
                    updated_at=excluded.updated_at
                """,
                payload,
            )
            self.conn.commit()
        logger.debug("Saved %d suggestions for %s/%s", len(records), scope_id, section_id)

    def load_section(self, scope_id: str, section_id: str) -> List[Dict[str, Any]]:
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                "SELECT payload FROM suggestion_sections WHERE scope_id = ? AND section_id = ?",
                (scope_id, section_id),
            )
            row = cur.fetchone()
        if not row:
            return []
        try:
            records = json.loads(row["payload"])
        except json.JSONDecodeError as exc:
            logger.warning("Stored suggestions for %s/%s are unreadable: %s", scope_id, section_id, exc)
            return []
        return records if isinstance(records, list) else []

    def delete_section(self, scope_id: str, section_id: str) -> None:
        with closing(self.conn.cursor()) as cur:
            cur.execute(
                "DELETE FROM suggestion_sections WHERE scope_id = ? AND section_id = ?",
                (scope_id, section_id),
            )
            self.conn.commit()

    def sections(self) -> List[Tuple[str, str]]:
        with closing(self.conn.cursor()) as cur:
            cur.execute("SELECT scope_id, section_id FROM suggestion_sections ORDER BY updated_at")
            rows = cur.fetchall()
        return [(row["scope_id"], row["section_id"]) for row in rows]

    def close(self) -> None:
        self.conn.close()
