import json
import sqlite3
from datetime import datetime
from typing import Any

from soul_match.config import AppConfig
from soul_match.domain.models import format_timestamp, utc_now


class HandoffStateRepository:
    """Server-side handoff state per browser client; the cookie only carries the client id."""

    def __init__(self, config: AppConfig) -> None:
        self._db_path = config.local_slot_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_schema(self) -> None:
        conn = self._connect()
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS handoff_states (
                client_id TEXT PRIMARY KEY,
                state TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.commit()
        conn.close()

    def load(self, client_id: str) -> dict[str, Any] | None:
        conn = self._connect()
        row = conn.execute("SELECT state FROM handoff_states WHERE client_id = ?", (client_id,)).fetchone()
        conn.close()
        if row is None:
            return None
        try:
            state = json.loads(row["state"])
        except json.JSONDecodeError:
            return None
        return state if isinstance(state, dict) else None

    def save(self, client_id: str, state: dict[str, Any]) -> None:
        conn = self._connect()
        conn.execute(
            """
            INSERT INTO handoff_states (client_id, state, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(client_id) DO UPDATE SET
                state = excluded.state,
                updated_at = excluded.updated_at
            """,
            (client_id, json.dumps(state, ensure_ascii=False), format_timestamp(utc_now())),
        )
        conn.commit()
        conn.close()

    def delete_stale(self, before: datetime) -> int:
        conn = self._connect()
        cursor = conn.execute("DELETE FROM handoff_states WHERE updated_at < ?", (format_timestamp(before),))
        conn.commit()
        deleted = cursor.rowcount
        conn.close()
        return deleted
