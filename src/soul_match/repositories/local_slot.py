import json
import logging
import sqlite3
from datetime import timedelta

from soul_match.config import AppConfig
from soul_match.domain.models import SessionRecord, format_timestamp, utc_now
from soul_match.services.session_codec import normalize

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_ID = "device"


class LocalSessionSlot:
    """One slot per client holding that client's most recent session."""

    def __init__(self, config: AppConfig) -> None:
        self._db_path = config.local_slot_path
        self._ttl = timedelta(hours=config.session_ttl_hours)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_schema(self) -> None:
        conn = self._connect()
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS local_slots (
                client_id TEXT PRIMARY KEY,
                session_data TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        conn.commit()
        conn.close()

    def save(self, record: SessionRecord, client_id: str = DEFAULT_CLIENT_ID) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO local_slots (client_id, session_data, created_at) VALUES (?, ?, ?)
                ON CONFLICT(client_id) DO UPDATE SET
                    session_data = excluded.session_data,
                    created_at = excluded.created_at
                """,
                (client_id, json.dumps(record.to_dict(), ensure_ascii=False), format_timestamp(record.created_at)),
            )
            conn.commit()
        except sqlite3.Error as exc:
            logger.error("Failed to save local session slot for %s: %s", client_id, exc)
        finally:
            conn.close()

    def load(self, client_id: str = DEFAULT_CLIENT_ID) -> SessionRecord | None:
        conn = self._connect()
        try:
            row = conn.execute("SELECT session_data FROM local_slots WHERE client_id = ?", (client_id,)).fetchone()
        except sqlite3.Error as exc:
            logger.error("Failed to load local session slot for %s: %s", client_id, exc)
            return None
        finally:
            conn.close()
        if row is None:
            return None

        try:
            payload = json.loads(row["session_data"])
        except json.JSONDecodeError:
            logger.warning("Local session slot for %s is corrupt, clearing it", client_id)
            self.clear(client_id)
            return None
        record = normalize(payload).record if isinstance(payload, dict) else None
        if record is None:
            self.clear(client_id)
            return None
        if utc_now() - record.created_at >= self._ttl:
            logger.info("Local session %s is older than %s, clearing it", record.session_id, self._ttl)
            self.clear(client_id)
            return None
        return record

    def clear(self, client_id: str = DEFAULT_CLIENT_ID) -> None:
        conn = self._connect()
        conn.execute("DELETE FROM local_slots WHERE client_id = ?", (client_id,))
        conn.commit()
        conn.close()
