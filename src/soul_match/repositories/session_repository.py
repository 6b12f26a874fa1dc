import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import requests

from soul_match.config import AppConfig
from soul_match.domain.models import format_timestamp, parse_timestamp
from soul_match.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class SessionRow:
    short_id: str
    session_data: dict[str, Any]
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class SessionTable(ABC):
    """Keyed remote table of session payloads: upsert, select and expiry sweep."""

    @abstractmethod
    def upsert(self, row: SessionRow) -> None:
        raise NotImplementedError

    @abstractmethod
    def select(self, short_id: str) -> SessionRow | None:
        raise NotImplementedError

    @abstractmethod
    def delete_expired(self, now: datetime) -> int:
        raise NotImplementedError


class SqliteSessionTable(SessionTable):
    """Server-local session table (SQLite), same schema as the hosted one."""

    def __init__(self, config: AppConfig) -> None:
        self._db_path = config.sessions_db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_schema(self) -> None:
        conn = self._connect()
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sessions (
                short_id TEXT PRIMARY KEY,
                session_data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                expires_at TEXT NOT NULL
            )
            """
        )
        conn.commit()
        conn.close()

    def upsert(self, row: SessionRow) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute(
                    """
                    INSERT INTO sessions (short_id, session_data, created_at, expires_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(short_id) DO UPDATE SET
                        session_data = excluded.session_data,
                        expires_at = excluded.expires_at
                    """,
                    (
                        row.short_id,
                        json.dumps(row.session_data, ensure_ascii=False),
                        format_timestamp(row.created_at),
                        format_timestamp(row.expires_at),
                    ),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"SQLite upsert failed: {exc}") from exc

    def select(self, short_id: str) -> SessionRow | None:
        try:
            conn = self._connect()
            try:
                r = conn.execute("SELECT * FROM sessions WHERE short_id = ?", (short_id,)).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"SQLite select failed: {exc}") from exc
        if r is None:
            return None
        try:
            return SessionRow(
                short_id=r["short_id"],
                session_data=json.loads(r["session_data"]),
                created_at=parse_timestamp(r["created_at"]),
                expires_at=parse_timestamp(r["expires_at"]),
            )
        except (ValueError, TypeError) as exc:
            raise StoreUnavailableError(f"Corrupt session row {short_id}: {exc}") from exc

    def delete_expired(self, now: datetime) -> int:
        # ISO strings from one timezone sort chronologically
        try:
            conn = self._connect()
            try:
                cursor = conn.execute("DELETE FROM sessions WHERE expires_at < ?", (format_timestamp(now),))
                conn.commit()
                deleted = cursor.rowcount
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"SQLite sweep failed: {exc}") from exc
        return deleted


class SupabaseSessionTable(SessionTable):
    """Hosted session table reached through the Supabase PostgREST endpoint."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        table: str = "sessions",
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self._endpoint = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    @classmethod
    def from_config(cls, config: AppConfig) -> "SupabaseSessionTable":
        return cls(
            base_url=config.supabase_url or "",
            api_key=config.supabase_key or "",
            table=config.supabase_table,
            timeout=config.session_store_timeout,
        )

    def _request(self, method: str, **kwargs: Any) -> requests.Response:
        try:
            response = self._session.request(method, self._endpoint, timeout=self._timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise StoreUnavailableError(f"Supabase {method} failed: {exc}") from exc
        return response

    def upsert(self, row: SessionRow) -> None:
        self._request(
            "POST",
            params={"on_conflict": "short_id"},
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            json={
                "short_id": row.short_id,
                "session_data": row.session_data,
                "created_at": format_timestamp(row.created_at),
                "expires_at": format_timestamp(row.expires_at),
            },
        )

    def select(self, short_id: str) -> SessionRow | None:
        response = self._request(
            "GET",
            params={
                "short_id": f"eq.{short_id}",
                "select": "short_id,session_data,created_at,expires_at",
                "limit": "1",
            },
        )
        try:
            rows = response.json()
            if not rows:
                return None
            r = rows[0]
            return SessionRow(
                short_id=r["short_id"],
                session_data=r["session_data"],
                created_at=parse_timestamp(r["created_at"]),
                expires_at=parse_timestamp(r["expires_at"]),
            )
        except (ValueError, KeyError, TypeError, IndexError) as exc:
            raise StoreUnavailableError(f"Unexpected Supabase payload: {exc}") from exc

    def delete_expired(self, now: datetime) -> int:
        response = self._request(
            "DELETE",
            params={"expires_at": f"lt.{format_timestamp(now)}", "select": "short_id"},
            headers={"Prefer": "return=representation"},
        )
        try:
            return len(response.json())
        except ValueError:
            return 0
