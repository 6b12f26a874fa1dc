import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

from soul_match.config import AppConfig
from soul_match.domain.models import SessionRecord, utc_now
from soul_match.exceptions import StoreUnavailableError
from soul_match.repositories.session_repository import (
    SessionRow,
    SessionTable,
    SqliteSessionTable,
    SupabaseSessionTable,
)
from soul_match.services import session_codec

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=24)


class Transport(str, Enum):
    REMOTE = "remote"
    EMBEDDED = "embedded"


@dataclass(frozen=True)
class SaveReceipt:
    key: str
    transport: Transport


class SessionStore(ABC):
    transport: Transport

    @abstractmethod
    def save(self, record: SessionRecord, preferred_id: str | None = None) -> str:
        """Persist the record and return the key a link should carry."""
        raise NotImplementedError

    @abstractmethod
    def load(self, key: str) -> SessionRecord | None:
        raise NotImplementedError


class RemoteSessionStore(SessionStore):
    transport = Transport.REMOTE

    def __init__(self, table: SessionTable, ttl: timedelta = DEFAULT_TTL) -> None:
        self._table = table
        self._ttl = ttl

    def save(self, record: SessionRecord, preferred_id: str | None = None) -> str:
        short_id = preferred_id or record.session_id
        self._table.upsert(
            SessionRow(
                short_id=short_id,
                session_data=record.to_dict(),
                created_at=record.created_at,
                expires_at=record.created_at + self._ttl,
            )
        )
        logger.info("Saved session %s to remote store", short_id)
        return short_id

    def load(self, key: str) -> SessionRecord | None:
        try:
            row = self._table.select(key)
        except StoreUnavailableError as exc:
            logger.warning("Remote lookup of %s failed: %s", key, exc)
            return None
        if row is None:
            return None
        if row.is_expired(utc_now()):
            logger.info("Remote session %s expired at %s", key, row.expires_at.isoformat())
            return None
        if not isinstance(row.session_data, dict):
            return None
        return session_codec.normalize(row.session_data).record

    def sweep_expired(self) -> int:
        deleted = self._table.delete_expired(utc_now())
        logger.info("Swept %d expired sessions", deleted)
        return deleted


class EmbeddedTokenStore(SessionStore):
    """The link carries the whole record; the token is the key."""

    transport = Transport.EMBEDDED

    def save(self, record: SessionRecord, preferred_id: str | None = None) -> str:
        return session_codec.encode(record)

    def load(self, key: str) -> SessionRecord | None:
        return session_codec.decode(key).record


class FallbackSessionStore:
    """Tries each store in order; the first successful save wins."""

    def __init__(self, stores: list[SessionStore]) -> None:
        if not stores:
            raise ValueError("FallbackSessionStore needs at least one store")
        self._stores = stores

    @property
    def stores(self) -> list[SessionStore]:
        return list(self._stores)

    def store_for(self, transport: Transport) -> SessionStore | None:
        for store in self._stores:
            if store.transport is transport:
                return store
        return None

    def save(self, record: SessionRecord, preferred_id: str | None = None) -> SaveReceipt:
        last_error: StoreUnavailableError | None = None
        for store in self._stores:
            try:
                key = store.save(record, preferred_id)
            except StoreUnavailableError as exc:
                logger.warning("%s store failed, trying next transport: %s", store.transport.value, exc)
                last_error = exc
                continue
            return SaveReceipt(key=key, transport=store.transport)
        raise StoreUnavailableError(f"Every session store failed: {last_error}")

    def load(self, key: str, transport: Transport = Transport.REMOTE) -> SessionRecord | None:
        store = self.store_for(transport)
        return store.load(key) if store else None

    def sweep_expired(self) -> int:
        deleted = 0
        for store in self._stores:
            if isinstance(store, RemoteSessionStore):
                try:
                    deleted += store.sweep_expired()
                except StoreUnavailableError as exc:
                    logger.warning("Expired-session sweep failed: %s", exc)
        return deleted


def build_session_store(config: AppConfig) -> FallbackSessionStore:
    ttl = timedelta(hours=config.session_ttl_hours)
    backend = config.session_store_backend
    stores: list[SessionStore] = []

    if backend in ("auto", "supabase") and config.supabase_configured:
        stores.append(RemoteSessionStore(SupabaseSessionTable.from_config(config), ttl))
    elif backend in ("auto", "sqlite"):
        table = SqliteSessionTable(config)
        table.init_schema()
        stores.append(RemoteSessionStore(table, ttl))
    else:
        logger.info("Remote session store disabled (backend=%s); links will embed the session", backend)

    stores.append(EmbeddedTokenStore())
    return FallbackSessionStore(stores)
