"""
Unit tests for the session tables, the store fallback chain and the local slot.
"""

import sqlite3
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import requests

from conftest import choice, make_config
from soul_match.domain.models import ParticipantRecord, SessionRecord, utc_now
from soul_match.exceptions import StoreUnavailableError
from soul_match.repositories.handoff_state_repository import HandoffStateRepository
from soul_match.repositories.session_repository import SessionRow, SqliteSessionTable, SupabaseSessionTable
from soul_match.services import session_codec
from soul_match.services.session_store import (
    EmbeddedTokenStore,
    FallbackSessionStore,
    RemoteSessionStore,
    Transport,
    build_session_store,
)


def _record(session_id: str = "sess00001", created_at=None) -> SessionRecord:
    return SessionRecord(
        session_id=session_id,
        created_at=created_at or utc_now(),
        participant1=ParticipantRecord(
            participant_id="user1",
            name="Ana",
            selection=(choice("hiking", "sports", 4),),
            completed=True,
            submitted_at=utc_now(),
        ),
        participant2_name="Ben",
    )


@pytest.fixture
def sqlite_table(config):
    table = SqliteSessionTable(config)
    table.init_schema()
    return table


def test_remote_store_saves_and_loads(sqlite_table):
    store = RemoteSessionStore(sqlite_table)
    record = _record()

    key = store.save(record)

    assert key == record.session_id
    assert store.load(key) == record


def test_remote_upsert_overwrites_same_key(sqlite_table):
    store = RemoteSessionStore(sqlite_table)
    first = _record()
    second = SessionRecord(
        session_id=first.session_id,
        created_at=first.created_at,
        participant1=first.participant1,
        participant2_name="Benjamin",
    )

    store.save(first)
    store.save(second)

    assert store.load(first.session_id).participant2_name == "Benjamin"


def test_remote_store_refuses_expired_rows(sqlite_table):
    store = RemoteSessionStore(sqlite_table, ttl=timedelta(hours=24))
    stale = _record(created_at=utc_now() - timedelta(hours=25))

    store.save(stale)

    assert store.load(stale.session_id) is None
    assert store.sweep_expired() == 1
    assert sqlite_table.select(stale.session_id) is None


def test_corrupt_sqlite_row_reads_as_unavailable(sqlite_table, config):
    conn = sqlite3.connect(config.sessions_db_path)
    conn.execute(
        "INSERT INTO sessions (short_id, session_data, created_at, expires_at) VALUES (?, ?, ?, ?)",
        ("broken01", "{not json", "2025-10-19T12:00:00+00:00", "2099-01-01T00:00:00+00:00"),
    )
    conn.commit()
    conn.close()

    with pytest.raises(StoreUnavailableError):
        sqlite_table.select("broken01")
    assert RemoteSessionStore(sqlite_table).load("broken01") is None


def test_remote_store_load_returns_none_when_unreachable():
    table = MagicMock()
    table.select.side_effect = StoreUnavailableError("down")

    assert RemoteSessionStore(table).load("anything") is None


def test_fallback_uses_embedded_token_when_remote_fails():
    table = MagicMock()
    table.upsert.side_effect = StoreUnavailableError("timeout")
    store = FallbackSessionStore([RemoteSessionStore(table), EmbeddedTokenStore()])
    record = _record()

    receipt = store.save(record)

    assert receipt.transport is Transport.EMBEDDED
    assert session_codec.decode(receipt.key).record == record


def test_fallback_prefers_remote(sqlite_table):
    store = FallbackSessionStore([RemoteSessionStore(sqlite_table), EmbeddedTokenStore()])

    receipt = store.save(_record(), preferred_id="custom01")

    assert receipt.transport is Transport.REMOTE
    assert receipt.key == "custom01"
    assert store.load("custom01").session_id == "sess00001"


def test_fallback_requires_a_store():
    with pytest.raises(ValueError):
        FallbackSessionStore([])


def test_build_session_store_without_remote(tmp_path):
    store = build_session_store(make_config(tmp_path, session_store_backend="none"))

    assert [s.transport for s in store.stores] == [Transport.EMBEDDED]


def test_build_session_store_prefers_supabase_when_configured(tmp_path):
    config = make_config(
        tmp_path,
        session_store_backend="auto",
        supabase_url="https://project.supabase.co",
        supabase_key="anon-key",
    )

    store = build_session_store(config)

    assert [s.transport for s in store.stores] == [Transport.REMOTE, Transport.EMBEDDED]
    assert not (tmp_path / "sessions.db").exists()


class TestSupabaseSessionTable:
    def _table(self, http):
        return SupabaseSessionTable(base_url="https://project.supabase.co/", api_key="anon", session=http)

    def test_upsert_posts_merge_duplicates(self):
        http = MagicMock()
        table = self._table(http)
        record = _record()

        table.upsert(
            SessionRow(
                short_id="abc",
                session_data=record.to_dict(),
                created_at=record.created_at,
                expires_at=record.created_at + timedelta(hours=24),
            )
        )

        method, url = http.request.call_args.args
        kwargs = http.request.call_args.kwargs
        assert method == "POST"
        assert url == "https://project.supabase.co/rest/v1/sessions"
        assert kwargs["params"] == {"on_conflict": "short_id"}
        assert "merge-duplicates" in kwargs["headers"]["Prefer"]
        assert kwargs["json"]["short_id"] == "abc"
        assert kwargs["timeout"] == 5.0

    def test_select_parses_row(self):
        record = _record()
        http = MagicMock()
        http.request.return_value.json.return_value = [
            {
                "short_id": "abc",
                "session_data": record.to_dict(),
                "created_at": record.created_at.isoformat(),
                "expires_at": (record.created_at + timedelta(hours=24)).isoformat(),
            }
        ]

        row = self._table(http).select("abc")

        assert row.short_id == "abc"
        assert http.request.call_args.kwargs["params"]["short_id"] == "eq.abc"
        assert RemoteSessionStore(self._table(http)).load("abc") == record

    def test_select_accepts_trimmed_fractional_seconds(self):
        record = _record()
        http = MagicMock()
        http.request.return_value.json.return_value = [
            {
                "short_id": "abc",
                "session_data": record.to_dict(),
                "created_at": "2025-10-19T12:00:00.12345+00:00",
                "expires_at": "2025-10-20T12:00:00.5+00:00",
            }
        ]

        row = self._table(http).select("abc")

        assert row.created_at == datetime(2025, 10, 19, 12, 0, 0, 123450, tzinfo=timezone.utc)
        assert row.expires_at == datetime(2025, 10, 20, 12, 0, 0, 500000, tzinfo=timezone.utc)

    def test_select_missing_row(self):
        http = MagicMock()
        http.request.return_value.json.return_value = []

        assert self._table(http).select("nope") is None

    def test_transport_errors_become_store_unavailable(self):
        http = MagicMock()
        http.request.side_effect = requests.ConnectionError("no route to host")

        with pytest.raises(StoreUnavailableError):
            self._table(http).upsert(
                SessionRow(short_id="x", session_data={}, created_at=utc_now(), expires_at=utc_now())
            )

    def test_http_errors_become_store_unavailable(self):
        http = MagicMock()
        http.request.return_value.raise_for_status.side_effect = requests.HTTPError("401")

        with pytest.raises(StoreUnavailableError):
            self._table(http).select("abc")


class TestLocalSessionSlot:
    def test_save_supersedes_previous(self, local_slot):
        local_slot.save(_record("first0001"))
        local_slot.save(_record("second001"))

        assert local_slot.load().session_id == "second001"

    def test_clear(self, local_slot):
        local_slot.save(_record())
        local_slot.clear()

        assert local_slot.load() is None

    def test_expired_slot_is_cleared(self, local_slot):
        local_slot.save(_record(created_at=utc_now() - timedelta(hours=24, minutes=1)))

        assert local_slot.load() is None

    def test_slots_are_kept_per_client(self, local_slot):
        local_slot.save(_record("alice0001"), "alice")
        local_slot.save(_record("carol0001"), "carol")

        assert local_slot.load("alice").session_id == "alice0001"
        assert local_slot.load("carol").session_id == "carol0001"

        local_slot.clear("carol")

        assert local_slot.load("carol") is None
        assert local_slot.load("alice").session_id == "alice0001"


class TestHandoffStateRepository:
    @pytest.fixture
    def states(self, config):
        repo = HandoffStateRepository(config)
        repo.init_schema()
        return repo

    def test_save_and_load_per_client(self, states):
        states.save("alice", {"stage": "awaiting_share", "participant1Name": "Ana"})
        states.save("alice", {"stage": "results_ready"})

        assert states.load("alice") == {"stage": "results_ready"}
        assert states.load("carol") is None

    def test_delete_stale(self, states):
        states.save("alice", {"stage": "welcome"})

        assert states.delete_stale(utc_now() - timedelta(hours=1)) == 0
        assert states.delete_stale(utc_now() + timedelta(seconds=1)) == 1
        assert states.load("alice") is None
