"""
Shareable links and inbound link resolution.

A link carries exactly one of five query parameters. On start-up they are
tried in a fixed order and the first one that yields a usable session wins:

    s        remote session token
    r        remote report token
    data     self-contained embedded token
    report   legacy report id, matched against the local slot
    session  legacy session id, matched against the local slot
"""

import logging
from dataclasses import dataclass
from typing import Callable, Mapping
from urllib.parse import urlencode

from soul_match.domain.models import SessionRecord
from soul_match.repositories.local_slot import DEFAULT_CLIENT_ID, LocalSessionSlot
from soul_match.services import session_codec
from soul_match.services.session_store import FallbackSessionStore, SaveReceipt, Transport

logger = logging.getLogger(__name__)

PARAM_SESSION_TOKEN = "s"
PARAM_REPORT_TOKEN = "r"
PARAM_EMBEDDED = "data"
PARAM_LEGACY_REPORT = "report"
PARAM_LEGACY_SESSION = "session"

RESOLUTION_ORDER = (
    PARAM_SESSION_TOKEN,
    PARAM_REPORT_TOKEN,
    PARAM_EMBEDDED,
    PARAM_LEGACY_REPORT,
    PARAM_LEGACY_SESSION,
)


@dataclass(frozen=True)
class ResolvedLink:
    param: str
    record: SessionRecord


def is_usable(record: SessionRecord | None) -> bool:
    return record is not None and bool(record.session_id) and record.has_participant


class LinkBuilder:
    def __init__(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")

    def _link(self, param: str, value: str) -> str:
        return f"{self._base_url}/?{urlencode({param: value})}"

    def share_link(self, receipt: SaveReceipt) -> str:
        if receipt.transport is Transport.REMOTE:
            return self._link(PARAM_SESSION_TOKEN, receipt.key)
        return self._link(PARAM_EMBEDDED, receipt.key)

    def report_link(self, receipt: SaveReceipt) -> str:
        if receipt.transport is Transport.REMOTE:
            return self._link(PARAM_REPORT_TOKEN, receipt.key)
        return self._link(PARAM_EMBEDDED, receipt.key)


class LinkResolver:
    """Ordered resolution attempts; each returns a record or None.

    Legacy ``report``/``session`` ids only match the requesting client's own slot.
    """

    def __init__(self, store: FallbackSessionStore, local_slot: LocalSessionSlot) -> None:
        self._store = store
        self._local_slot = local_slot
        self._attempts: dict[str, Callable[[str, str], SessionRecord | None]] = {
            PARAM_SESSION_TOKEN: self._from_remote,
            PARAM_REPORT_TOKEN: self._from_remote,
            PARAM_EMBEDDED: self._from_embedded,
            PARAM_LEGACY_REPORT: self._from_local_report,
            PARAM_LEGACY_SESSION: self._from_local_session,
        }

    def resolve(self, params: Mapping[str, str], client_id: str = DEFAULT_CLIENT_ID) -> ResolvedLink | None:
        for param in RESOLUTION_ORDER:
            value = (params.get(param) or "").strip()
            if not value:
                continue
            record = self._attempts[param](value, client_id)
            if is_usable(record):
                logger.info("Resolved session %s from '%s' link parameter", record.session_id, param)
                return ResolvedLink(param=param, record=record)
            logger.info("Link parameter '%s' did not yield a usable session", param)
        return None

    def _from_remote(self, key: str, client_id: str) -> SessionRecord | None:
        record = self._store.load(key, Transport.REMOTE)
        if record is None:
            # the sender may have fallen back to an embedded token under the same parameter
            record = session_codec.decode(key).record
        return record

    def _from_embedded(self, token: str, client_id: str) -> SessionRecord | None:
        return session_codec.decode(token).record

    def _from_local_report(self, report_id: str, client_id: str) -> SessionRecord | None:
        saved = self._local_slot.load(client_id)
        if saved and saved.session_id == report_id and saved.is_complete:
            return saved
        return None

    def _from_local_session(self, session_id: str, client_id: str) -> SessionRecord | None:
        saved = self._local_slot.load(client_id)
        if saved and saved.session_id == session_id:
            return saved
        return None
