import base64
import binascii
import json
import logging
import secrets
import string
from dataclasses import dataclass
from enum import Enum
from typing import Any

from soul_match.domain.models import (
    MatchResult,
    ParticipantRecord,
    SessionRecord,
    parse_timestamp,
    utc_now,
)
from soul_match.exceptions import TokenDecodeError

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits

# keys written by the earlier client, mapped to the current names
_LEGACY_KEYS = {
    "user1": "participant1",
    "user2": "participant2",
    "user2Name": "participant2Name",
}


class CompletenessTier(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    MINIMAL = "minimal"
    INVALID = "invalid"


@dataclass(frozen=True)
class DecodedSession:
    tier: CompletenessTier
    record: SessionRecord | None = None

    @property
    def ok(self) -> bool:
        return self.record is not None


INVALID = DecodedSession(CompletenessTier.INVALID)


def generate_session_id(length: int = 9) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def encode(record: SessionRecord) -> str:
    """Sparse JSON -> UTF-8 -> URL-safe base64 without padding."""
    raw = json.dumps(record.to_dict(), ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64_to_text(token: str) -> str:
    cleaned = token.strip().replace(" ", "+")
    cleaned = cleaned.replace("+", "-").replace("/", "_")
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.urlsafe_b64decode(cleaned.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise TokenDecodeError(f"Token is not valid base64 UTF-8: {exc}") from exc


def token_to_payload(token: str) -> dict[str, Any]:
    if not token:
        raise TokenDecodeError("Empty token")
    text = _b64_to_text(token)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TokenDecodeError(f"Token does not contain JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise TokenDecodeError(f"Token payload is {type(payload).__name__}, expected an object")
    return payload


def _canonical(payload: dict[str, Any]) -> dict[str, Any]:
    canonical = dict(payload)
    for legacy, current in _LEGACY_KEYS.items():
        if legacy in canonical and current not in canonical:
            canonical[current] = canonical.pop(legacy)
    return canonical


def classify(payload: dict[str, Any]) -> CompletenessTier:
    data = _canonical(payload)
    if data.get("participant1") and data.get("participant2") and data.get("matchResult"):
        return CompletenessTier.FULL
    if data.get("participant1") and not data.get("participant2"):
        return CompletenessTier.PARTIAL
    if data.get("sessionId") or data.get("participant1") or data.get("participant2"):
        return CompletenessTier.MINIMAL
    return CompletenessTier.INVALID


def _participant(data: dict[str, Any], key: str) -> ParticipantRecord | None:
    raw = data.get(key)
    if not raw:
        return None
    if not isinstance(raw, dict):
        raise TypeError(f"{key} is not an object")
    return ParticipantRecord.from_dict(raw)


def _created_at(data: dict[str, Any]):
    raw = data.get("createdAt")
    return parse_timestamp(raw) if raw else utc_now()


def _optional_name(data: dict[str, Any]) -> str | None:
    name = data.get("participant2Name")
    return name if isinstance(name, str) and name else None


def normalize(payload: dict[str, Any]) -> DecodedSession:
    """Classify a sparse payload and fill every absent field explicitly."""
    tier = classify(payload)
    if tier is CompletenessTier.INVALID:
        return INVALID

    data = _canonical(payload)
    try:
        session_id = str(data.get("sessionId") or generate_session_id())
        created_at = _created_at(data)
        participant1 = _participant(data, "participant1")

        if tier is CompletenessTier.FULL:
            participant2 = _participant(data, "participant2")
            record = SessionRecord(
                session_id=session_id,
                created_at=created_at,
                participant1=participant1,
                participant2=participant2,
                participant2_name=_optional_name(data) or participant2.name,
                match_result=MatchResult.from_dict(data["matchResult"]),
            )
        elif tier is CompletenessTier.PARTIAL:
            record = SessionRecord(
                session_id=session_id,
                created_at=created_at,
                participant1=participant1,
                participant2_name=_optional_name(data),
            )
        else:
            raw_result = data.get("matchResult")
            record = SessionRecord(
                session_id=session_id,
                created_at=created_at,
                participant1=participant1,
                participant2=_participant(data, "participant2"),
                participant2_name=_optional_name(data),
                match_result=MatchResult.from_dict(raw_result) if raw_result else None,
            )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        logger.warning("Discarding %s-tier session payload: %s", tier.value, exc)
        return INVALID

    return DecodedSession(tier=tier, record=record)


def decode(token: str) -> DecodedSession:
    try:
        payload = token_to_payload(token)
    except TokenDecodeError as exc:
        logger.info("Could not decode session token: %s", exc)
        return INVALID
    return normalize(payload)
