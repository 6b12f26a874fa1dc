from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Category(str, Enum):
    ENTERTAINMENT = "entertainment"
    SPORTS = "sports"
    FOOD = "food"
    TRAVEL = "travel"


CATEGORIES: tuple[str, ...] = tuple(c.value for c in Category)

MIN_IMPORTANCE = 1
MAX_IMPORTANCE = 5


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.isoformat()


def parse_timestamp(value: Any) -> datetime:
    """Accept ISO strings and the epoch-millisecond numbers older links carry."""
    if isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    raise ValueError(f"Not a timestamp: {value!r}")


@dataclass(frozen=True)
class InterestTag:
    id: str
    category: str
    display_name: str
    icon: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "category": self.category, "name": self.display_name, "icon": self.icon}


@dataclass(frozen=True)
class WeightedChoice:
    tag_id: str
    category: str
    importance: int

    def __post_init__(self) -> None:
        if not isinstance(self.tag_id, str) or not self.tag_id:
            raise ValueError("Choice needs a non-empty tag id")
        if isinstance(self.importance, bool) or not isinstance(self.importance, int):
            raise ValueError(f"Importance must be an integer, got {self.importance!r}")
        if not MIN_IMPORTANCE <= self.importance <= MAX_IMPORTANCE:
            raise ValueError(f"Importance {self.importance} outside {MIN_IMPORTANCE}..{MAX_IMPORTANCE}")

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.tag_id, "category": self.category, "importance": self.importance}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WeightedChoice":
        return cls(tag_id=data["id"], category=str(data.get("category", "")), importance=data["importance"])


def normalize_selection(choices: Any) -> tuple[WeightedChoice, ...]:
    """Drop repeated tag ids, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[WeightedChoice] = []
    for choice in choices:
        if choice.tag_id in seen:
            continue
        seen.add(choice.tag_id)
        unique.append(choice)
    return tuple(unique)


@dataclass(frozen=True)
class ParticipantRecord:
    participant_id: str
    name: str
    selection: tuple[WeightedChoice, ...]
    completed: bool
    submitted_at: datetime

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Participant name must not be empty")

    def to_dict(self) -> dict[str, Any]:
        return {
            "participantId": self.participant_id,
            "name": self.name,
            "selection": [choice.to_dict() for choice in self.selection],
            "completed": self.completed,
            "submittedAt": format_timestamp(self.submitted_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ParticipantRecord":
        choices = data.get("selection", data.get("interests", []))
        submitted = data.get("submittedAt", data.get("timestamp"))
        return cls(
            participant_id=data.get("participantId", data.get("userId", "")),
            name=data["name"],
            selection=normalize_selection(WeightedChoice.from_dict(c) for c in choices),
            completed=bool(data.get("completed", True)),
            submitted_at=parse_timestamp(submitted) if submitted is not None else utc_now(),
        )


@dataclass(frozen=True)
class Activity:
    id: str
    name: str
    category: str
    description: str
    duration: str
    cost: str


@dataclass(frozen=True)
class ScoredActivity:
    id: str
    name: str
    category: str
    description: str
    match_score: int
    duration: str
    cost: str

    @classmethod
    def from_activity(cls, activity: Activity, match_score: int) -> "ScoredActivity":
        return cls(
            id=activity.id,
            name=activity.name,
            category=activity.category,
            description=activity.description,
            match_score=match_score,
            duration=activity.duration,
            cost=activity.cost,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "matchScore": self.match_score,
            "duration": self.duration,
            "cost": self.cost,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScoredActivity":
        return cls(
            id=data["id"],
            name=data["name"],
            category=data["category"],
            description=data.get("description", ""),
            match_score=int(data["matchScore"]),
            duration=data.get("duration", ""),
            cost=data.get("cost", ""),
        )


def _tag_ids(items: list[Any]) -> tuple[str, ...]:
    # older links stored whole interest objects instead of ids
    return tuple(item["id"] if isinstance(item, dict) else str(item) for item in items)


@dataclass(frozen=True)
class MatchResult:
    overall_score: int
    category_scores: dict[str, int]
    common_interests: tuple[str, ...]
    unique_participant1: tuple[str, ...]
    unique_participant2: tuple[str, ...]
    recommended_activities: tuple[ScoredActivity, ...]

    @classmethod
    def empty(cls) -> "MatchResult":
        return cls(
            overall_score=0,
            category_scores={category: 0 for category in CATEGORIES},
            common_interests=(),
            unique_participant1=(),
            unique_participant2=(),
            recommended_activities=(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "overallScore": self.overall_score,
            "categoryScores": dict(self.category_scores),
            "commonInterests": list(self.common_interests),
            "uniqueInterests": {
                "participant1": list(self.unique_participant1),
                "participant2": list(self.unique_participant2),
            },
            "recommendedActivities": [a.to_dict() for a in self.recommended_activities],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MatchResult":
        raw_scores = data.get("categoryScores") or {}
        unique = data.get("uniqueInterests") or {}
        return cls(
            overall_score=int(data["overallScore"]),
            category_scores={category: int(raw_scores.get(category, 0)) for category in CATEGORIES},
            common_interests=_tag_ids(data.get("commonInterests") or []),
            unique_participant1=_tag_ids(unique.get("participant1", unique.get("user1")) or []),
            unique_participant2=_tag_ids(unique.get("participant2", unique.get("user2")) or []),
            recommended_activities=tuple(
                ScoredActivity.from_dict(a) for a in data.get("recommendedActivities") or []
            ),
        )


@dataclass(frozen=True)
class SessionRecord:
    session_id: str
    created_at: datetime
    participant1: ParticipantRecord | None = None
    participant2: ParticipantRecord | None = None
    participant2_name: str | None = None
    match_result: MatchResult | None = None

    @property
    def is_complete(self) -> bool:
        return self.participant1 is not None and self.participant2 is not None

    @property
    def has_participant(self) -> bool:
        return self.participant1 is not None or self.participant2 is not None

    def age_seconds(self, now: datetime | None = None) -> float:
        return ((now or utc_now()) - self.created_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Sparse wire form: absent fields are omitted, never null."""
        payload: dict[str, Any] = {
            "sessionId": self.session_id,
            "createdAt": format_timestamp(self.created_at),
        }
        if self.participant1 is not None:
            payload["participant1"] = self.participant1.to_dict()
        if self.participant2 is not None:
            payload["participant2"] = self.participant2.to_dict()
        if self.participant2_name:
            payload["participant2Name"] = self.participant2_name
        if self.match_result is not None:
            payload["matchResult"] = self.match_result.to_dict()
        return payload

