import math
from typing import Iterable

from soul_match.domain.catalog import DEFAULT_CATALOG, Catalog
from soul_match.domain.models import (
    CATEGORIES,
    MAX_IMPORTANCE,
    MIN_IMPORTANCE,
    MatchResult,
    ScoredActivity,
    WeightedChoice,
    normalize_selection,
)

IMPORTANCE_WEIGHTS: dict[int, float] = {1: 0.5, 2: 0.8, 3: 1.0, 4: 1.2, 5: 1.5}

MAX_RECOMMENDATIONS = 6
RECOMMENDATION_THRESHOLD = 25

MATCH_LEVELS: tuple[tuple[int, str], ...] = (
    (90, "Perfect Match"),
    (80, "Deep Connection"),
    (70, "Great Compatibility"),
    (60, "Good Attraction"),
)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def importance_weight(importance: float) -> float:
    """Weight of an importance level; fractional means snap to the nearest level."""
    level = min(MAX_IMPORTANCE, max(MIN_IMPORTANCE, round_half_up(importance)))
    return IMPORTANCE_WEIGHTS[level]


def consistency(left: int, right: int) -> float:
    return max(0.0, 1.0 - 0.2 * abs(left - right))


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class _Side:
    """One participant's selection indexed for scoring."""

    def __init__(self, choices: Iterable[WeightedChoice]) -> None:
        self.choices = normalize_selection(choices)
        self.importance = {c.tag_id: c.importance for c in self.choices}
        self.by_category: dict[str, dict[str, int]] = {category: {} for category in CATEGORIES}
        for choice in self.choices:
            if choice.category in self.by_category:
                self.by_category[choice.category][choice.tag_id] = choice.importance

    def ids(self) -> list[str]:
        return [c.tag_id for c in self.choices]

    def normalized_importance(self, category: str) -> float:
        values = self.by_category[category].values()
        return sum(values) / (len(values) * MAX_IMPORTANCE) if values else 0.0

    def mean_importance(self, category: str) -> float:
        return _mean(list(self.by_category[category].values()))

    def category_weights(self) -> dict[str, float]:
        total = sum(sum(tags.values()) for tags in self.by_category.values())
        if total == 0:
            return {category: 0.0 for category in CATEGORIES}
        return {category: sum(tags.values()) / total for category, tags in self.by_category.items()}


class ScoringService:
    """Deterministic compatibility scoring over two weighted selections."""

    def __init__(self, catalog: Catalog = DEFAULT_CATALOG) -> None:
        self._catalog = catalog

    def calculate_match(
        self,
        selection_a: Iterable[WeightedChoice],
        selection_b: Iterable[WeightedChoice],
    ) -> MatchResult:
        side_a = _Side(selection_a)
        side_b = _Side(selection_b)

        common = sorted(set(side_a.importance) & set(side_b.importance))
        category_scores = {category: self._category_score(side_a, side_b, category) for category in CATEGORIES}

        return MatchResult(
            overall_score=self._overall_score(side_a, side_b, category_scores, common),
            category_scores=category_scores,
            common_interests=tuple(common),
            unique_participant1=tuple(i for i in side_a.ids() if i not in side_b.importance),
            unique_participant2=tuple(i for i in side_b.ids() if i not in side_a.importance),
            recommended_activities=self._recommend_activities(side_a, side_b, category_scores),
        )

    def _category_score(self, side_a: _Side, side_b: _Side, category: str) -> int:
        tags_a = side_a.by_category[category]
        tags_b = side_b.by_category[category]
        if not tags_a and not tags_b:
            return 0

        common = set(tags_a) & set(tags_b)
        union = set(tags_a) | set(tags_b)
        overlap = len(common) / max(len(union), 1)

        common_weighted = _mean(
            [
                (importance_weight(tags_a[tag]) + importance_weight(tags_b[tag]))
                * consistency(tags_a[tag], tags_b[tag])
                * 0.5
                for tag in sorted(common)
            ]
        )

        norm_a = side_a.normalized_importance(category)
        norm_b = side_b.normalized_importance(category)
        activity = 0.5 * (norm_a + norm_b)

        if len(union) == len(common):
            unique_compat = 1.0
        elif norm_a > 0.6 and norm_b > 0.6:
            unique_compat = 0.3
        elif abs(norm_a - norm_b) > 0.4:
            unique_compat = 0.6
        else:
            unique_compat = 0.8

        # sub-terms are unclamped; only the final score is capped
        raw = 100 * (0.4 * overlap + 0.4 * common_weighted + 0.1 * activity + 0.1 * unique_compat)
        return round_half_up(min(100.0, raw))

    def _overall_score(
        self,
        side_a: _Side,
        side_b: _Side,
        category_scores: dict[str, int],
        common: list[str],
    ) -> int:
        weights_a = side_a.category_weights()
        weights_b = side_b.category_weights()

        numerator = 0.0
        denominator = 0.0
        for category in CATEGORIES:
            shared_weight = (weights_a[category] + weights_b[category]) / 2
            numerator += category_scores[category] * shared_weight
            denominator += shared_weight
        weighted_average = numerator / denominator if denominator > 0 else 0.0

        consistency_bonus = (
            round_half_up(10 * _mean([consistency(side_a.importance[t], side_b.importance[t]) for t in common]))
            if common
            else 0
        )
        touched = {
            category
            for category in CATEGORIES
            if side_a.by_category[category] or side_b.by_category[category]
        }
        diversity_bonus = round_half_up(5 * len(touched) / len(CATEGORIES))
        common_bonus = min(15, 3 * len(common))

        total = weighted_average + consistency_bonus + diversity_bonus + common_bonus
        return round_half_up(min(100.0, total))

    def _recommend_activities(
        self,
        side_a: _Side,
        side_b: _Side,
        category_scores: dict[str, int],
    ) -> tuple[ScoredActivity, ...]:
        scored: list[ScoredActivity] = []
        for activity in self._catalog.activities:
            category_score = category_scores.get(activity.category, 0)
            related = self._related_score(side_a, side_b, activity.category)
            preference = self._preference_score(side_a, side_b, activity.category)
            match_score = round_half_up(0.5 * category_score + 0.3 * related + 0.2 * preference)
            if match_score > RECOMMENDATION_THRESHOLD:
                scored.append(ScoredActivity.from_activity(activity, match_score))

        # sorted() is stable, so equal scores keep catalog order
        scored = sorted(scored, key=lambda a: a.match_score, reverse=True)
        return tuple(scored[:MAX_RECOMMENDATIONS])

    def _related_score(self, side_a: _Side, side_b: _Side, category: str) -> float:
        total = 0.0
        for tag in self._catalog.related_tags.get(category, ()):
            imp_a = side_a.importance.get(tag)
            imp_b = side_b.importance.get(tag)
            if imp_a is not None and imp_b is not None:
                total += (importance_weight(imp_a) + importance_weight(imp_b)) * consistency(imp_a, imp_b) * 15
            elif imp_a is not None:
                total += importance_weight(imp_a) * 5
            elif imp_b is not None:
                total += importance_weight(imp_b) * 5
        return total

    def _preference_score(self, side_a: _Side, side_b: _Side, category: str) -> float:
        if category not in side_a.by_category:
            return 0.0
        has_a = bool(side_a.by_category[category])
        has_b = bool(side_b.by_category[category])
        pref_a = importance_weight(side_a.mean_importance(category)) * 50 if has_a else 0.0
        pref_b = importance_weight(side_b.mean_importance(category)) * 50 if has_b else 0.0
        both_bonus = 20 if has_a and has_b else 0
        return min(100.0, 0.5 * (pref_a + pref_b) + both_bonus)

    def match_level(self, score: int) -> str:
        for threshold, label in MATCH_LEVELS:
            if score >= threshold:
                return label
        return "Room to Grow"

    def category_name(self, category: str) -> str:
        return self._catalog.category_name(category)
