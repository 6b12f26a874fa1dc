"""
Unit tests for ScoringService.
"""

import pytest

from conftest import choice
from soul_match.domain.catalog import Catalog
from soul_match.domain.models import CATEGORIES, Activity
from soul_match.services.scoring_service import (
    ScoringService,
    consistency,
    importance_weight,
    round_half_up,
)


def test_round_half_up_rounds_halves_away_from_zero():
    assert round_half_up(2.5) == 3
    assert round_half_up(1.25) == 1
    assert round_half_up(0.49) == 0


def test_importance_weight_table_and_fractional_means():
    assert [importance_weight(i) for i in range(1, 6)] == [0.5, 0.8, 1.0, 1.2, 1.5]
    assert importance_weight(3.5) == 1.2
    assert importance_weight(3.4) == 1.0


def test_consistency_drops_with_distance():
    assert consistency(3, 3) == 1.0
    assert consistency(1, 5) == pytest.approx(0.2)
    assert consistency(5, 1) == consistency(1, 5)


def test_empty_selections_give_zeroed_result(scoring):
    result = scoring.calculate_match([], [])

    assert result.overall_score == 0
    assert result.category_scores == {category: 0 for category in CATEGORIES}
    assert result.common_interests == ()
    assert result.unique_participant1 == ()
    assert result.unique_participant2 == ()
    assert result.recommended_activities == ()


def test_one_sided_selection_does_not_crash(scoring, selection_a):
    result = scoring.calculate_match(selection_a, [])

    assert result.common_interests == ()
    assert result.unique_participant1 == ("movies", "music", "hiking", "coffee")
    assert 0 <= result.overall_score <= 100


def test_identical_single_tag_clamps_category_to_100(scoring):
    a = [choice("movies", "entertainment", 5)]
    b = [choice("movies", "entertainment", 5)]

    result = scoring.calculate_match(a, b)

    assert result.common_interests == ("movies",)
    # 100 * (0.4 + 0.4 * 1.5 + 0.1 + 0.1) = 120 before the clamp
    assert result.category_scores["entertainment"] == 100
    assert result.category_scores["sports"] == 0
    assert result.overall_score == 100
    assert [a.id for a in result.recommended_activities] == ["movie_night", "concert", "game_night"]


def test_disjoint_selections_only_get_diversity_and_unique_terms(scoring):
    a = [choice("movies", "entertainment", 3)]
    b = [choice("hiking", "sports", 3)]

    result = scoring.calculate_match(a, b)

    assert result.common_interests == ()
    # activity 0.3, uniqueCompat 0.6 -> 100 * (0.03 + 0.06)
    assert result.category_scores["entertainment"] == 9
    assert result.category_scores["sports"] == 9
    assert result.category_scores["food"] == 0
    # weighted average 9 + diversity round(2.5) = 3, no common bonus
    assert result.overall_score == 12
    assert result.recommended_activities == ()


def test_self_match_has_no_unique_interests(scoring, selection_a):
    result = scoring.calculate_match(selection_a, selection_a)

    assert set(result.common_interests) == {c.tag_id for c in selection_a}
    assert result.unique_participant1 == ()
    assert result.unique_participant2 == ()


def test_swapping_inputs_is_symmetric(scoring, selection_a, selection_b):
    forward = scoring.calculate_match(selection_a, selection_b)
    backward = scoring.calculate_match(selection_b, selection_a)

    assert forward.common_interests == backward.common_interests
    assert forward.overall_score == backward.overall_score
    assert forward.category_scores == backward.category_scores
    assert forward.unique_participant1 == backward.unique_participant2
    assert forward.unique_participant2 == backward.unique_participant1
    assert forward.recommended_activities == backward.recommended_activities


def test_repeated_calls_are_identical(scoring, selection_a, selection_b):
    assert scoring.calculate_match(selection_a, selection_b) == scoring.calculate_match(selection_a, selection_b)


def test_scores_stay_in_range_and_keys_are_fixed(scoring, selection_a, selection_b):
    result = scoring.calculate_match(selection_a, selection_b)

    assert set(result.category_scores) == set(CATEGORIES)
    assert 0 <= result.overall_score <= 100
    assert all(0 <= score <= 100 for score in result.category_scores.values())
    assert result.common_interests == ("hiking", "movies")


def test_duplicate_ids_keep_first_occurrence(scoring):
    a = [choice("movies", "entertainment", 5), choice("movies", "entertainment", 1)]
    b = [choice("movies", "entertainment", 5)]

    assert scoring.calculate_match(a, b) == scoring.calculate_match(a[:1], b)


def test_unknown_category_is_ignored_for_category_scores(scoring):
    a = [choice("opera", "culture", 4)]
    b = [choice("opera", "culture", 4)]

    result = scoring.calculate_match(a, b)

    assert result.category_scores == {category: 0 for category in CATEGORIES}
    assert result.common_interests == ("opera",)
    assert result.overall_score == 13  # consistency 10 + common 3


def test_common_bonus_is_capped_at_fifteen(scoring):
    tags = ["movies", "music", "games", "concerts", "theater", "art"]
    a = [choice(t, "entertainment", 1) for t in tags]
    b = [choice(t, "entertainment", 5) for t in tags]

    result = scoring.calculate_match(a, b)

    # consistency 0.2 everywhere -> commonWeighted 0.2, no unique tags
    assert result.category_scores["entertainment"] == round_half_up(100 * (0.4 + 0.08 + 0.06 + 0.1))
    assert result.overall_score == 64 + 2 + 1 + 15


def test_activity_score_for_identical_single_tag(scoring):
    result = scoring.calculate_match(
        [choice("movies", "entertainment", 5)], [choice("movies", "entertainment", 5)]
    )

    # 0.5 * 100 + 0.3 * 45 + 0.2 * (75 + 20) = 82.5
    assert {a.id: a.match_score for a in result.recommended_activities} == {
        "movie_night": 83,
        "concert": 83,
        "game_night": 83,
    }


def test_recommendations_sort_by_score_across_categories(scoring):
    a = [
        choice("movies", "entertainment", 3),
        choice("music", "entertainment", 1),
        choice("hiking", "sports", 5),
    ]
    b = [
        choice("movies", "entertainment", 5),
        choice("hiking", "sports", 5),
    ]

    result = scoring.calculate_match(a, b)

    # entertainment: 100 * (0.4 * 0.5 + 0.4 * 0.75 + 0.1 * 0.7 + 0.1 * 0.6)
    assert result.category_scores["entertainment"] == 63
    assert result.category_scores["sports"] == 100
    # entertainment activities: related 22.5 shared + 2.5 one-sided music,
    # preference 0.5 * (40 + 75) + 20 -> 31.5 + 7.5 + 15.5 = 54.5
    assert [(act.id, act.match_score) for act in result.recommended_activities] == [
        ("hiking_date", 83),
        ("movie_night", 55),
        ("concert", 55),
        ("game_night", 55),
    ]


def test_recommendations_respect_threshold_order_and_limit():
    activities = tuple(
        Activity(f"act{i}", f"Activity {i}", "food", "", "1 hour", "Low") for i in range(8)
    )
    catalog = Catalog(
        interests=(),
        activities=activities,
        related_tags={"food": ("coffee",)},
    )
    service = ScoringService(catalog)

    result = service.calculate_match([choice("coffee", "food", 5)], [choice("coffee", "food", 5)])

    assert len(result.recommended_activities) == 6
    assert [a.id for a in result.recommended_activities] == [f"act{i}" for i in range(6)]
    assert all(a.match_score > 25 for a in result.recommended_activities)


@pytest.mark.parametrize(
    "score,label",
    [(95, "Perfect Match"), (80, "Deep Connection"), (75, "Great Compatibility"), (60, "Good Attraction"), (10, "Room to Grow")],
)
def test_match_level(scoring, score, label):
    assert scoring.match_level(score) == label
