"""
Static reference tables consumed by the scoring engine.

The interest taxonomy, the activity catalog and the per-category related-tag
lists are read-only configuration. ``DEFAULT_CATALOG`` is what the app ships
with; tests build synthetic ``Catalog`` instances instead.
"""

from dataclasses import dataclass, field
from typing import Any

from soul_match.domain.models import CATEGORIES, Activity, InterestTag


@dataclass(frozen=True)
class Catalog:
    interests: tuple[InterestTag, ...]
    activities: tuple[Activity, ...]
    related_tags: dict[str, tuple[str, ...]]
    category_names: dict[str, str] = field(default_factory=dict)

    def interests_by_category(self) -> dict[str, list[InterestTag]]:
        grouped: dict[str, list[InterestTag]] = {category: [] for category in CATEGORIES}
        for tag in self.interests:
            grouped.setdefault(tag.category, []).append(tag)
        return grouped

    def tag(self, tag_id: str) -> InterestTag | None:
        for tag in self.interests:
            if tag.id == tag_id:
                return tag
        return None

    def category_name(self, category: str) -> str:
        return self.category_names.get(category, category)

    def to_dict(self) -> dict[str, Any]:
        return {
            "categories": [
                {
                    "id": category,
                    "name": self.category_name(category),
                    "interests": [tag.to_dict() for tag in tags],
                }
                for category, tags in self.interests_by_category().items()
            ],
            "activities": [
                {
                    "id": a.id,
                    "name": a.name,
                    "category": a.category,
                    "description": a.description,
                    "duration": a.duration,
                    "cost": a.cost,
                }
                for a in self.activities
            ],
        }


def _tags(category: str, rows: list[tuple[str, str, str]]) -> list[InterestTag]:
    return [InterestTag(id=tag_id, category=category, display_name=name, icon=icon) for tag_id, name, icon in rows]


DEFAULT_INTERESTS: tuple[InterestTag, ...] = tuple(
    _tags(
        "entertainment",
        [
            ("movies", "Movies", "🎬"),
            ("music", "Music", "🎵"),
            ("games", "Gaming", "🎮"),
            ("concerts", "Concerts", "🎤"),
            ("theater", "Theater", "🎭"),
            ("art", "Art Exhibitions", "🎨"),
        ],
    )
    + _tags(
        "sports",
        [
            ("basketball", "Basketball", "🏀"),
            ("football", "Football", "⚽"),
            ("tennis", "Tennis", "🎾"),
            ("swimming", "Swimming", "🏊"),
            ("hiking", "Hiking", "🥾"),
            ("yoga", "Yoga", "🧘"),
        ],
    )
    + _tags(
        "food",
        [
            ("chinese", "Chinese Food", "🥘"),
            ("western", "Western Food", "🍝"),
            ("japanese", "Japanese Food", "🍱"),
            ("dessert", "Desserts", "🍰"),
            ("coffee", "Coffee", "☕"),
            ("cooking", "Cooking", "👨‍🍳"),
        ],
    )
    + _tags(
        "travel",
        [
            ("beach", "Beach", "🏖️"),
            ("mountains", "Mountains", "🏔️"),
            ("city", "City", "🏙️"),
            ("countryside", "Countryside", "🌾"),
            ("museum", "Museums", "🏛️"),
            ("shopping", "Shopping", "🛍️"),
        ],
    )
)

DEFAULT_ACTIVITIES: tuple[Activity, ...] = (
    Activity("movie_night", "Movie Night", "entertainment",
             "Watch a romantic movie together and enjoy quality time", "2-3 hours", "Medium"),
    Activity("concert", "Concert", "entertainment", "Attend an exciting live concert", "3-4 hours", "High"),
    Activity("hiking_date", "Hiking Date", "sports", "Hike together and enjoy natural scenery", "Half day", "Low"),
    Activity("cooking_class", "Cooking Class", "food", "Learn to cook delicious meals together", "2-3 hours", "Medium"),
    Activity("beach_vacation", "Beach Vacation", "travel", "Enjoy sunshine, sand, and waves", "Few days", "High"),
    Activity("museum_visit", "Museum Visit", "travel", "Explore culture and history together", "2-3 hours", "Low"),
    Activity("game_night", "Game Night", "entertainment",
             "Play games together and enjoy friendly competition", "2-3 hours", "Low"),
    Activity("coffee_date", "Coffee Date", "food", "Enjoy a relaxing time at a coffee shop", "1-2 hours", "Low"),
)

# the related tags of a category are its taxonomy entries
DEFAULT_RELATED_TAGS: dict[str, tuple[str, ...]] = {
    category: tuple(tag.id for tag in DEFAULT_INTERESTS if tag.category == category)
    for category in CATEGORIES
}

DEFAULT_CATALOG = Catalog(
    interests=DEFAULT_INTERESTS,
    activities=DEFAULT_ACTIVITIES,
    related_tags=DEFAULT_RELATED_TAGS,
    category_names={
        "entertainment": "Entertainment",
        "sports": "Sports",
        "food": "Food",
        "travel": "Travel",
    },
)
