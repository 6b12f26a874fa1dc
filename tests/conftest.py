"""
Pytest fixtures shared by the unit tests.

Everything runs without network access: SQLite files live in a temporary
directory and the hosted session table is only exercised through a mocked
``requests.Session``.
"""

from pathlib import Path

import pytest

from soul_match.config import AppConfig
from soul_match.domain.models import WeightedChoice
from soul_match.repositories.local_slot import LocalSessionSlot
from soul_match.services.scoring_service import ScoringService


def choice(tag_id: str, category: str, importance: int) -> WeightedChoice:
    return WeightedChoice(tag_id=tag_id, category=category, importance=importance)


def make_config(data_dir: Path, **overrides) -> AppConfig:
    values = dict(
        base_dir=data_dir,
        data_dir=data_dir,
        sessions_db_path=data_dir / "sessions.db",
        local_slot_path=data_dir / "local_slot.db",
        secret_key="test-secret",
        public_base_url="https://match.example",
        session_store_backend="sqlite",
        session_store_timeout=1.0,
        session_ttl_hours=24,
        supabase_url=None,
        supabase_key=None,
        supabase_table="sessions",
        log_level="WARNING",
    )
    values.update(overrides)
    return AppConfig(**values)


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture
def local_slot(config):
    slot = LocalSessionSlot(config)
    slot.init_schema()
    return slot


@pytest.fixture
def scoring():
    return ScoringService()


@pytest.fixture
def selection_a():
    return [
        choice("movies", "entertainment", 5),
        choice("music", "entertainment", 3),
        choice("hiking", "sports", 4),
        choice("coffee", "food", 2),
    ]


@pytest.fixture
def selection_b():
    return [
        choice("movies", "entertainment", 4),
        choice("hiking", "sports", 4),
        choice("yoga", "sports", 2),
        choice("beach", "travel", 5),
    ]
