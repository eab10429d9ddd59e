"""Pytest configuration and fixtures for test suite."""

import sys
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

# Add src directory to path for imports
SRC_PATH = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(SRC_PATH))

from catalogdq.models import FieldSource, Record  # noqa: E402
from catalogdq.store import InMemoryRecordStore  # noqa: E402

AS_OF = datetime(2025, 6, 1, tzinfo=UTC)


@pytest.fixture
def make_record() -> Callable[..., Record]:
    """Factory for movie records with minimal boilerplate.

    ``title`` and ``year`` map onto the movie title and temporal fields;
    any other keyword becomes a field value.
    """

    def _factory(
        record_id: str = "m1",
        title: str | None = "Devi",
        year: int | None = 1999,
        *,
        entity_type: str = "movie",
        is_active: bool = True,
        **fields: Any,
    ) -> Record:
        if entity_type == "movie":
            values: dict[str, Any] = {"title_en": title, "release_year": year}
        else:
            values = {"name_en": title, "birth_year": year}
        values.update(fields)
        return Record(record_id, entity_type, values, is_active=is_active)

    return _factory


@pytest.fixture
def make_source() -> Callable[..., FieldSource]:
    """Factory for Field Source Ledger entries."""

    def _factory(
        field_name: str = "director",
        source_id: str = "tmdb",
        reliability: float = 0.9,
        *,
        record_id: str = "m1",
        verified_by: str | None = None,
        verified_at: datetime | None = None,
        value: Any = None,
        machine_generated: bool = False,
    ) -> FieldSource:
        return FieldSource(
            record_id=record_id,
            field_name=field_name,
            source_id=source_id,
            reliability=reliability,
            verified_at=verified_at,
            verified_by=verified_by,
            value=value,
            machine_generated=machine_generated,
        )

    return _factory


@pytest.fixture
def devi_store(make_record: Callable[..., Record]) -> InMemoryRecordStore:
    """Two "Devi" (1999) duplicates plus reviews pointing at the second one."""
    store = InMemoryRecordStore(
        [
            make_record("m1", "Devi", 1999, poster_url="https://img.example/devi.jpg"),
            make_record("m2", "Devi", 1999, director="Kodi Ramakrishna"),
            make_record("m3", "Inti Dongalu", 1972),
        ]
    )
    store.add_table(
        "movie_reviews",
        ["id", "movie_id", "rating"],
        [
            {"id": "r1", "movie_id": "m2", "rating": 4},
            {"id": "r2", "movie_id": "m2", "rating": 5},
            {"id": "r3", "movie_id": "m3", "rating": 3},
        ],
        foreign_key="movie_id",
    )
    return store
