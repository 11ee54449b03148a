"""
Shared entities and fixtures for sql/ module tests.

Key fixtures:
- game: a fully populated Game, as inserted by the catalog service
- game_factory: builds Games with overrides
"""

from datetime import datetime, timezone

import pytest

from models.catalog import Game
from sql.nullable import NullInt64, NullString, NullTime

RELEASE = datetime(2019, 11, 24, 22, 21, 0, tzinfo=timezone.utc)


@pytest.fixture
def game_factory():
    """Factory that creates a populated Game with optional overrides."""
    def factory(**overrides):
        params = dict(
            id=507,
            code="3f1c2d6e-game",
            title="DOTA2",
            description=NullString.of("08675467484389"),
            enabled=True,
            rate=NullInt64.of(75),
            release=NullTime.of(RELEASE),
        )
        params.update(overrides)
        return Game(**params)

    return factory


@pytest.fixture
def game(game_factory):
    """A fully populated Game."""
    return game_factory()
