"""Tests for the move operation."""

import pytest
from sqlalchemy import create_engine

from metacrud.dbop import DbContext, Session, move
from metacrud.errors import ApiError
from metacrud.models import ModelRegistry

ITEM = {
    "model": "Item",
    "fields": [
        {"name": "ItemId", "type": "int", "tags": "pk"},
        {"name": "Position", "type": "uint32", "tags": "showindex column:pos"},
    ],
}

TAG = {
    "model": "Tag",
    "fields": [{"name": "TagId", "type": "int", "tags": "pk"}],
}


@pytest.fixture
def session():
    """Session with five items at positions 1 to 5."""
    engine = create_engine("sqlite://")
    session = Session(engine.connect())
    session.execute('CREATE TABLE "item" (item_id INTEGER PRIMARY KEY, pos INTEGER)')
    # item_id n starts at position n
    for i in range(1, 6):
        session.insert("item", {"item_id": i, "pos": i})
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def ctx(session):
    """Operation context with the test models registered."""
    registry = ModelRegistry()
    registry.register(ITEM)
    registry.register(TAG)
    return DbContext(session, registry)


def _positions(session):
    rows = session.fetch_all('SELECT item_id, pos FROM "item" ORDER BY item_id')
    return {r["item_id"]: r["pos"] for r in rows}


class TestMove:
    """Tests for repositioning records."""

    def test_move_up(self, ctx, session):
        """Moving up shifts the rows in between down."""
        assert move(ctx, "Item", 5, 2) is None
        assert _positions(session) == {1: 1, 2: 3, 3: 4, 4: 5, 5: 2}

    def test_move_down(self, ctx, session):
        """Moving down shifts the rows in between up."""
        assert move(ctx, "Item", 2, 5) is None
        assert _positions(session) == {1: 1, 2: 5, 3: 2, 4: 3, 5: 4}

    def test_positions_stay_unique(self, ctx, session):
        """Repeated moves keep positions a permutation."""
        move(ctx, "Item", 1, 4)
        move(ctx, "Item", 5, 1)
        assert sorted(_positions(session).values()) == [1, 2, 3, 4, 5]

    def test_same_index(self, ctx, session, monkeypatch):
        """Nothing is executed when source and destination match."""
        monkeypatch.setattr(session, "execute", lambda *a, **kw: pytest.fail("unexpected statement"))
        result = move(ctx, "Item", 3, 3)
        assert isinstance(result, ApiError)
        assert result.reason == "NoObjectMoved"

    def test_missing_index(self, ctx, session):
        """An unknown position rolls back and reports it."""
        result = move(ctx, "Item", 2, 99)
        assert result.reason == "ObjectNotExists"
        assert not session.in_transaction
        assert _positions(session) == {i: i for i in range(1, 6)}

    def test_no_show_index_field(self, ctx):
        """Models without showindex cannot move."""
        assert move(ctx, "Tag", 1, 2).reason == "NoShowIndexField"

    def test_inside_outer_transaction(self, ctx, session):
        """A caller's transaction stays open."""
        session.begin()
        assert move(ctx, "Item", 1, 2) is None
        assert session.in_transaction
        session.rollback()
        assert _positions(session) == {i: i for i in range(1, 6)}

    def test_count_failure(self, ctx, session):
        """Count errors are reported and rolled back."""
        session.execute('DROP TABLE "item"')
        assert move(ctx, "Item", 1, 2).reason == "CountFailed"
        assert not session.in_transaction
