"""Tests for the session wrapper and fluent query builder."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError

from metacrud.dbop.session import Expr, SelectColumn, Session, compile_sql


@pytest.fixture
def engine():
    """In-memory SQLite engine."""
    engine = create_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    """Session with a small people table."""
    session = Session(engine.connect())
    session.execute(
        'CREATE TABLE "person" (person_id INTEGER PRIMARY KEY, name TEXT, age INTEGER)'
    )
    for i, (name, age) in enumerate([("alice", 30), ("bob", 25), ("carol", 35)], start=1):
        session.insert("person", {"person_id": i, "name": name, "age": age})
    yield session
    session.close()


COLUMNS = [
    SelectColumn("person_id", "PersonId"),
    SelectColumn("name", "Name"),
    SelectColumn("age", "Age"),
]


class TestCompileSql:
    """Tests for placeholder compilation."""

    def test_placeholders_become_named_binds(self):
        """Each ? becomes a numbered bind."""
        sql, binds = compile_sql("a=? AND b=?", [1, 2])
        assert sql == "a=:p0 AND b=:p1"
        assert binds == {"p0": 1, "p1": 2}

    def test_quoted_question_mark_left_alone(self):
        """Question marks inside string literals are not placeholders."""
        sql, binds = compile_sql("a='?' AND b=?", [1])
        assert sql == "a='?' AND b=:p0"
        assert binds == {"p0": 1}

    def test_colons_escaped(self):
        """Literal colons are not read as bind names."""
        sql, _ = compile_sql("x='12:30'", [])
        assert sql == "x='12\\:30'"

    def test_expression_spliced_verbatim(self):
        """Expr arguments are inserted as SQL without being scanned."""
        sql, binds = compile_sql("a=? AND b=?", [Expr("'it''s?'"), 2])
        assert sql == "a='it''s?' AND b=:p1"
        assert binds == {"p1": 2}

    def test_argument_count_mismatch(self):
        """Too few or too many arguments are rejected."""
        with pytest.raises(ValueError):
            compile_sql("a=?", [])
        with pytest.raises(ValueError):
            compile_sql("a=1", [1])


class TestQuoting:
    """Tests for identifier quoting."""

    def test_sqlite_uses_double_quotes(self, session):
        """SQLite identifiers use double quotes with doubling for escapes."""
        assert session.dialect_name == "sqlite"
        assert session.quote("user") == '"user"'
        assert session.quote('we"ird') == '"we""ird"'


class TestQuery:
    """Tests for the fluent SELECT builder."""

    def test_count(self, session):
        """Counts honour WHERE clauses."""
        assert session.query("person").count() == 3
        assert session.query("person").where("age>?", 26).count() == 2

    def test_find_with_order_and_limit(self, session):
        """Rows come back ordered and limited."""
        rows = session.query("person").desc('"age"').limit(2).find(COLUMNS)
        assert [r["Name"] for r in rows] == ["carol", "alice"]

    def test_offset(self, session):
        """Offsets skip leading rows."""
        rows = session.query("person").asc('"age"').limit(2, 2).find(COLUMNS)
        assert [r["Name"] for r in rows] == ["carol"]

    def test_in(self, session):
        """IN matches listed values; an empty list matches nothing."""
        assert session.query("person").in_('"name"', ["bob", "carol"]).count() == 2
        assert session.query("person").in_('"name"', []).count() == 0

    def test_omit(self, session):
        """Omitted columns are left out of the select list."""
        row = session.query("person").omit("age").get(COLUMNS)
        assert "Age" not in row
        assert "Name" in row

    def test_get_none(self, session):
        """get returns None when nothing matches."""
        assert session.query("person").where("person_id=?", 99).get(COLUMNS) is None

    def test_qualified_columns(self, session):
        """Columns can be qualified with their table."""
        row = session.query("person").get([SelectColumn("name", "Name", "person")])
        assert row == {"Name": "alice"}


class TestStatements:
    """Tests for INSERT, UPDATE and DELETE builders."""

    def test_update_returns_rowcount(self, session):
        """UPDATE reports affected rows."""
        assert session.update("person", {"age": 40}, "age>?", [26]) == 2

    def test_update_with_expression(self, session):
        """Expr values are assigned as SQL."""
        session.update("person", {"age": Expr("age+1")}, "person_id=?", [1])
        assert session.fetch_one("SELECT age FROM person WHERE person_id=?", [1]) == {"age": 31}

    def test_insert_returns_generated_key(self, session):
        """Requesting a returning column yields the key the database assigned."""
        assert session.insert("person", {"name": "dave"}, returning="person_id") == 4

    def test_insert_with_expression(self, session):
        """Expr values in INSERT are written as SQL."""
        session.insert("person", {"person_id": 9, "name": Expr("upper('eve')")})
        assert session.fetch_one("SELECT name FROM person WHERE person_id=?", [9]) == {"name": "EVE"}

    def test_delete(self, session):
        """DELETE reports affected rows."""
        assert session.delete("person", "person_id=?", [2]) == 1
        assert session.query("person").count() == 2

    def test_failed_statement_does_not_break_session(self, session):
        """The session stays usable after a failed statement."""
        with pytest.raises(IntegrityError):
            session.insert("person", {"person_id": 1, "name": "dup"})
        assert session.query("person").count() == 3


class TestTransactions:
    """Tests for explicit transactions."""

    def test_rollback_discards_changes(self, session):
        """Rolled back changes are gone."""
        session.begin()
        assert session.in_transaction
        session.delete("person", "1=1")
        session.rollback()
        assert not session.in_transaction
        assert session.query("person").count() == 3

    def test_commit_keeps_changes(self, session):
        """Committed changes persist."""
        session.begin()
        session.delete("person", "person_id=?", [1])
        session.commit()
        assert session.query("person").count() == 2

    def test_nested_begin_rejected(self, session):
        """A second begin raises."""
        session.begin()
        with pytest.raises(RuntimeError):
            session.begin()
        session.rollback()
