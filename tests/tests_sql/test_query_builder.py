"""
========================================
Pytest suite for sql/query_builder.py
========================================

Sections:
---------
1. Unit tests - SELECT, JOIN, INSERT, multi-row INSERT, UPDATE rendering
2. Integration tests - placeholder numbering across whole statements
3. Edge case tests - call-order preconditions, paging bounds, odd batches

Test Coverage:
--------------
- from_/and_/or_/where: implicit and raw WHERE conditions
- join: select list and ON clause
- insert/inserts/updates: column order, timestamps, RETURNING
- limit/page: LIMIT/OFFSET defaults
- renumber_placeholders / pagination_builder helpers

How to Execute:
---------------
All tests:          pytest tests/tests_sql/test_query_builder.py -v
By category:        pytest tests/tests_sql/test_query_builder.py -m unit
Specific test:      pytest tests/tests_sql/test_query_builder.py::test_select_and_or
"""

import logging
import re
from dataclasses import dataclass, field

import pytest

from models.catalog import Game, User
from sample_entities import Player
from sql.exceptions import (
    InvalidPageError,
    MalformedTagError,
    NotAnEntityError,
    PreconditionError,
)
from sql.nullable import NullString
from sql.query_builder import (
    DEFAULT_PAGE_SIZE,
    Query,
    StatementKind,
    build,
    pagination_builder,
    renumber_placeholders,
)
from sql.reflector import column, entity_schema

PLACEHOLDER = re.compile(r"\$(\d+)")


def placeholder_numbers(sql):
    return [int(n) for n in PLACEHOLDER.findall(sql)]


# ===============
# 1. UNIT TESTS
# ===============


@pytest.mark.unit
def test_select_and_or():
    sql, args = (
        build()
        .from_(Game(), "g")
        .and_(Game(code="code", enabled=True), "g")
        .or_(Game(id=1, code="code"), "g")
        .to_sql()
    )
    assert sql == (
        "SELECT g.* FROM ref_game g WHERE g.enabled = $1 AND g.game_code = $2 "
        "OR g.game_code = $3 OR g.game_id = $4 LIMIT 100 OFFSET 0"
    )
    assert args == [True, "code", "code", 1]


@pytest.mark.unit
def test_select_and_only():
    sql, args = build().from_(Game, "g").and_(Game(code="code", enabled=True), "g").to_sql()
    assert sql == "SELECT g.* FROM ref_game g WHERE g.enabled = $1 AND g.game_code = $2 LIMIT 100 OFFSET 0"
    assert len(args) == 2


@pytest.mark.unit
def test_select_or_only():
    sql, args = build().from_(Game, "g").or_(Game(code="code", enabled=True), "g").to_sql()
    assert sql == "SELECT g.* FROM ref_game g WHERE g.enabled = $1 OR g.game_code = $2 LIMIT 100 OFFSET 0"
    assert len(args) == 2


@pytest.mark.unit
def test_select_from_entity_filters_by_example():
    game = Game(id=507, description=NullString.of("Froze"))
    sql, args = build().from_(game, "g").to_sql()
    assert sql == (
        "SELECT g.* FROM ref_game g WHERE g.game_description = $1 AND g.game_id = $2 "
        "LIMIT 100 OFFSET 0"
    )
    assert args == ["Froze", 507]


@pytest.mark.unit
def test_select_join_with_raw_where():
    sql, args = (
        build()
        .from_(Game(id=1, code="code"), "g")
        .join(User(), "u", "u.id = g.user_id")
        .where("u.name like %| ? |%", "budi")
        .to_sql()
    )
    assert sql == (
        "SELECT g.*, u.* FROM ref_game g JOIN ref_user u ON u.id = g.user_id "
        "WHERE g.game_code = $1 AND g.game_id = $2 AND u.name like %| $3 |% "
        "LIMIT 100 OFFSET 0"
    )
    assert args == ["code", 1, "budi"]


@pytest.mark.unit
def test_join_concatenates_on_fragments():
    sql, _ = (
        build()
        .from_(Game, "g")
        .join(User, "u", "u.id = g.user_id", "AND u.deleted_at IS NULL")
        .to_sql()
    )
    assert "JOIN ref_user u ON u.id = g.user_id AND u.deleted_at IS NULL" in sql


@pytest.mark.unit
def test_select_without_conditions_has_no_where():
    sql, args = build().from_(Game, "g").to_sql()
    assert sql == "SELECT g.* FROM ref_game g LIMIT 100 OFFSET 0"
    assert args == []


@pytest.mark.unit
def test_limit_and_page():
    sql, _ = build().from_(Game, "g").limit(10).page(3).to_sql()
    assert sql.endswith("LIMIT 10 OFFSET 20")


@pytest.mark.unit
def test_page_uses_default_page_size_without_limit():
    sql, _ = build().from_(Game, "g").page(2).to_sql()
    assert sql.endswith(f"LIMIT {DEFAULT_PAGE_SIZE} OFFSET {DEFAULT_PAGE_SIZE}")


@pytest.mark.unit
def test_insert(game, fixed_now):
    query = build(now=fixed_now).set_tag("sql")
    sql, args = query.insert(game).to_sql()
    assert sql == (
        "INSERT INTO ref_game (enabled, game_code, game_description, game_id, game_title, "
        "rate, release, create_date, write_date) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9) "
        "RETURNING game_id"
    )
    stamp = fixed_now()
    assert args == [
        True, "3f1c2d6e-game", "08675467484389", 507, "DOTA2", 75,
        "2019-11-24T22:21:00Z", stamp, stamp,
    ]
    assert query.kind is StatementKind.INSERT
    assert query.id_column == "game_id"


@pytest.mark.unit
def test_inserts_three_rows(game_factory, fixed_now):
    games = [game_factory(), game_factory(), game_factory()]
    sql, args = build(now=fixed_now).inserts(games).to_sql()
    assert sql.startswith(
        "INSERT INTO ref_game (enabled, game_code, game_description, game_id, game_title, "
        "rate, release, create_date, write_date) VALUES "
        "($1, $2, $3, $4, $5, $6, $7, $8, $9), "
        "($10, $11, $12, $13, $14, $15, $16, $17, $18), "
        "($19, $20, $21, $22, $23, $24, $25, $26, $27)"
    )
    assert sql.endswith(" RETURNING game_id")
    assert len(args) == 27


@pytest.mark.unit
def test_updates_few_fields(fixed_now):
    game = Game(
        id=507,
        code="c0de",
        title="DOTA2",
        description=NullString.of("Froze"),
        enabled=True,
    )
    sql, args = (
        build(now=fixed_now)
        .updates(game)
        .where("game_code = ? AND game_description > ?", game.code, 23)
        .to_sql()
    )
    assert sql == (
        "UPDATE ref_game SET enabled = $2, game_code = $3, game_description = $4, "
        "game_title = $5, write_date = $1 WHERE game_code = $6 AND game_description > $7 "
        "RETURNING game_id"
    )
    assert args == [fixed_now(), True, "c0de", "Froze", "DOTA2", "c0de", 23]


@pytest.mark.unit
def test_updates_all_fields(game):
    sql, args = build().updates(game).where("game_code = ? AND game_description > ?", game.code, 23).to_sql()
    assert sql.startswith(
        "UPDATE ref_game SET enabled = $2, game_code = $3, game_description = $4, "
        "game_title = $5, rate = $6, release = $7, write_date = $1"
    )
    assert "game_id =" not in sql
    assert len(args) == 9


@pytest.mark.unit
def test_set_tag_switches_metadata_key(fixed_now):
    sql, args = build(now=fixed_now).set_tag("db").insert(Player(id=3, nick="n", score=10)).to_sql()
    assert sql == (
        "INSERT INTO ref_player (nick, player_id, score, create_date, write_date) "
        "VALUES ($1, $2, $3, $4, $5) RETURNING player_id"
    )
    assert args[:3] == ["n", 3, 10]


@pytest.mark.unit
def test_renumber_placeholders():
    assert renumber_placeholders("a = ? AND b = ?", 4) == ("a = $4 AND b = $5", 2)
    assert renumber_placeholders("no markers", 1) == ("no markers", 0)


@pytest.mark.unit
def test_pagination_builder():
    assert pagination_builder(1, 25) == {'limit': 25, 'offset': 0}
    assert pagination_builder(4, 25) == {'limit': 25, 'offset': 75}


# ======================
# 2. INTEGRATION TESTS
# ======================


@pytest.mark.integration
@pytest.mark.parametrize(
    "make_query",
    [
        lambda g: build().from_(g, "g").and_(Game(enabled=True), "g").where("g.rate > ?", 3),
        lambda g: build().insert(g).where("NOT EXISTS (SELECT 1 WHERE ? = ?)", 1, 1),
        lambda g: build().inserts([g, g]),
        lambda g: build().updates(g).where("game_code = ?", g.code),
    ],
)
def test_placeholders_are_contiguous(game, make_query):
    sql, args = make_query(game).to_sql()
    numbers = placeholder_numbers(sql)
    assert sorted(set(numbers)) == list(range(1, len(args) + 1))


@pytest.mark.integration
def test_where_before_and_keeps_numbering():
    sql, args = (
        build()
        .from_(Game, "g")
        .where("g.rate BETWEEN ? AND ?", 1, 5)
        .and_(Game(code="x"), "g")
        .to_sql()
    )
    assert "WHERE g.rate BETWEEN $1 AND $2 AND g.game_code = $3" in sql
    assert args == [1, 5, "x"]


@pytest.mark.integration
def test_query_renders_a_fresh_statement_each_build(game):
    first, _ = build().insert(game).to_sql()
    second, _ = build().insert(game).to_sql()
    assert first == second


# ====================
# 3. EDGE CASE TESTS
# ====================


@pytest.mark.edge_case
def test_join_without_from_raises():
    with pytest.raises(PreconditionError, match="from_"):
        build().join(User, "u", "u.id = g.user_id")


@pytest.mark.edge_case
def test_join_without_on_raises():
    with pytest.raises(PreconditionError, match="ON"):
        build().from_(Game, "g").join(User, "u")


@pytest.mark.edge_case
def test_and_without_from_raises():
    with pytest.raises(PreconditionError):
        build().and_(Game(code="x"), "g")


@pytest.mark.edge_case
def test_second_statement_on_same_query_raises(game):
    with pytest.raises(PreconditionError, match="new query"):
        build().from_(Game, "g").insert(game)


@pytest.mark.edge_case
def test_to_sql_twice_raises(game):
    query = build().insert(game)
    query.to_sql()
    with pytest.raises(PreconditionError, match="renders once"):
        query.to_sql()


@pytest.mark.edge_case
def test_calls_after_render_raise():
    query = build().from_(Game, "g")
    query.to_sql()
    with pytest.raises(PreconditionError):
        query.where("g.game_id = ?", 1)
    with pytest.raises(PreconditionError):
        query.limit(5)


@pytest.mark.edge_case
def test_to_sql_without_statement_raises():
    with pytest.raises(PreconditionError, match="needs a statement"):
        Query().to_sql()


@pytest.mark.edge_case
def test_inserts_empty_raises():
    with pytest.raises(PreconditionError, match="at least one"):
        build().inserts([])


@pytest.mark.edge_case
def test_inserts_mixed_types_raise():
    with pytest.raises(PreconditionError, match="one type"):
        build().inserts([Game(code="x"), User(name="y")])


@pytest.mark.edge_case
def test_inserts_binds_none_for_missing_columns(fixed_now):
    sql, args = build(now=fixed_now).inserts([Game(code="a", title="A"), Game(code="b")]).to_sql()
    assert "(game_code, game_title, create_date, write_date)" in sql
    assert "VALUES ($1, $2, $3, $4), ($5, $6, $7, $8)" in sql
    stamp = fixed_now()
    assert args == ["a", "A", stamp, stamp, "b", None, stamp, stamp]


@pytest.mark.edge_case
def test_inserts_rejects_columns_missing_from_first_row(fixed_now):
    query = build(now=fixed_now)
    with pytest.raises(PreconditionError, match="row 2 sets columns game_title"):
        query.inserts([Game(code="a"), Game(code="b", title="B")])
    assert query.args == ["a", fixed_now(), fixed_now()]


@pytest.mark.edge_case
@pytest.mark.parametrize("page", [0, -1])
def test_page_below_one_raises(page):
    with pytest.raises(InvalidPageError):
        build().from_(Game, "g").page(page)


@pytest.mark.edge_case
def test_invalid_page_error_is_value_error():
    with pytest.raises(ValueError):
        pagination_builder(0, 10)


@pytest.mark.edge_case
def test_limit_below_one_keeps_default():
    sql, _ = build().from_(Game, "g").limit(0).to_sql()
    assert sql.endswith("LIMIT 100 OFFSET 0")


@pytest.mark.edge_case
def test_page_size_caps_select_without_limit():
    sql, _ = build(page_size=25).from_(Game, "g").page(3).to_sql()
    assert sql.endswith("LIMIT 25 OFFSET 50")


@pytest.mark.edge_case
def test_limit_overrides_page_size():
    sql, _ = build(page_size=25).from_(Game, "g").limit(5).to_sql()
    assert sql.endswith("LIMIT 5 OFFSET 0")


@pytest.mark.edge_case
def test_page_size_below_one_keeps_default():
    assert build(page_size=0).page_size == DEFAULT_PAGE_SIZE


@pytest.mark.edge_case
def test_no_returning_without_id_field(fixed_now):
    @dataclass
    class Event:
        __tablename__ = "ref_event"
        kind: str = column("kind", default="")

    sql, _ = build(now=fixed_now).insert(Event(kind="login")).to_sql()
    assert sql == "INSERT INTO ref_event (kind, create_date, write_date) VALUES ($1, $2, $3)"


@pytest.mark.edge_case
def test_select_has_no_returning(game):
    sql, _ = build().from_(game, "g").to_sql()
    assert "RETURNING" not in sql


@pytest.mark.edge_case
def test_from_plain_value_raises():
    with pytest.raises(NotAnEntityError):
        build().from_({"game_id": 1}, "g")


@pytest.mark.edge_case
def test_set_tag_ignores_malformed_default_tags():
    @dataclass
    class Legacy:
        __tablename__ = "ref_legacy"
        code: str = field(default="", metadata={"sql": "bad'name", "db": "code"})
        label: str = field(default="", metadata={"sql": "bad'label", "db": "label"})

    with pytest.raises(MalformedTagError):
        entity_schema(Legacy)
    sql, args = build().set_tag("db").from_(Legacy(label="x"), "l").to_sql()
    assert sql == "SELECT l.* FROM ref_legacy l WHERE l.label = $1 LIMIT 100 OFFSET 0"
    assert args == ["x"]


@pytest.mark.edge_case
def test_where_with_too_few_args_raises(caplog):
    query = build().from_(Game, "g")
    with caplog.at_level(logging.ERROR, logger="sql.query_builder"):
        with pytest.raises(PreconditionError, match="2 placeholders for 1 args"):
            query.where("g.rate = ? OR g.rate = ?", 1)
    assert "Query builder misuse" in caplog.text


@pytest.mark.edge_case
def test_where_with_too_many_args_raises():
    with pytest.raises(PreconditionError, match="1 placeholders for 2 args"):
        build().updates(Game(title="x")).where("game_code = ?", "a", "b")


@pytest.mark.edge_case
def test_where_mismatch_leaves_numbering_intact():
    query = build().from_(Game, "g")
    with pytest.raises(PreconditionError):
        query.where("g.rate = ? OR g.rate = ?", 1)
    sql, args = query.and_(Game(code="x"), "g").to_sql()
    assert "g.game_code = $1" in sql
    assert args == ["x"]


@pytest.mark.regression
def test_where_after_entity_conditions_numbers_contiguously():
    sql, args = (
        build()
        .from_(Game, "g")
        .where("g.rate = ? OR g.rate = ?", 1, 2)
        .and_(Game(code="x"), "g")
        .to_sql()
    )
    assert placeholder_numbers(sql) == [1, 2, 3]
    assert args == [1, 2, "x"]
