"""
========================================
Pytest suite for sql/scanner.py
========================================

Sections:
---------
1. Unit tests - column matching, per-kind conversion, scan_rows/scan_one
2. Edge case tests - NULLs, unknown columns, bad models, clone_entity

How to Execute:
---------------
All tests:          pytest tests/tests_sql/test_scanner.py -v
By category:        pytest tests/tests_sql/test_scanner.py -m unit
"""

from datetime import datetime, timezone

import pytest

from models.catalog import Game, User
from sample_entities import Account, Plain
from sql.exceptions import NilEntityError, NotAnEntityError
from sql.nullable import NullInt64, NullString, NullTime
from sql.scanner import clone_entity, column_field_map, scan_one, scan_row, scan_rows

# ====================
# Mock Helper Classes
# ====================


class FakeResult:
    """Mock SQLAlchemy CursorResult: keys() plus iteration and fetchone()."""

    def __init__(self, columns, rows):
        self.columns = list(columns)
        self.rows = list(rows)

    def keys(self):
        return self.columns

    def __iter__(self):
        return iter(self.rows)

    def fetchone(self):
        if not self.rows:
            return None
        return self.rows.pop(0)


# ===============
# 1. UNIT TESTS
# ===============


@pytest.mark.unit
def test_column_field_map_is_case_insensitive():
    mapping = column_field_map(Game, ["GAME_ID", "Game_Title", "unknown"])
    assert mapping[0].attr == "id"
    assert mapping[1].attr == "title"
    assert mapping[2] is None


@pytest.mark.unit
def test_scan_row_converts_each_kind():
    release = datetime(2020, 1, 1, tzinfo=timezone.utc)
    game = scan_row(
        ["game_id", "game_code", "game_title", "game_description", "enabled", "rate", "release"],
        ["7", b"x1", "Chess", "classic", 1, "75", release],
        Game,
    )
    assert game.id == 7
    assert game.code == "x1"
    assert game.title == "Chess"
    assert game.description == NullString.of("classic")
    assert game.enabled is True
    assert game.rate == NullInt64.of(75)
    assert game.release == NullTime.of(release)


@pytest.mark.unit
def test_scan_row_fills_untagged_fields_by_attribute_name():
    stamp = datetime(2021, 6, 1, tzinfo=timezone.utc)
    user = scan_row(["id", "name", "create_date", "created_by"], [3, "budi", stamp, "admin"], User)
    assert user.id == 3
    assert user.name == "budi"
    assert user.create_date == stamp
    assert user.created_by == "admin"


@pytest.mark.unit
def test_scan_row_accepts_instance_as_model():
    user = scan_row(["id"], [1], User(name="ignored"))
    assert isinstance(user, User)
    assert user.name == ""


@pytest.mark.unit
def test_scan_rows_reads_every_row():
    result = FakeResult(["id", "name"], [(1, "a"), (2, "b")])
    users = scan_rows(result, User)
    assert [(u.id, u.name) for u in users] == [(1, "a"), (2, "b")]


@pytest.mark.unit
def test_scan_one_returns_first_row_or_none():
    assert scan_one(FakeResult(["id"], [(5,), (6,)]), User).id == 5
    assert scan_one(FakeResult(["id"], []), User) is None


@pytest.mark.unit
def test_scan_bool_from_text():
    assert scan_row(["enabled"], ["f"], Game).enabled is False
    assert scan_row(["enabled"], ["true"], Game).enabled is True


# ====================
# 2. EDGE CASE TESTS
# ====================


@pytest.mark.edge_case
def test_null_values_make_wrappers_invalid():
    game = scan_row(["game_description", "rate", "release"], [None, None, None], Game)
    assert game.description == NullString()
    assert game.rate.valid is False
    assert game.release.valid is False


@pytest.mark.edge_case
def test_null_keeps_plain_field_default():
    game = scan_row(["game_title", "enabled"], [None, None], Game)
    assert game.title == ""
    assert game.enabled is False


@pytest.mark.edge_case
def test_skipped_fields_never_scan():
    account = scan_row(["secret", "email"], ["s3cr3t", "a@b.c"], Account)
    assert account.secret == ""
    assert account.email == "a@b.c"


@pytest.mark.edge_case
def test_length_mismatch_raises():
    with pytest.raises(ValueError, match="2 values for 1 columns"):
        scan_row(["id"], [1, 2], User)


@pytest.mark.edge_case
def test_bad_conversion_raises():
    with pytest.raises(ValueError):
        scan_row(["game_id"], ["not-a-number"], Game)


@pytest.mark.edge_case
def test_scan_into_none_or_plain_value():
    with pytest.raises(NilEntityError):
        scan_row(["id"], [1], None)
    with pytest.raises(NotAnEntityError):
        scan_row(["id"], [1], "user")


@pytest.mark.edge_case
def test_clone_entity_copies_shared_fields():
    src = Game(id=9, code="c", rate=NullInt64.of(3))
    dest = clone_entity(src, Game())
    assert dest == src
    assert dest is not src


@pytest.mark.edge_case
def test_clone_entity_across_types_copies_matching_names():
    dest = clone_entity(User(id=4, name="budi"), Account())
    assert dest.id == 4
    assert dest.email == ""


@pytest.mark.edge_case
def test_clone_entity_rejects_classes_and_none():
    with pytest.raises(NilEntityError):
        clone_entity(None, Game())
    with pytest.raises(NotAnEntityError):
        clone_entity(Game, Game())
    with pytest.raises(NotAnEntityError):
        clone_entity(Plain(), "x")
