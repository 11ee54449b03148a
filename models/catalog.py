"""
===========================================================
Catalog entities: games, users and members.
===========================================================

Tagged dataclass entities for the reference catalog tables, plus the
SQLAlchemy Core ``Table`` definitions describing the same tables for
``metadata.create_all`` on development and test databases.

Entities:
    Game: ref_game, one playable title
    User: ref_user, an account that owns games
    Member: ref_member, same shape as User in its own table

Audit columns (``create_date``, ``write_date``...) are plain untagged
fields: the query builder never renders them from the entity (insert and
update bind their own timestamps), but the row scanner fills them by
attribute name when a SELECT returns them.

Example:
    >>> from models.catalog import Game
    >>> from sql import NullString, build
    >>>
    >>> game = Game(id=507, description=NullString.of("Froze"))
    >>> build().from_(game, "g").to_sql()[0]
    'SELECT g.* FROM ref_game g WHERE g.game_description = $1 AND g.game_id = $2 LIMIT 100 OFFSET 0'
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

from sql.nullable import NullInt64, NullString, NullTime
from sql.reflector import column

metadata = MetaData()


@dataclass
class Game:
    """A game in the reference catalog."""

    __tablename__ = "ref_game"

    create_date: Optional[datetime] = None
    created_by: str = ""
    write_date: Optional[datetime] = None
    updated_by: str = ""
    deleted_at: Optional[datetime] = None
    id: int = column("game_id", default=0)
    code: str = column("game_code", default="")
    title: str = column("game_title", default="")
    description: NullString = column("game_description", default=NullString())
    enabled: bool = column("enabled", default=False)
    rate: NullInt64 = column("rate", default=NullInt64())
    release: NullTime = column("release", default=NullTime())


@dataclass
class User:
    """A user account."""

    __tablename__ = "ref_user"

    create_date: Optional[datetime] = None
    created_by: str = ""
    write_date: Optional[datetime] = None
    updated_by: str = ""
    deleted_at: Optional[datetime] = None
    id: int = column("id", default=0)
    name: str = column("name", default="")


@dataclass
class Member:
    """A member; shares the user shape but lives in ref_member."""

    __tablename__ = "ref_member"

    create_date: Optional[datetime] = None
    created_by: str = ""
    write_date: Optional[datetime] = None
    updated_by: str = ""
    deleted_at: Optional[datetime] = None
    id: int = column("id", default=0)
    name: str = column("name", default="")


def _audit_columns():
    return [
        Column('create_date', DateTime(timezone=True)),
        Column('created_by', String(100)),
        Column('write_date', DateTime(timezone=True)),
        Column('updated_by', String(100)),
        Column('deleted_at', DateTime(timezone=True)),
    ]


ref_game = Table(
    'ref_game', metadata,
    Column('game_id', Integer, primary_key=True, autoincrement=True),
    Column('game_code', String(64), nullable=False),
    Column('game_title', String(255)),
    Column('game_description', Text),
    Column('enabled', Boolean, default=False),
    Column('rate', Integer),
    Column('release', DateTime(timezone=True)),
    *_audit_columns(),
)

ref_user = Table(
    'ref_user', metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('name', String(255)),
    *_audit_columns(),
)

ref_member = Table(
    'ref_member', metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('name', String(255)),
    *_audit_columns(),
)
