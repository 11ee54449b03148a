"""
============================
Entity-driven query builder.
============================

``Query`` accumulates one SQL statement through a fluent chain of calls and
renders it once with ``to_sql()``, returning the SQL text and the ordered
argument list. Column lists and WHERE conditions are derived from tagged
dataclass entities (see ``sql.reflector``); raw fragments cover what
reflection cannot express.

Statement kinds and the calls valid for each:
    SELECT:        from_() -> join() / and_() / or_() / where() / limit() / page()
    INSERT:        insert() -> where()
    INSERT (many): inserts() -> where()
    UPDATE:        updates() -> where()

Placeholders:
    Statements use positional ``$n`` markers. Raw fragments passed to
    ``where()`` (and the conditions generated by from_/and_/or_) use the
    anonymous ``?`` marker, renumbered at render time so that ``args[i]``
    always binds to ``$(i + 1)``.

Usage:
    from sql.query_builder import build

    sql, args = (
        build()
        .from_(Game(), "g")
        .and_(Game(code="code", enabled=True), "g")
        .or_(Game(id=1, code="code"), "g")
        .to_sql()
    )
    # SELECT g.* FROM ref_game g WHERE g.enabled = $1 AND g.game_code = $2
    #   OR g.game_code = $3 OR g.game_id = $4 LIMIT 100 OFFSET 0

    sql, args = build().updates(game).where("game_code = ?", game.code).to_sql()
    # UPDATE ref_game SET enabled = $2, ..., write_date = $1
    #   WHERE game_code = $6 RETURNING game_id
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sql.exceptions import InvalidPageError, PreconditionError
from sql.reflector import (
    TAG_KEY,
    entity_class,
    entity_schema,
    fields_to_args,
    render_fields,
    table_name,
    to_arg,
)

logger = logging.getLogger(__name__)

# Row cap applied to SELECT statements when neither limit() nor a
# page_size was given.
DEFAULT_PAGE_SIZE = 100

# UPDATE statements bind the write timestamp first; SET columns start at $2.
WRITE_DATE_POSITION = 1

CREATE_DATE_COLUMN = "create_date"
WRITE_DATE_COLUMN = "write_date"

ANONYMOUS_PLACEHOLDER = "?"


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


class StatementKind(Enum):
    SELECT = "SELECT"
    INSERT = "INSERT"
    INSERT_MANY = "INSERT_MANY"
    UPDATE = "UPDATE"


@dataclass
class WhereFragment:
    """A pending WHERE condition and the arguments it binds."""

    connector: str
    text: str
    args: List[Any] = field(default_factory=list)


def pagination_builder(page: int, page_size: int) -> Dict[str, int]:
    """
    Calculate LIMIT and OFFSET for pagination.

    Args:
        page: Page number (1-based)
        page_size: Number of records per page

    Returns:
        Dictionary with limit and offset values

    Raises:
        InvalidPageError: If page is below 1
    """
    if page < 1:
        raise InvalidPageError(f"page must be 1 or greater, got {page}")
    offset = (page - 1) * page_size
    return {
        'limit': page_size,
        'offset': offset
    }


def renumber_placeholders(fragment: str, start: int) -> Tuple[str, int]:
    """
    Rewrite each anonymous ``?`` marker, left to right, as ``$n``.

    Args:
        fragment: SQL fragment using ``?`` markers
        start: Number given to the first marker

    Returns:
        Tuple of (rewritten fragment, number of markers rewritten)
    """
    pieces = fragment.split(ANONYMOUS_PLACEHOLDER)
    out = [pieces[0]]
    for offset, piece in enumerate(pieces[1:]):
        out.append(f"${start + offset}")
        out.append(piece)
    return "".join(out), len(pieces) - 1


class Query:
    """
    Single-use SQL statement accumulator.

    Attributes:
        tag_key: Dataclass metadata key holding field tags
        now: Callable returning the timestamp bound to create/write dates
        sql: Rendered SQL text (set by to_sql)
        args: Ordered argument list
        rows: Row cap for SELECT set by limit() (0 means page_size)
        page_size: Row cap for SELECT when limit() is not called
        page_number: 1-based page for SELECT
        id_column: Identifier column of the statement's entity

    Example:
        >>> sql, args = Query().insert(game).to_sql()
        >>> sql.startswith("INSERT INTO ref_game (")
        True
    """

    def __init__(
        self,
        tag_key: str = TAG_KEY,
        now: Optional[Callable[[], datetime]] = None,
        page_size: int = DEFAULT_PAGE_SIZE
    ):
        self.tag_key = tag_key
        self.now = now or utcnow
        self.page_size = page_size if page_size > 0 else DEFAULT_PAGE_SIZE
        self.sql = ""
        self.args: List[Any] = []
        self.rows = 0
        self.page_number = 1
        self.id_column = ""

        self._kind: Optional[StatementKind] = None
        self._statement = ""
        self._select_columns: List[str] = []
        self._from_clause = ""
        self._joins: List[str] = []
        self._where: List[WhereFragment] = []
        self._rendered = False

    @property
    def kind(self) -> Optional[StatementKind]:
        return self._kind

    # ------------------------------------------------------------------
    # state checks
    # ------------------------------------------------------------------

    def _fail(self, message: str) -> None:
        logger.error(f"Query builder misuse: {message}")
        raise PreconditionError(message)

    def _ensure_open(self, operation: str) -> None:
        if self._rendered:
            self._fail(f"{operation}() called after to_sql(); a query renders once")

    def _start(self, kind: StatementKind, operation: str) -> None:
        self._ensure_open(operation)
        if self._kind is not None:
            self._fail(
                f"{operation}() cannot follow a {self._kind.value} statement; "
                f"build a new query instead"
            )
        self._kind = kind

    def _require_select(self, operation: str) -> None:
        self._ensure_open(operation)
        if self._kind is not StatementKind.SELECT:
            self._fail(f"{operation}() requires a SELECT started with from_()")

    def _append_where(self, connector: str, text: str, args: List[Any]) -> None:
        self._where.append(WhereFragment(connector if self._where else "", text, args))

    # ------------------------------------------------------------------
    # fluent API
    # ------------------------------------------------------------------

    def set_tag(self, tag_key: str) -> "Query":
        """Use ``tag_key`` instead of ``"sql"`` to read field tags."""
        self._ensure_open("set_tag")
        self.tag_key = tag_key
        return self

    def limit(self, rows: int) -> "Query":
        """Cap the rows returned by a SELECT (values below 1 keep the default)."""
        self._ensure_open("limit")
        self.rows = rows
        return self

    def page(self, page: int) -> "Query":
        """
        Select the 1-based page returned by a SELECT.

        Raises:
            InvalidPageError: If page is below 1
        """
        self._ensure_open("page")
        if page < 1:
            raise InvalidPageError(f"page must be 1 or greater, got {page}")
        self.page_number = page
        return self

    def from_(self, entity: Any, alias: str) -> "Query":
        """
        Start ``SELECT <alias>.* FROM <table> <alias>``.

        Tagged, non-empty fields of ``entity`` become an implicit WHERE
        condition (``alias.col = ?`` joined by AND), so a partially filled
        entity works as a query by example. Pass the class for no filter.
        """
        self._start(StatementKind.SELECT, "from_")
        table = table_name(entity)
        self._select_columns = [f"{alias}.*"]
        self._from_clause = f"{table} {alias}"

        args: List[Any] = []
        conditions = fields_to_args(
            entity,
            lambda key, n, opts: f"{alias}.{key} = {ANONYMOUS_PLACEHOLDER}",
            args,
            self.tag_key,
        )
        if conditions:
            self._append_where("AND", " AND ".join(conditions), args)
        return self

    def join(self, entity: Any, alias: str, *on: str) -> "Query":
        """
        Join another entity's table and add ``<alias>.*`` to the select list.

        Args:
            entity: Entity instance or class to join
            alias: Alias of the joined table
            *on: ON condition fragments, e.g. ``"u.id = g.user_id"``

        Raises:
            PreconditionError: Without a prior from_() or without ON fragments
        """
        self._require_select("join")
        if not on:
            self._fail("join() requires at least one ON fragment")
        table = table_name(entity)
        self._select_columns.append(f"{alias}.*")
        self._joins.append(f"JOIN {table} {alias} ON {' '.join(on)}")
        return self

    def _operator(self, entity: Any, alias: str, operator: str) -> "Query":
        self._require_select(operator.lower() + "_")
        args: List[Any] = []
        conditions = fields_to_args(
            entity,
            lambda key, n, opts: f"{alias}.{key} = {ANONYMOUS_PLACEHOLDER}",
            args,
            self.tag_key,
        )
        if conditions:
            self._append_where(operator, f" {operator} ".join(conditions), args)
        return self

    def and_(self, entity: Any, alias: str) -> "Query":
        """Add the entity's fields as ``alias.col = ?`` conditions joined by AND."""
        return self._operator(entity, alias, "AND")

    def or_(self, entity: Any, alias: str) -> "Query":
        """Add the entity's fields as ``alias.col = ?`` conditions joined by OR."""
        return self._operator(entity, alias, "OR")

    def where(self, fragment: str, *args: Any) -> "Query":
        """
        Append a raw WHERE fragment with its own arguments.

        Use ``?`` for each bound value; it is renumbered at render time.

        Raises:
            PreconditionError: If the number of ``?`` markers differs from
                the number of args

        Example:
            >>> query.where("u.name LIKE ?", "%budi%")
        """
        self._ensure_open("where")
        markers = fragment.count(ANONYMOUS_PLACEHOLDER)
        if markers != len(args):
            self._fail(
                f"WHERE fragment {fragment!r} has {markers} placeholders for {len(args)} args"
            )
        self._append_where("AND", fragment, list(args))
        return self

    def insert(self, entity: Any) -> "Query":
        """
        Build ``INSERT INTO <table> (<cols>, create_date, write_date) VALUES ($1..$N)``.

        Columns are the entity's tagged, non-empty fields in sorted order,
        followed by the two timestamp columns bound to the current UTC time.
        """
        self._start(StatementKind.INSERT, "insert")
        schema = entity_schema(entity_class(entity), self.tag_key)
        table = table_name(entity)
        self.id_column = schema.id_column

        columns = fields_to_args(entity, lambda key, n, opts: key, self.args, self.tag_key)
        columns += [CREATE_DATE_COLUMN, WRITE_DATE_COLUMN]
        stamp = self.now()
        self.args += [stamp, stamp]

        params = ", ".join(f"${i}" for i in range(1, len(self.args) + 1))
        self._statement = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({params})"
        return self

    def inserts(self, entities: Iterable[Any]) -> "Query":
        """
        Build one multi-row INSERT for a batch of entities of one type.

        The column list comes from the first entity. Placeholders run
        continuously across rows; a column left empty in a later row binds
        ``None``. Every row ends with its own create/write timestamps.

        Raises:
            PreconditionError: If ``entities`` is empty, mixes types, or a
                later row sets a column the first row leaves empty
        """
        batch = list(entities)
        if not batch:
            self._ensure_open("inserts")
            self._fail("inserts() requires at least one entity")
        self._start(StatementKind.INSERT_MANY, "inserts")

        first = batch[0]
        entity_type = entity_class(first)
        schema = entity_schema(entity_type, self.tag_key)
        table = table_name(first)
        self.id_column = schema.id_column

        columns = [rendered.column for rendered in render_fields(first, self.tag_key)]
        rows: List[str] = []
        for entity in batch:
            if entity_class(entity) is not entity_type:
                self._fail(
                    f"inserts() requires entities of one type, got "
                    f"{entity_type.__name__} and {type(entity).__name__}"
                )
            values = {
                rendered.column: to_arg(rendered)
                for rendered in render_fields(entity, self.tag_key)
            }
            extra = sorted(set(values) - set(columns))
            if extra:
                self._fail(
                    f"inserts() row {len(rows) + 1} sets columns {', '.join(extra)} "
                    f"missing from the first row"
                )
            placeholders = []
            for col in columns:
                self.args.append(values.get(col))
                placeholders.append(f"${len(self.args)}")
            stamp = self.now()
            self.args += [stamp, stamp]
            placeholders += [f"${len(self.args) - 1}", f"${len(self.args)}"]
            rows.append(f"({', '.join(placeholders)})")

        all_columns = columns + [CREATE_DATE_COLUMN, WRITE_DATE_COLUMN]
        self._statement = (
            f"INSERT INTO {table} ({', '.join(all_columns)}) VALUES {', '.join(rows)}"
        )
        return self

    def updates(self, entity: Any) -> "Query":
        """
        Build ``UPDATE <table> SET <col> = $k, ..., write_date = $1``.

        The write timestamp is always argument 1 and SET placeholders start
        at 2. The identifier column is never part of the SET list.
        """
        self._start(StatementKind.UPDATE, "updates")
        schema = entity_schema(entity_class(entity), self.tag_key)
        table = table_name(entity)
        self.id_column = schema.id_column

        self.args.append(self.now())
        id_column = self.id_column
        assignments = fields_to_args(
            entity,
            lambda key, n, opts: "" if key == id_column else f"{key} = ${n}",
            self.args,
            self.tag_key,
        )
        assignments.append(f"{WRITE_DATE_COLUMN} = ${WRITE_DATE_POSITION}")
        self._statement = f"UPDATE {table} SET {', '.join(assignments)}"
        return self

    # ------------------------------------------------------------------
    # rendering
    # ------------------------------------------------------------------

    def _base_statement(self) -> str:
        if self._kind is StatementKind.SELECT:
            statement = f"SELECT {', '.join(self._select_columns)} FROM {self._from_clause}"
            for join in self._joins:
                statement += f" {join}"
            return statement
        return self._statement

    def to_sql(self) -> Tuple[str, List[Any]]:
        """
        Render the statement.

        Appends pending WHERE fragments (renumbering ``?`` markers), LIMIT and
        OFFSET for SELECT, and ``RETURNING <id column>`` for INSERT/UPDATE.

        Returns:
            Tuple of (SQL text, argument list)

        Raises:
            PreconditionError: If called twice or before any statement was started
        """
        self._ensure_open("to_sql")
        if self._kind is None:
            self._fail("to_sql() needs a statement: call from_(), insert(), inserts() or updates()")

        parts = [self._base_statement()]
        if self._where:
            parts.append(" WHERE ")
            for fragment in self._where:
                text, _ = renumber_placeholders(fragment.text, len(self.args) + 1)
                if fragment.connector:
                    parts.append(f" {fragment.connector} ")
                parts.append(text)
                self.args.extend(fragment.args)

        if self._kind is StatementKind.SELECT:
            rows = self.rows if self.rows > 0 else self.page_size
            paging = pagination_builder(self.page_number, rows)
            parts.append(f" LIMIT {paging['limit']} OFFSET {paging['offset']}")
        elif self.id_column:
            parts.append(f" RETURNING {self.id_column}")

        self.sql = "".join(parts)
        self._rendered = True
        logger.debug(f"Rendered {self._kind.value} with {len(self.args)} args: {self.sql}")
        return self.sql, list(self.args)


def build(
    tag_key: str = TAG_KEY,
    now: Optional[Callable[[], datetime]] = None,
    page_size: int = DEFAULT_PAGE_SIZE
) -> Query:
    """Start a new query."""
    return Query(tag_key=tag_key, now=now, page_size=page_size)
