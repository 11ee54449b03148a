"""
==================================================
Database execution layer for rendered statements.
==================================================

Runs the ``(sql, args)`` pairs produced by ``sql.query_builder`` against a
writer/reader pair of SQLAlchemy engines:
    - writes and transactions go to the writer (primary)
    - ``query``/``query_row`` go to the reader (replica) with retries
    - both engines share one timeout, retry count and pool size

Statements keep their positional ``$n`` markers until execution, where
``to_bind_params`` turns them into SQLAlchemy named binds (``:p1``...) so
``args[i]`` still binds to ``$(i + 1)``.

Key Features:
    - Writer/reader engine pair, or one engine serving both roles
    - Serializable transactions as a context manager
    - ``RETURNING`` support inside transactions
    - Retry with backoff on operational errors for reads
    - Availability checks and waiting for the server

Example:
    >>> from utils.database_utils import ConnectionSettings, new_single_database
    >>> from sql import build, scan_rows
    >>> from models.catalog import Game
    >>>
    >>> db = new_single_database(ConnectionSettings(url="postgresql://app@localhost/games"))
    >>> sql, args = build().from_(Game(enabled=True), "g").to_sql()
    >>> games = db.query(sql, args, lambda result: scan_rows(result, Game))
    >>>
    >>> with db.transaction() as conn:
    ...     sql, args = build().insert(Game(code="x1", title="Chess")).to_sql()
    ...     game_id = db.tx_execute_returning(conn, sql, args)
"""

import logging
import re
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import psycopg2
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import NoResultFound, OperationalError, SQLAlchemyError

from core.logger import shorten_sql
from logs.error_handler import ErrorRecovery
from sql.reflector import TAG_KEY
from sql.scanner import scan_one, scan_rows

logger = logging.getLogger(__name__)

WRITER = "writer"
READER = "reader"

SERIALIZABLE = "SERIALIZABLE"

POSITIONAL_PLACEHOLDER = re.compile(r"\$(\d+)")
# A lone colon followed by a word character would be read as a named bind.
_STRAY_COLON = re.compile(r"(?<![:\\]):(?=\w)")


class DatabaseError(Exception):
    """Exception raised when a statement cannot be executed as requested."""
    pass


class DatabaseConnectionError(DatabaseError):
    """Exception raised when database connection fails."""
    pass


@dataclass
class ConnectionSettings:
    """Settings for one engine.

    Attributes:
        url: SQLAlchemy database URL
        retry_count: Total attempts for reads failing with an operational error
        timeout: Connect and statement timeout in seconds (0 disables)
        pool_size: Connection pool size
    """

    url: str
    retry_count: int = 3
    timeout: int = 30
    pool_size: int = 5


def create_sqlalchemy_engine(
    settings: ConnectionSettings,
    echo: bool = False,
    max_overflow: int = 10
) -> Engine:
    """
    Create SQLAlchemy engine with connection pooling.

    PostgreSQL engines get ``connect_timeout`` and a server-side
    ``statement_timeout`` derived from ``settings.timeout``.

    Args:
        settings: Connection settings
        echo: Enable SQLAlchemy statement logging
        max_overflow: Maximum overflow connections

    Returns:
        Configured SQLAlchemy Engine
    """
    url = make_url(settings.url)
    engine_kwargs: Dict[str, Any] = {'echo': echo, 'pool_pre_ping': True}

    if url.get_backend_name() == 'postgresql':
        engine_kwargs['pool_size'] = settings.pool_size
        engine_kwargs['max_overflow'] = max_overflow
        if settings.timeout > 0:
            engine_kwargs['connect_args'] = {
                'connect_timeout': settings.timeout,
                'options': f"-c statement_timeout={settings.timeout * 1000}",
            }

    return create_engine(url, **engine_kwargs)


def to_bind_params(sql: str, args: Sequence[Any]) -> Tuple[str, Dict[str, Any]]:
    """
    Convert ``$n`` markers into SQLAlchemy named binds.

    Each ``$n`` becomes ``:pn`` bound to ``args[n - 1]``. Colons already in
    the text (other than ``::`` casts) are escaped so SQLAlchemy does not take
    them for binds.

    Args:
        sql: Statement with positional ``$n`` markers
        args: Ordered argument list

    Returns:
        Tuple of (statement for ``sqlalchemy.text``, parameter dict)

    Raises:
        DatabaseError: If a marker refers past the end of ``args``

    Example:
        >>> to_bind_params("SELECT * FROM ref_game WHERE game_code = $1", ["x1"])
        ('SELECT * FROM ref_game WHERE game_code = :p1', {'p1': 'x1'})
    """
    def _replace(match: re.Match) -> str:
        position = int(match.group(1))
        if position < 1 or position > len(args):
            raise DatabaseError(
                f"placeholder ${position} has no argument ({len(args)} args given)"
            )
        return f":p{position}"

    escaped = _STRAY_COLON.sub(r"\\:", sql)
    statement = POSITIONAL_PLACEHOLDER.sub(_replace, escaped)
    params = {f"p{i}": value for i, value in enumerate(args, start=1)}
    return statement, params


class Database:
    """
    Writer/reader engine pair running rendered statements.

    Attributes:
        writer: Engine for writes and transactions
        reader: Engine for reads (may be the writer engine)
        retry_count: Total attempts for reads
        timeout: Timeout in seconds the engines were created with
    """

    def __init__(
        self,
        writer: Optional[Engine],
        reader: Optional[Engine],
        retry_count: int = 1,
        timeout: int = 0,
        recovery: Optional[ErrorRecovery] = None
    ):
        self.writer = writer
        self.reader = reader
        self.retry_count = retry_count
        self.timeout = timeout
        self.recovery = recovery or ErrorRecovery.from_attempts(retry_count, base_delay=0.5)

    def _engine(self, role: str, operation: str) -> Engine:
        engine = self.writer if role == WRITER else self.reader
        if engine is None:
            logger.error(f"{operation}: the {role} connection is not configured")
            raise DatabaseConnectionError(f"{operation}: cannot access the {role} connection")
        return engine

    def ping(self) -> None:
        """
        Check that the writer and the reader accept connections.

        Raises:
            DatabaseConnectionError: If either engine is missing or unreachable
        """
        for role in (WRITER, READER):
            engine = self._engine(role, "ping")
            try:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            except SQLAlchemyError as e:
                logger.error(f"Ping {role} got error: {e}")
                raise DatabaseConnectionError(f"{role} database is not reachable: {e}") from e
        logger.debug("Ping succeeded for writer and reader")

    def close(self) -> None:
        """Dispose both connection pools."""
        if self.writer is not None:
            self.writer.dispose()
        if self.reader is not None and self.reader is not self.writer:
            self.reader.dispose()
        logger.info("Database connections closed")

    def execute(self, sql: str, args: Sequence[Any] = ()) -> int:
        """
        Run a write statement on the writer in its own transaction.

        Args:
            sql: Statement with ``$n`` markers
            args: Ordered argument list

        Returns:
            Number of rows affected
        """
        engine = self._engine(WRITER, "execute")
        statement, params = to_bind_params(sql, args)
        logger.info(f"Execute running: {shorten_sql(sql)}")
        try:
            with engine.begin() as conn:
                result = conn.execute(text(statement), params)
                return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Execute failed: {e} [query={shorten_sql(sql)}, args={list(args)}]")
            raise

    def _read(self, operation: str, sql: str, args: Sequence[Any], consume: Callable) -> Any:
        engine = self._engine(READER, operation)
        statement, params = to_bind_params(sql, args)
        logger.info(f"{operation} running: {shorten_sql(sql)} args={list(args)}")

        def _attempt():
            with engine.connect() as conn:
                return consume(conn.execute(text(statement), params))

        try:
            return self.recovery.retry_with_backoff(
                func=_attempt,
                retryable_exceptions=(OperationalError,),
                context={'operation': operation, 'instance': READER},
            )
        except NoResultFound:
            logger.warning(f"{operation}: result not found [query={shorten_sql(sql)}]")
            return None
        except SQLAlchemyError as e:
            logger.error(f"{operation} failed: {e} [query={shorten_sql(sql)}, args={list(args)}]")
            raise

    def query(self, sql: str, args: Sequence[Any], fn: Callable[[Any], Any]) -> Any:
        """
        Run a read on the reader and hand the result to ``fn``.

        ``fn`` receives the SQLAlchemy ``CursorResult`` while the connection is
        open. A ``NoResultFound`` raised by ``fn`` is logged and yields None.

        Args:
            sql: Statement with ``$n`` markers
            args: Ordered argument list
            fn: Callback consuming the result

        Returns:
            Whatever ``fn`` returns

        Raises:
            DatabaseConnectionError: If no reader is configured
        """
        return self._read("query", sql, args, fn)

    def query_row(self, sql: str, args: Sequence[Any], fn: Callable[[Any], Any]) -> Any:
        """
        Run a read expected to return one row and hand that row to ``fn``.

        Returns:
            Whatever ``fn`` returns, or None (logged as a warning) when the
            statement returned no rows
        """
        def _consume(result):
            row = result.first()
            if row is None:
                raise NoResultFound("no rows returned")
            return fn(row)

        return self._read("query_row", sql, args, _consume)

    def fetch_all(self, sql: str, args: Sequence[Any], model: Any, tag_key: str = TAG_KEY) -> List[Any]:
        """Run a read and scan every row into ``model`` entities."""
        rows = self.query(sql, args, lambda result: scan_rows(result, model, tag_key))
        return rows or []

    def fetch_one(self, sql: str, args: Sequence[Any], model: Any, tag_key: str = TAG_KEY) -> Optional[Any]:
        """Run a read and scan its first row into a ``model`` entity (None if empty)."""
        return self.query(sql, args, lambda result: scan_one(result, model, tag_key))

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """
        Open a serializable transaction on the writer.

        Commits when the block exits normally, rolls back when it raises.

        Yields:
            Connection to pass to tx_execute / tx_execute_returning
        """
        engine = self._engine(WRITER, "transaction")
        logger.info("Transaction starting")
        with engine.connect() as conn:
            conn = conn.execution_options(isolation_level=SERIALIZABLE)
            trans = conn.begin()
            try:
                yield conn
            except Exception as e:
                logger.error(f"Transaction rolled back: {e}")
                trans.rollback()
                raise
            else:
                trans.commit()
                logger.debug("Transaction committed")

    def tx_execute(self, conn: Connection, sql: str, args: Sequence[Any] = ()) -> int:
        """
        Run a statement inside an open transaction.

        Returns:
            Number of rows affected
        """
        statement, params = to_bind_params(sql, args)
        logger.info(f"tx_execute running: {shorten_sql(sql)} args={list(args)}")
        try:
            return conn.execute(text(statement), params).rowcount
        except SQLAlchemyError as e:
            logger.error(f"tx_execute failed: {e} [query={shorten_sql(sql)}]")
            raise

    def tx_execute_returning(
        self,
        conn: Connection,
        sql: str,
        args: Sequence[Any] = (),
        all_rows: bool = False
    ) -> Any:
        """
        Run an INSERT/UPDATE ending in ``RETURNING <id>`` inside a transaction.

        Args:
            conn: Connection from transaction()
            sql: Statement with a RETURNING clause
            args: Ordered argument list
            all_rows: If True, return the ids of every returned row

        Returns:
            The first returned id (None when no row matched), or a list of
            ids when all_rows is set

        Raises:
            DatabaseError: If the statement has no RETURNING clause
        """
        if "RETURNING" not in sql.upper():
            logger.error(f"tx_execute_returning: no RETURNING clause [query={shorten_sql(sql)}]")
            raise DatabaseError("query has no RETURNING id clause")

        statement, params = to_bind_params(sql, args)
        logger.info(f"tx_execute_returning running: {shorten_sql(sql)} args={list(args)}")
        try:
            result = conn.execute(text(statement), params)
            if all_rows:
                return list(result.scalars())
            return result.scalar()
        except SQLAlchemyError as e:
            logger.error(f"tx_execute_returning failed: {e} [query={shorten_sql(sql)}]")
            raise

    def with_transaction(self, fn: Callable[[Connection], Any]) -> Any:
        """Run ``fn(conn)`` inside transaction() and return its result."""
        with self.transaction() as conn:
            return fn(conn)


def new_database(writer: ConnectionSettings, reader: ConnectionSettings) -> Database:
    """
    Build a Database with separate writer and reader engines.

    Retry count and timeout are taken from the writer settings.
    """
    logger.info("Creating writer and reader engines")
    return Database(
        writer=create_sqlalchemy_engine(writer),
        reader=create_sqlalchemy_engine(reader),
        retry_count=writer.retry_count,
        timeout=writer.timeout,
    )


def new_single_database(settings: ConnectionSettings) -> Database:
    """Build a Database whose reader is the writer engine."""
    engine = create_sqlalchemy_engine(settings)
    return Database(
        writer=engine,
        reader=engine,
        retry_count=settings.retry_count,
        timeout=settings.timeout,
    )


def check_database_available(url: str, timeout: int = 5) -> bool:
    """
    Check if a PostgreSQL server accepts connections, without an engine.

    Args:
        url: SQLAlchemy-style PostgreSQL URL
        timeout: Connection timeout in seconds

    Returns:
        True if a connection could be opened, False otherwise
    """
    dsn = make_url(url).set(drivername='postgresql').render_as_string(hide_password=False)
    try:
        conn = psycopg2.connect(dsn, connect_timeout=timeout)
        conn.close()
        return True
    except psycopg2.OperationalError as e:
        logger.debug(f"Database not available: {e}")
        return False


def wait_for_database(
    db: Database,
    max_retries: int = 10,
    retry_delay: float = 2
) -> bool:
    """
    Wait for both engines to answer ``ping()``.

    Args:
        db: Database to ping
        max_retries: Maximum number of attempts
        retry_delay: Delay between attempts in seconds

    Returns:
        True once the database is available

    Raises:
        DatabaseConnectionError: If the database never becomes available
    """
    logger.info("Waiting for the database...")
    for attempt in range(1, max_retries + 1):
        try:
            db.ping()
            logger.info(f"✅ Database is available (attempt {attempt}/{max_retries})")
            return True
        except DatabaseConnectionError as e:
            if attempt < max_retries:
                logger.warning(
                    f"⏳ Database not available yet (attempt {attempt}/{max_retries}), "
                    f"retrying in {retry_delay}s: {e}"
                )
                time.sleep(retry_delay)

    error_msg = f"Database did not become available after {max_retries} attempts"
    logger.error(f"❌ {error_msg}")
    raise DatabaseConnectionError(error_msg)
