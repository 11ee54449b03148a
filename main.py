"""
=========================================================
Command-line entry point for the SQL entity mapper.
=========================================================

A thin CLI around the library:
    - ``--check``: build the writer/reader engines from configuration and
      wait until both answer a ping
    - ``--demo``: render the sample catalog statements and print their SQL
      and arguments (no database needed)

Usage:
    # Render sample statements
    python main.py --demo

    # Verify database connectivity with DEBUG logging and span output
    python main.py --check --trace --log-level DEBUG

Example:
    >>> from main import render_demo_statements
    >>>
    >>> for label, sql, args in render_demo_statements():
    ...     print(label, sql)
"""

import argparse
import sys
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from sqlalchemy.engine import make_url

from core.config import config
from core.logger import get_logger, setup_logging
from logs.query_tracer import SpanRecorder, TracedDatabase
from models.catalog import Game, User
from sql import NullInt64, NullString, NullTime, build
from utils.database_utils import (
    DatabaseConnectionError,
    check_database_available,
    new_database,
    new_single_database,
    wait_for_database,
)

logger = get_logger(__name__)

DEMO_TIMESTAMP = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _demo_game() -> Game:
    return Game(
        id=507,
        code="dota-2",
        title="DOTA2",
        description=NullString.of("08675467484389"),
        enabled=True,
        rate=NullInt64.of(75),
        release=NullTime.of(DEMO_TIMESTAMP),
    )


def render_demo_statements() -> List[Tuple[str, str, List[Any]]]:
    """
    Render one statement of each kind for the sample entities.

    Returns:
        List of (label, sql, args) tuples
    """
    tag_key = config.tag_key
    page_size = config.page_size
    game = _demo_game()

    def now() -> datetime:
        return DEMO_TIMESTAMP

    statements = []

    sql, args = (
        build(tag_key, now, page_size)
        .from_(Game, "g")
        .and_(Game(code="dota-2", enabled=True), "g")
        .or_(Game(id=1, code="dota-2"), "g")
        .to_sql()
    )
    statements.append(("select", sql, args))

    sql, args = (
        build(tag_key, now, page_size)
        .from_(Game(id=1, code="dota-2"), "g")
        .join(User, "u", "u.id = g.user_id")
        .where("u.name LIKE ?", "%budi%")
        .to_sql()
    )
    statements.append(("join", sql, args))

    sql, args = build(tag_key, now).insert(game).to_sql()
    statements.append(("insert", sql, args))

    sql, args = build(tag_key, now).inserts([game, _demo_game()]).to_sql()
    statements.append(("inserts", sql, args))

    sql, args = (
        build(tag_key, now)
        .updates(game)
        .where("game_code = ?", game.code)
        .to_sql()
    )
    statements.append(("update", sql, args))

    return statements


def run_check(max_retries: int = 5, retry_delay: float = 2, trace: bool = False) -> bool:
    """
    Build the engines from configuration and wait for both to respond.

    Each PostgreSQL server is first probed with a raw psycopg2 connection
    so an unreachable host is reported before the engine pings start.

    Args:
        max_retries: Ping attempts before giving up
        retry_delay: Seconds between attempts
        trace: If True, log a span for the final ping

    Returns:
        True if the database is reachable
    """
    db_config = config.db
    for url in sorted({db_config.writer_url, db_config.reader_url}):
        if not url.startswith("postgresql"):
            continue
        if not check_database_available(url, timeout=db_config.timeout or 5):
            logger.warning(f"⏳ {make_url(url)} is not accepting connections yet")

    if db_config.has_replica:
        db = new_database(db_config.settings(), db_config.settings(reader=True))
    else:
        db = new_single_database(db_config.settings())

    try:
        wait_for_database(db, max_retries=max_retries, retry_delay=retry_delay)
        if trace:
            recorder = SpanRecorder()
            TracedDatabase(db, recorder).ping()
            span = recorder.spans[-1]
            logger.info(
                f"{span.name}: {span.elapsed * 1000:.2f}ms wall, "
                f"{(span.cpu_time or 0.0) * 1000:.2f}ms cpu"
            )
        return True
    except DatabaseConnectionError as e:
        logger.error(f"❌ Database check failed: {e}")
        return False
    finally:
        db.close()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Command-line interface for the mapper.

    Exit Codes:
        0: Success
        1: Error or no operation given
        130: User interrupt (Ctrl+C)
    """
    parser = argparse.ArgumentParser(
        description="SQL entity mapper",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Print the SQL rendered for the sample entities
  python main.py --demo

  # Wait for the configured database
  python main.py --check --retries 10
        """
    )
    parser.add_argument(
        '--check',
        action='store_true',
        help='Ping the configured writer and reader databases'
    )
    parser.add_argument(
        '--demo',
        action='store_true',
        help='Print SQL and arguments rendered for sample entities'
    )
    parser.add_argument(
        '--retries',
        type=int,
        default=5,
        help='Ping attempts for --check'
    )
    parser.add_argument(
        '--trace',
        action='store_true',
        help='Record and log a span for the --check ping'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default=None,
        help='Logging level (defaults to MAPPER_LOG_LEVEL or INFO)'
    )

    args = parser.parse_args(argv)
    setup_logging(log_level=args.log_level)

    if not (args.check or args.demo):
        parser.print_help()
        logger.warning("⚠️  No operation specified. Use --demo or --check.")
        return 1

    try:
        if args.demo:
            for label, sql, sql_args in render_demo_statements():
                print(f"-- {label}")
                print(sql)
                print(f"   args: {sql_args!r}")

        if args.check:
            if not run_check(max_retries=args.retries, trace=args.trace):
                return 1
            logger.info("✅ Database check passed")

        return 0

    except KeyboardInterrupt:
        logger.warning("⚠️  Operation interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"❌ Unexpected error: {e}", exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
