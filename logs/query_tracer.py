"""
=========================================
Span tracing for database operations.
=========================================

``TracedDatabase`` wraps a ``Database`` and records one span per call:
operation name, statement, instance (writer or reader), arguments, wall
time and process CPU time. Spans are kept by a ``SpanRecorder`` and, when
enabled, logged at DEBUG level.

Classes:
    Span: One recorded operation
    SpanRecorder: In-memory span sink with simple summaries
    TracedDatabase: Database wrapper recording spans

Example:
    >>> from logs.query_tracer import SpanRecorder, TracedDatabase
    >>>
    >>> recorder = SpanRecorder()
    >>> traced = TracedDatabase(db, recorder)
    >>> traced.execute("UPDATE ref_game SET enabled = $1", [False])
    >>> span = recorder.spans[-1]
    >>> span.name, span.tags['db.instance']
    ('tracer.execute', 'writer')
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

import psutil

from core.logger import shorten_sql
from utils.database_utils import READER, WRITER, Database

logger = logging.getLogger(__name__)

DB_TYPE = "sql"


class TracerError(Exception):
    """Exception raised when a span is finished twice or never started."""
    pass


@dataclass
class Span:
    """One traced database operation.

    Attributes:
        name: Operation name, e.g. ``tracer.query``
        tags: ``db.statement``, ``db.instance``, ``db.type``, ``db.values``
        elapsed: Wall time in seconds
        cpu_time: User + system CPU seconds spent by this process
        error: Exception type name when the operation raised
    """

    name: str
    tags: Dict[str, Any] = field(default_factory=dict)
    elapsed: float = 0.0
    cpu_time: Optional[float] = None
    error: Optional[str] = None
    finished: bool = False


def _cpu_seconds() -> Optional[float]:
    try:
        times = psutil.Process().cpu_times()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        logger.warning("Could not access process CPU times")
        return None
    return times.user + times.system


class SpanRecorder:
    """
    Collects finished spans.

    Attributes:
        spans: Finished spans, oldest first
        log_spans: If True, each finished span is logged at DEBUG
    """

    def __init__(self, log_spans: bool = True):
        self.spans: List[Span] = []
        self.log_spans = log_spans

    def record(self, span: Span) -> None:
        if span.finished:
            raise TracerError(f"span {span.name} was already recorded")
        span.finished = True
        self.spans.append(span)
        if self.log_spans:
            statement = span.tags.get('db.statement')
            logger.debug(
                f"{span.name} [{span.tags.get('db.instance')}] "
                f"{span.elapsed * 1000:.2f}ms"
                + (f" {shorten_sql(statement)}" if statement else "")
                + (f" error={span.error}" if span.error else "")
            )

    def by_name(self, name: str) -> List[Span]:
        """Return the spans recorded under ``name``."""
        return [span for span in self.spans if span.name == name]

    def total_elapsed(self) -> float:
        """Sum of wall time over all spans, in seconds."""
        return sum(span.elapsed for span in self.spans)

    def clear(self) -> None:
        self.spans.clear()


class TracedDatabase:
    """
    Database wrapper that records a span around each operation.

    Exposes the same operations as ``Database``; results and exceptions pass
    through unchanged.
    """

    def __init__(self, db: Database, recorder: Optional[SpanRecorder] = None):
        self.db = db
        self.recorder = recorder or SpanRecorder()

    @contextmanager
    def _span(
        self,
        operation: str,
        instance: str,
        sql: Optional[str] = None,
        args: Optional[Sequence[Any]] = None
    ) -> Iterator[Span]:
        span = Span(name=f"tracer.{operation}")
        span.tags['db.instance'] = instance
        span.tags['db.type'] = DB_TYPE
        if sql is not None:
            span.tags['db.statement'] = sql
        if args is not None:
            span.tags['db.values'] = list(args)

        start_time = time.perf_counter()
        start_cpu = _cpu_seconds()
        try:
            yield span
        except Exception as e:
            span.error = type(e).__name__
            raise
        finally:
            span.elapsed = time.perf_counter() - start_time
            end_cpu = _cpu_seconds()
            if start_cpu is not None and end_cpu is not None:
                span.cpu_time = end_cpu - start_cpu
            self.recorder.record(span)

    def ping(self) -> None:
        with self._span("ping", WRITER):
            self.db.ping()

    def close(self) -> None:
        self.db.close()

    def execute(self, sql: str, args: Sequence[Any] = ()) -> int:
        with self._span("execute", WRITER, sql, args):
            return self.db.execute(sql, args)

    def query(self, sql: str, args: Sequence[Any], fn: Callable[[Any], Any]) -> Any:
        with self._span("query", READER, sql, args):
            return self.db.query(sql, args, fn)

    def query_row(self, sql: str, args: Sequence[Any], fn: Callable[[Any], Any]) -> Any:
        with self._span("query_row", READER, sql, args):
            return self.db.query_row(sql, args, fn)

    @contextmanager
    def transaction(self):
        with self._span("transaction", WRITER):
            with self.db.transaction() as conn:
                yield conn

    def tx_execute(self, conn, sql: str, args: Sequence[Any] = ()) -> int:
        with self._span("tx_execute", WRITER, sql, args):
            return self.db.tx_execute(conn, sql, args)

    def tx_execute_returning(self, conn, sql: str, args: Sequence[Any] = (), all_rows: bool = False) -> Any:
        with self._span("tx_execute_returning", WRITER, sql, args):
            return self.db.tx_execute_returning(conn, sql, args, all_rows=all_rows)

    def with_transaction(self, fn: Callable[[Any], Any]) -> Any:
        with self._span("with_transaction", WRITER):
            return self.db.with_transaction(fn)
