"""
Shared fixtures for logs/ module tests.

Key fixtures:
- no_sleep: records requested backoff delays instead of sleeping
- fake_db: MagicMock standing in for utils.database_utils.Database
"""

from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest


@pytest.fixture
def no_sleep():
    """Sleep replacement that remembers each requested delay."""
    delays = []

    def sleep(seconds):
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest.fixture
def fake_db():
    """Mock Database with a working transaction() context manager."""
    db = MagicMock()
    db.execute.return_value = 1
    db.query.side_effect = lambda sql, args, fn: fn([("row",)])
    db.query_row.side_effect = lambda sql, args, fn: fn(("row",))
    db.tx_execute.return_value = 1
    db.tx_execute_returning.return_value = 42
    db.with_transaction.side_effect = lambda fn: fn("conn")

    @contextmanager
    def transaction():
        yield "conn"

    db.transaction.side_effect = transaction
    return db
