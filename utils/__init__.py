"""
==========================
Utility Functions Package.
==========================

Execution helpers that run rendered statements against PostgreSQL through
SQLAlchemy engines.

Modules:
    database_utils: Writer/reader Database, bind conversion, availability checks
"""

__version__ = "1.0.0"
__all__ = [
    'ConnectionSettings',
    'Database',
    'DatabaseError',
    'DatabaseConnectionError',
    'check_database_available',
    'create_sqlalchemy_engine',
    'new_database',
    'new_single_database',
    'to_bind_params',
    'wait_for_database',
]

from .database_utils import (
    ConnectionSettings,
    Database,
    DatabaseConnectionError,
    DatabaseError,
    check_database_available,
    create_sqlalchemy_engine,
    new_database,
    new_single_database,
    to_bind_params,
    wait_for_database,
)
