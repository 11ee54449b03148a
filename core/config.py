"""
============================================
Configuration management for the SQL mapper.
============================================

Loads all settings from environment variables (.env file) and provides a
centralized Config singleton for application-wide access.

Environment variables:
    WRITER_DATABASE_URL: SQLAlchemy URL of the primary (read-write) database
    READER_DATABASE_URL: URL of the replica; falls back to the writer URL
    DB_RETRY_COUNT: Attempts for reads failing with an operational error
    DB_TIMEOUT: Connect and statement timeout, in seconds
    DB_POOL_SIZE: Connection pool size of each engine
    MAPPER_TAG_KEY: Dataclass metadata key holding field tags
    MAPPER_PAGE_SIZE: Default page_size handed to build() for SELECT row caps

Example:
    >>> from core.config import config
    >>>
    >>> writer = config.db.settings(reader=False)
    >>> print(f"Writer: {config.writer_url}, tag key: {config.tag_key}")
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(dotenv_path=env_path)

DEFAULT_DATABASE_URL = 'postgresql://postgres:@localhost:5432/postgres'


class ConfigError(Exception):
    """Exception raised when an environment setting cannot be parsed."""
    pass


def _int_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigError(f"{name} must be at least {minimum}, got {value}")
    return value


@dataclass
class DatabaseConfig:
    """Database connection settings.

    Attributes:
        writer_url: SQLAlchemy URL of the primary database
        reader_url: SQLAlchemy URL of the replica (may equal writer_url)
        retry_count: Attempts for reads failing with an operational error
        timeout: Connect and statement timeout in seconds (0 disables)
        pool_size: Connection pool size per engine
    """

    writer_url: str
    reader_url: str
    retry_count: int = 3
    timeout: int = 30
    pool_size: int = 5

    @property
    def has_replica(self) -> bool:
        """True when reads go to a different database than writes."""
        return self.reader_url != self.writer_url

    def settings(self, reader: bool = False):
        """Build ConnectionSettings for the writer or the reader engine.

        Args:
            reader: If True, use reader_url; otherwise writer_url

        Returns:
            utils.database_utils.ConnectionSettings
        """
        from utils.database_utils import ConnectionSettings

        return ConnectionSettings(
            url=self.reader_url if reader else self.writer_url,
            retry_count=self.retry_count,
            timeout=self.timeout,
            pool_size=self.pool_size,
        )


@dataclass
class MapperConfig:
    """Query builder settings.

    Attributes:
        tag_key: Dataclass metadata key holding field tags
        page_size: Query page_size (SELECT row cap when limit() is not called)
    """

    tag_key: str = 'sql'
    page_size: int = 100


class Config:
    """Centralized configuration manager.

    Attributes:
        db: DatabaseConfig with connection settings
        mapper: MapperConfig with query builder settings
        project_root: Absolute path to the project root directory

    Example:
        >>> config = Config()
        >>> config.db.has_replica
        False
    """

    def __init__(self, env_file: Optional[Path] = None):
        """Initialize configuration from environment variables.

        Args:
            env_file: Optional extra .env file loaded before reading settings
        """
        if env_file is not None:
            load_dotenv(dotenv_path=env_file, override=True)

        writer_url = os.getenv('WRITER_DATABASE_URL') or DEFAULT_DATABASE_URL
        self.db = DatabaseConfig(
            writer_url=writer_url,
            reader_url=os.getenv('READER_DATABASE_URL') or writer_url,
            retry_count=_int_env('DB_RETRY_COUNT', 3, minimum=1),
            timeout=_int_env('DB_TIMEOUT', 30),
            pool_size=_int_env('DB_POOL_SIZE', 5, minimum=1),
        )
        self.mapper = MapperConfig(
            tag_key=os.getenv('MAPPER_TAG_KEY', 'sql') or 'sql',
            page_size=_int_env('MAPPER_PAGE_SIZE', 100, minimum=1),
        )
        self.project_root = Path(__file__).parent.parent

    @property
    def writer_url(self) -> str:
        """Get the primary database URL."""
        return self.db.writer_url

    @property
    def reader_url(self) -> str:
        """Get the replica database URL."""
        return self.db.reader_url

    @property
    def tag_key(self) -> str:
        """Get the dataclass metadata key holding field tags."""
        return self.mapper.tag_key

    @property
    def page_size(self) -> int:
        """Get the default SELECT row cap."""
        return self.mapper.page_size


# Global configuration instance
config = Config()
