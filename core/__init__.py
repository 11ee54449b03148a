"""
=================================================
Core infrastructure package for the SQL mapper.
=================================================

This package provides centralized configuration management and logging
infrastructure used throughout the mapper and its execution layer.

Modules:
    config: Configuration management from environment variables
    logger: Centralized logging configuration and utilities

Example:
    >>> from core.config import config
    >>> from core.logger import get_logger
    >>>
    >>> logger = get_logger(__name__)
    >>> logger.info(f"Writer database: {config.writer_url}")
"""

__version__ = "1.0.0"
__all__ = ['get_logger', 'setup_logging', 'shorten_sql', 'config', 'Config', 'ConfigError']

from core.config import Config, ConfigError, config
from core.logger import get_logger, setup_logging, shorten_sql
