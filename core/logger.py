"""
=========================================
Logging setup for the SQL entity mapper.
=========================================

Every module logs through ``logging.getLogger(__name__)``; this module only
decides where those records go and how they look:
- Colored console output with a level marker
- Optional plain-text log file
- Level taken from ``MAPPER_LOG_LEVEL`` unless overridden

SQL text can be long, so ``shorten_sql`` trims statements before they are
embedded in log lines.

Example:
    >>> from core.logger import get_logger, setup_logging
    >>>
    >>> setup_logging(log_level='DEBUG', log_file='mapper.log')
    >>> logger = get_logger(__name__)
    >>> logger.info("Query rendered")
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = '%(marker)s %(asctime)s - %(name)s - %(levelname)s - %(message)s'
PLAIN_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Longest SQL text embedded verbatim in a log line.
MAX_SQL_LOG_LENGTH = 240


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the level name and prefixes a marker.

    The record itself is left untouched so file handlers sharing it still
    see the plain level name.

    Attributes:
        COLORS: Level name -> ANSI color code
        MARKERS: Level name -> short marker printed before the line
    """

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    MARKERS = {
        'DEBUG': '🔍',
        'INFO': 'ℹ️ ',
        'WARNING': '⚠️ ',
        'ERROR': '❌',
        'CRITICAL': '🔥',
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        colored = logging.makeLogRecord(record.__dict__)
        colored.marker = self.MARKERS.get(levelname, '')
        if levelname in self.COLORS:
            colored.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        return super().format(colored)


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {name}")
    return level


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a logger, optionally forcing its level.

    Args:
        name: Logger name (typically __name__ of calling module)
        level: Optional level override (DEBUG/INFO/WARNING/ERROR/CRITICAL)

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)
    if level:
        logger.setLevel(_level(level))
    return logger


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    log_dir: Optional[str] = None,
    console_output: bool = True,
    use_colors: bool = True
) -> None:
    """Configure the root logger.

    Replaces any existing root handlers, so calling it again (for example
    from the CLI after parsing ``--log-level``) reconfigures cleanly.

    Args:
        log_level: Level name; defaults to ``MAPPER_LOG_LEVEL`` or INFO
        log_file: Optional log file name (e.g., 'mapper.log')
        log_dir: Directory for log_file (defaults to 'logs/')
        console_output: If True, log to stdout
        use_colors: If True, color console output

    Raises:
        ValueError: If log_level is not a logging level name
    """
    level = _level(log_level or os.getenv('MAPPER_LOG_LEVEL', 'INFO'))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        if use_colors:
            formatter = ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT)
        else:
            formatter = logging.Formatter(PLAIN_FORMAT, datefmt=DATE_FORMAT)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_dir) if log_dir else Path('logs')
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path / log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(file_handler)


def shorten_sql(sql: str, limit: int = MAX_SQL_LOG_LENGTH) -> str:
    """Collapse whitespace in ``sql`` and cut it to ``limit`` characters.

    Example:
        >>> shorten_sql("SELECT  *\\n FROM ref_game", limit=12)
        'SELECT *...'
    """
    flat = " ".join(sql.split())
    if len(flat) <= limit:
        return flat
    return flat[:max(limit - 3, 0)].rstrip() + "..."


def _init_default_logging():
    """Install console logging if nothing configured the root logger yet."""
    if not logging.getLogger().handlers:
        setup_logging(console_output=True, use_colors=True)


_init_default_logging()
