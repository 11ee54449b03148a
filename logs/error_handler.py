"""
=============================================
Error recovery for database operations.
=============================================

Retry support for statements that fail transiently (dropped connections,
failovers, a replica that is still starting). Only the exception types the
caller marks as retryable are retried; everything else propagates at once.

Classes:
    ErrorRecovery: Retry with exponential backoff

Example:
    >>> from sqlalchemy.exc import OperationalError
    >>> from logs.error_handler import ErrorRecovery
    >>>
    >>> recovery = ErrorRecovery(max_retries=3, base_delay=0.5)
    >>> rows = recovery.retry_with_backoff(
    ...     func=fetch_games,
    ...     args=(engine,),
    ...     retryable_exceptions=(OperationalError,),
    ...     context={'operation': 'query', 'instance': 'reader'}
    ... )
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorHandlerError(Exception):
    """Exception raised when the retry policy itself is misconfigured."""
    pass


class ErrorRecovery:
    """
    Automated retry with exponential backoff.

    The delay before retry ``n`` (0-based) is
    ``base_delay * backoff_multiplier ** n``.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retrying)
        base_delay: Delay before the first retry, in seconds
        backoff_multiplier: Factor applied to the delay per retry
        sleep: Callable used to wait between attempts
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        backoff_multiplier: float = 2.0,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the retry policy.

        Raises:
            ErrorHandlerError: If max_retries or base_delay is negative
        """
        if max_retries < 0:
            raise ErrorHandlerError(f"max_retries must not be negative, got {max_retries}")
        if base_delay < 0:
            raise ErrorHandlerError(f"base_delay must not be negative, got {base_delay}")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.backoff_multiplier = backoff_multiplier
        self.sleep = sleep

    @classmethod
    def from_attempts(cls, attempts: int, **kwargs) -> "ErrorRecovery":
        """Build a policy allowing ``attempts`` total tries (at least one)."""
        return cls(max_retries=max(attempts, 1) - 1, **kwargs)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt ``attempt`` (0-based)."""
        return self.base_delay * (self.backoff_multiplier ** attempt)

    def retry_with_backoff(
        self,
        func: Callable,
        args: tuple = (),
        kwargs: Optional[dict] = None,
        retryable_exceptions: tuple = (Exception,),
        context: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Retry a function with exponential backoff.

        Args:
            func: Function to call
            args: Function arguments
            kwargs: Function keyword arguments
            retryable_exceptions: Exceptions that trigger a retry
            context: Extra details included in the log lines

        Returns:
            Function result if an attempt succeeds

        Raises:
            The last retryable exception once all attempts failed, or the
            first non-retryable exception unchanged
        """
        if kwargs is None:
            kwargs = {}
        label = f" [{context}]" if context else ""

        for attempt in range(self.max_retries + 1):
            try:
                result = func(*args, **kwargs)
                if attempt > 0:
                    logger.info(f"Succeeded after {attempt} retries{label}")
                return result
            except retryable_exceptions as e:
                if attempt >= self.max_retries:
                    logger.error(f"All {self.max_retries + 1} attempts failed{label}: {e}")
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    f"Attempt {attempt + 1} failed, retrying in {delay:.2f}s{label}: {e}"
                )
                self.sleep(delay)
