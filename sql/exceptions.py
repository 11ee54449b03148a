"""
==============================
Exceptions for the SQL mapper.
==============================

Two families of failure are kept apart:

- ``MapperError`` and its subclasses are recoverable configuration or data
  errors (malformed tags, values that are not entities, missing destinations).
- ``PreconditionError`` signals a programmer error in the builder call order
  (joining before a SELECT exists, rendering twice, inserting nothing). It is
  an ``AssertionError`` on purpose: callers are not expected to catch it.
"""


class MapperError(Exception):
    """Base class for recoverable mapper errors."""
    pass


class MalformedTagError(MapperError):
    """Raised when a field tag name contains characters outside the tag grammar,
    or when two fields of one entity resolve to the same column."""
    pass


class NotAnEntityError(MapperError):
    """Raised when a value is not a dataclass entity with a ``__tablename__``."""

    def __init__(self, message: str = "must pass an entity class or instance, not a plain value"):
        super().__init__(message)


class NilEntityError(MapperError):
    """Raised when ``None`` is passed where an entity is required."""

    def __init__(self, message: str = "nil entity passed"):
        super().__init__(message)


class InvalidPageError(MapperError, ValueError):
    """Raised for page numbers below 1."""
    pass


class PreconditionError(AssertionError):
    """Raised when builder operations are called in an invalid order."""
    pass
