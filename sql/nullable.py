"""
==========================
Nullable scalar wrappers.
==========================

Value types that pair a scalar with a validity flag. They let an entity
carry an explicit SQL NULL, and they are the only way to persist a field
whose underlying value is the type's zero value (``0``, ``""``, ``False``)
because the reflector skips empty plain fields.

Wrappers:
    NullString, NullInt64, NullFloat64, NullBool, NullTime

JSON form:
    valid   -> the bare value (``"aqua"``, ``33``, ``true``, ISO timestamp)
    invalid -> ``null``

Example:
    >>> rate = NullInt64.of(75)
    >>> rate.to_json()
    '75'
    >>> NullInt64.from_json("null").valid
    False
"""

import json
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, ClassVar, Tuple, Type

RFC3339_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_TRUE_STRINGS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_STRINGS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


def parse_bool(text: str) -> bool:
    """Parse the boolean vocabulary accepted by database drivers.

    Raises:
        ValueError: If ``text`` is not a recognised boolean spelling
    """
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"invalid boolean literal: {text!r}")


def to_utc(value: datetime) -> datetime:
    """Convert to UTC; naive datetimes are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a datetime as an RFC-3339 UTC timestamp (second precision)."""
    return to_utc(value).strftime(RFC3339_FORMAT)


def parse_timestamp(text: str) -> datetime:
    """Parse an ISO-8601/RFC-3339 timestamp, accepting a trailing ``Z``."""
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


class NullScalar:
    """Behaviour shared by the nullable wrappers.

    Subclasses are frozen dataclasses with ``value`` and ``valid`` fields and
    define ``scalar_type`` plus ``_coerce``.
    """

    scalar_type: ClassVar[type] = object
    value: Any
    valid: bool

    @classmethod
    def of(cls, value: Any) -> "NullScalar":
        """Build a valid wrapper around ``value``."""
        return cls(cls._coerce(value), True)

    @classmethod
    def null(cls) -> "NullScalar":
        """Build an invalid (NULL) wrapper."""
        return cls()

    @classmethod
    def _coerce(cls, value: Any) -> Any:
        raise NotImplementedError

    def _encode(self) -> Any:
        return self.value

    @classmethod
    def _decode(cls, decoded: Any) -> Any:
        return cls._coerce(decoded)

    def to_json(self) -> str:
        """Serialize to JSON text: the bare value when valid, ``null`` otherwise."""
        if not self.valid:
            return "null"
        return json.dumps(self._encode())

    @classmethod
    def from_json(cls, data: Any) -> "NullScalar":
        """
        Deserialize JSON text (str or bytes).

        Args:
            data: JSON document holding a bare value or ``null``

        Returns:
            Invalid wrapper for ``null``; valid wrapper holding the value otherwise

        Raises:
            ValueError: If the JSON value cannot be converted to the scalar type
        """
        decoded = json.loads(data)
        if decoded is None:
            return cls()
        return cls(cls._decode(decoded), True)

    @classmethod
    def from_db(cls, value: Any) -> "NullScalar":
        """Wrap a driver value; ``None`` becomes an invalid wrapper."""
        if value is None:
            return cls()
        return cls(cls._coerce(value), True)


@dataclass(frozen=True)
class NullString(NullScalar):
    value: str = ""
    valid: bool = False

    scalar_type: ClassVar[type] = str

    @classmethod
    def _coerce(cls, value: Any) -> str:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value).decode("utf-8")
        return str(value)

    @classmethod
    def _decode(cls, decoded: Any) -> str:
        if not isinstance(decoded, str):
            raise ValueError(f"cannot decode {decoded!r} into NullString")
        return decoded


@dataclass(frozen=True)
class NullInt64(NullScalar):
    value: int = 0
    valid: bool = False

    scalar_type: ClassVar[type] = int

    @classmethod
    def _coerce(cls, value: Any) -> int:
        if isinstance(value, str):
            return int(value.strip())
        return int(value)

    @classmethod
    def _decode(cls, decoded: Any) -> int:
        if isinstance(decoded, bool) or not isinstance(decoded, (int, float)):
            raise ValueError(f"cannot decode {decoded!r} into NullInt64")
        if isinstance(decoded, float) and not decoded.is_integer():
            raise ValueError(f"cannot decode {decoded!r} into NullInt64")
        return int(decoded)

    def as_int(self) -> int:
        """Return the value as a plain int (0 when invalid)."""
        return int(self.value) if self.valid else 0


@dataclass(frozen=True)
class NullFloat64(NullScalar):
    value: float = 0.0
    valid: bool = False

    scalar_type: ClassVar[type] = float

    @classmethod
    def _coerce(cls, value: Any) -> float:
        return float(value)

    @classmethod
    def _decode(cls, decoded: Any) -> float:
        if isinstance(decoded, bool) or not isinstance(decoded, (int, float)):
            raise ValueError(f"cannot decode {decoded!r} into NullFloat64")
        return float(decoded)


@dataclass(frozen=True)
class NullBool(NullScalar):
    value: bool = False
    valid: bool = False

    scalar_type: ClassVar[type] = bool

    @classmethod
    def _coerce(cls, value: Any) -> bool:
        if isinstance(value, str):
            return parse_bool(value.strip())
        return bool(value)

    @classmethod
    def _decode(cls, decoded: Any) -> bool:
        if not isinstance(decoded, bool):
            raise ValueError(f"cannot decode {decoded!r} into NullBool")
        return decoded


@dataclass(frozen=True)
class NullTime(NullScalar):
    value: datetime = datetime.min
    valid: bool = False

    scalar_type: ClassVar[type] = datetime

    @classmethod
    def _coerce(cls, value: Any) -> datetime:
        if isinstance(value, datetime):
            return value
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day)
        if isinstance(value, str):
            return parse_timestamp(value)
        raise ValueError(f"cannot convert {value!r} into NullTime")

    def _encode(self) -> str:
        return self.value.isoformat()

    @classmethod
    def _decode(cls, decoded: Any) -> datetime:
        if not isinstance(decoded, str):
            raise ValueError(f"cannot decode {decoded!r} into NullTime")
        return parse_timestamp(decoded)


NULLABLE_TYPES: Tuple[Type[NullScalar], ...] = (
    NullString,
    NullInt64,
    NullFloat64,
    NullBool,
    NullTime,
)


def is_nullable_type(tp: Any) -> bool:
    """Report whether ``tp`` is one of the five nullable wrapper classes."""
    return tp in NULLABLE_TYPES


class NullJSONEncoder(json.JSONEncoder):
    """JSON encoder that understands nullable wrappers and datetimes.

    Example:
        >>> json.dumps({"rate": NullInt64.of(3)}, cls=NullJSONEncoder)
        '{"rate": 3}'
    """

    def default(self, o):
        if isinstance(o, NullScalar):
            return o._encode() if o.valid else None
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)
