"""
=====================================
Row scanning into dataclass entities.
=====================================

Maps result columns back onto entity fields. Each column is matched
case-insensitively against the fields' tag names, falling back to the
attribute name for untagged fields; fields tagged ``-`` never match and
unknown columns are ignored.

Values are assigned directly to a fresh instance of the entity type:
    - ``str``, ``bool``, ``float`` and ``int`` fields are converted to that type
    - the five nullable wrappers are built from the driver value
      (``None`` -> invalid wrapper)
    - any other field shape receives the driver value unchanged

Example:
    >>> with engine.connect() as conn:
    ...     result = conn.execute(text("SELECT * FROM ref_game"))
    ...     games = scan_rows(result, Game)
"""

import dataclasses
import logging
from typing import Any, List, Optional, Sequence

from sql.exceptions import NilEntityError, NotAnEntityError
from sql.nullable import parse_bool
from sql.reflector import TAG_KEY, FieldDescriptor, entity_class, entity_schema

logger = logging.getLogger(__name__)


def column_field_map(
    model: Any,
    columns: Sequence[str],
    tag_key: str = TAG_KEY,
) -> List[Optional[FieldDescriptor]]:
    """
    Resolve each result column to the entity field it populates.

    Args:
        model: Entity class or instance
        columns: Result column names
        tag_key: Metadata key holding the field tags

    Returns:
        One FieldDescriptor (or None when unmatched) per column
    """
    schema = entity_schema(entity_class(model), tag_key)
    return [schema.scan_fields.get(col.lower()) for col in columns]


def _convert_bool(value: Any) -> bool:
    if isinstance(value, str):
        return parse_bool(value.strip())
    return bool(value)


def _convert_str(value: Any) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8")
    return str(value)


_SCALAR_CONVERTERS = {
    str: _convert_str,
    bool: _convert_bool,
    float: float,
    int: int,
}


def convert_value(descriptor: FieldDescriptor, value: Any) -> Any:
    """
    Convert a driver value for assignment to ``descriptor``'s field.

    Returns:
        The converted value; None is returned unchanged for plain scalars so
        the caller keeps the field default.
    """
    field_type = descriptor.field_type
    if descriptor.nullable:
        return field_type.from_db(value)
    if value is None:
        return None
    converter = _SCALAR_CONVERTERS.get(field_type)
    if converter is None:
        return value
    return converter(value)


def scan_row(
    columns: Sequence[str],
    values: Sequence[Any],
    model: Any,
    tag_key: str = TAG_KEY,
) -> Any:
    """
    Populate a new entity from one result row.

    Args:
        columns: Result column names
        values: Row values in column order
        model: Entity class (or an instance, whose class is used)
        tag_key: Metadata key holding the field tags

    Returns:
        New instance of the entity type

    Raises:
        NilEntityError: If model is None
        NotAnEntityError: If model is not a dataclass entity
        ValueError: If a value cannot be converted to its field type
    """
    cls = entity_class(model)
    if len(columns) != len(values):
        raise ValueError(f"row has {len(values)} values for {len(columns)} columns")

    instance = cls()
    for descriptor, value in zip(column_field_map(cls, columns, tag_key), values):
        if descriptor is None:
            continue
        converted = convert_value(descriptor, value)
        if converted is None and not descriptor.nullable:
            continue
        setattr(instance, descriptor.attr, converted)
    return instance


def scan_rows(result: Any, model: Any, tag_key: str = TAG_KEY) -> List[Any]:
    """
    Scan every row of a SQLAlchemy result into entities.

    Args:
        result: Object exposing ``keys()`` and iterating row tuples
            (``CursorResult``)
        model: Entity class
        tag_key: Metadata key holding the field tags

    Returns:
        List of entity instances
    """
    columns = list(result.keys())
    entities = [scan_row(columns, tuple(row), model, tag_key) for row in result]
    logger.debug(f"Scanned {len(entities)} rows into {entity_class(model).__name__}")
    return entities


def scan_one(result: Any, model: Any, tag_key: str = TAG_KEY) -> Optional[Any]:
    """Scan the first row of a result, or return None when it has no rows."""
    columns = list(result.keys())
    row = result.fetchone()
    if row is None:
        return None
    return scan_row(columns, tuple(row), model, tag_key)


def clone_entity(src: Any, dest: Any) -> Any:
    """
    Copy field values from ``src`` onto ``dest`` by attribute name.

    Only attributes present on both dataclasses are copied; nullable wrappers
    are immutable and shared, mutable containers are copied.

    Args:
        src: Source entity instance
        dest: Destination entity instance (modified in place)

    Returns:
        ``dest``

    Raises:
        NilEntityError: If either side is None
        NotAnEntityError: If either side is a class or not a dataclass
    """
    for side in (src, dest):
        if side is None:
            raise NilEntityError()
        if isinstance(side, type) or not dataclasses.is_dataclass(side):
            raise NotAnEntityError("clone_entity requires dataclass instances")

    dest_fields = {f.name for f in dataclasses.fields(dest)}
    for src_field in dataclasses.fields(src):
        if src_field.name in dest_fields:
            value = getattr(src, src_field.name)
            if isinstance(value, (list, dict, set)):
                value = type(value)(value)
            setattr(dest, src_field.name, value)
    return dest

