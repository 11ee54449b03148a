"""
===============================
Entity reflection for the mapper.
===============================

Discovers which dataclass fields of an entity take part in persistence and
renders their current values into (column, argument) pairs for the query
builder.

An entity is a ``@dataclass`` with a ``__tablename__`` class attribute. A
field participates when it carries a tag under the tag key (``"sql"`` by
default) in its ``dataclasses.field`` metadata:

    >>> from dataclasses import dataclass
    >>> @dataclass
    ... class Game:
    ...     __tablename__ = "ref_game"
    ...     id: int = column("game_id", default=0)
    ...     code: str = column("game_code", default="")
    >>> list(tags_to_field(Game(id=7, code="x")))
    ['game_code', 'game_id']

The per-type part of this work (tag parsing, id resolution, column ordering)
is computed once per (type, tag key) into an ``EntitySchema`` and cached.
Only the values are read on every call.
"""

import dataclasses
import functools
import logging
import numbers
import typing
from dataclasses import MISSING, dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sql.exceptions import MalformedTagError, NilEntityError, NotAnEntityError
from sql.nullable import (
    NullScalar,
    format_timestamp,
    is_nullable_type,
    parse_bool,
)
from sql.tags import SKIP_TAG, TagOptions, is_valid_tag, parse_tag

logger = logging.getLogger(__name__)

TAG_KEY = "sql"

# Name of the attribute treated as the primary key (case-insensitive).
ID_FIELD_NAME = "id"

RenderField = Callable[[str, int, TagOptions], str]


def column(tag: str, default: Any = MISSING, *, key: str = TAG_KEY, **field_kwargs) -> Any:
    """
    Declare a tagged dataclass field.

    Args:
        tag: Tag text, ``name[,options]``; ``"-"`` excludes the field
        default: Field default (entities should default every field)
        key: Metadata key the tag is stored under
        **field_kwargs: Passed through to ``dataclasses.field``

    Returns:
        A ``dataclasses.field`` carrying the tag in its metadata
    """
    metadata = dict(field_kwargs.pop("metadata", None) or {})
    metadata[key] = tag
    return field(default=default, metadata=metadata, **field_kwargs)


@dataclass(frozen=True)
class FieldDescriptor:
    """One dataclass field as seen by the mapper."""

    attr: str
    column: str
    options: TagOptions
    field_type: Any
    persisted: bool
    nullable: bool


@dataclass(frozen=True)
class EntitySchema:
    """Cached per-type description of an entity.

    Attributes:
        entity_type: The dataclass type
        table: Value of ``__tablename__`` (empty when the type has none)
        id_column: Column of the identifier field, empty when there is none
        fields: Persisted fields sorted by column name
        scan_fields: Lower-cased column/attribute name -> field, for row scanning
    """

    entity_type: type
    table: str
    id_column: str
    fields: Tuple[FieldDescriptor, ...]
    scan_fields: Dict[str, FieldDescriptor]

    @property
    def columns(self) -> List[str]:
        return [f.column for f in self.fields]


@dataclass(frozen=True)
class RenderedField:
    """A persisted field's value rendered for one entity instance."""

    column: str
    text: str
    options: TagOptions
    textual: bool


def entity_class(entity: Any) -> type:
    """
    Resolve the dataclass type behind an entity instance or class.

    Raises:
        NilEntityError: If ``entity`` is None
        NotAnEntityError: If it is not a dataclass instance or type
    """
    if entity is None:
        raise NilEntityError()
    cls = entity if isinstance(entity, type) else type(entity)
    if not dataclasses.is_dataclass(cls):
        raise NotAnEntityError(
            f"must pass an entity class or instance, got {cls.__name__}"
        )
    return cls


def table_name(entity: Any) -> str:
    """Return the ``__tablename__`` of an entity instance or class.

    Field tags are not read, so the result does not depend on a tag key.
    """
    cls = entity_class(entity)
    table = getattr(cls, "__tablename__", "") or ""
    if not table:
        raise NotAnEntityError(f"{cls.__name__} does not define __tablename__")
    return table


def _unwrap_optional(tp: Any) -> Any:
    if typing.get_origin(tp) is typing.Union:
        args = [arg for arg in typing.get_args(tp) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


@functools.lru_cache(maxsize=None)
def entity_schema(cls: type, tag_key: str = TAG_KEY) -> EntitySchema:
    """
    Build (once) the schema descriptor of an entity type.

    Args:
        cls: Dataclass entity type
        tag_key: Metadata key holding the field tags

    Returns:
        EntitySchema for ``cls``

    Raises:
        NotAnEntityError: If ``cls`` is not a dataclass
        MalformedTagError: If a tag name breaks the tag grammar or two
            fields resolve to the same column
    """
    if not dataclasses.is_dataclass(cls):
        raise NotAnEntityError(f"must pass an entity class, got {cls!r}")

    try:
        hints = typing.get_type_hints(cls)
    except (NameError, TypeError):
        hints = {}

    persisted: Dict[str, FieldDescriptor] = {}
    scan_fields: Dict[str, FieldDescriptor] = {}
    id_column = ""

    for dc_field in dataclasses.fields(cls):
        raw = dc_field.metadata.get(tag_key, "")
        name, options = parse_tag(raw)
        if name and not is_valid_tag(name):
            raise MalformedTagError(
                f"{cls.__name__}.{dc_field.name}: invalid tag name {name!r}"
            )

        skipped = name == SKIP_TAG
        col = dc_field.name if (not name or skipped) else name
        field_type = _unwrap_optional(hints.get(dc_field.name, dc_field.type))
        descriptor = FieldDescriptor(
            attr=dc_field.name,
            column=col,
            options=options,
            field_type=field_type,
            persisted=bool(raw) and not skipped,
            nullable=is_nullable_type(field_type),
        )

        if dc_field.name.lower() == ID_FIELD_NAME:
            id_column = col

        if skipped:
            continue
        scan_fields.setdefault(col.lower(), descriptor)
        if descriptor.persisted:
            if col in persisted:
                raise MalformedTagError(
                    f"{cls.__name__}: column {col!r} is declared by both "
                    f"{persisted[col].attr!r} and {dc_field.name!r}"
                )
            persisted[col] = descriptor

    fields = tuple(persisted[col] for col in sorted(persisted))
    logger.debug(f"Built schema for {cls.__name__}: {[f.column for f in fields]}")
    return EntitySchema(
        entity_type=cls,
        table=getattr(cls, "__tablename__", "") or "",
        id_column=id_column,
        fields=fields,
        scan_fields=scan_fields,
    )


def is_empty_value(value: Any) -> bool:
    """Report whether ``value`` is its type's zero value."""
    if value is None:
        return True
    if isinstance(value, (str, bytes, bytearray, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    if isinstance(value, bool):
        return not value
    if isinstance(value, numbers.Number):
        return value == 0
    return False


def _format_float(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return repr(value)


def render_value(value: Any) -> Optional[Tuple[str, bool]]:
    """
    Render a field value to driver-ready text.

    Returns:
        Tuple of (text, textual) where ``textual`` marks values that were
        strings to begin with, or None when the value must be skipped (an
        invalid nullable wrapper).
    """
    if isinstance(value, NullScalar):
        if not value.valid:
            return None
        value = value.value

    if isinstance(value, str):
        return value, True
    if isinstance(value, bool):
        return str(value).lower(), False
    if isinstance(value, numbers.Integral):
        return str(int(value)), False
    if isinstance(value, float):
        return _format_float(value), False
    if isinstance(value, datetime):
        return format_timestamp(value), True
    if isinstance(value, date):
        return value.isoformat(), True
    return str(value), True


def coerce_arg(text: str) -> Any:
    """Convert rendered text to an int, then a bool, falling back to the text."""
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return parse_bool(text)
    except ValueError:
        return text


def to_arg(rendered: RenderedField) -> Any:
    """Turn a rendered field into the value appended to the argument list."""
    if rendered.textual:
        return rendered.text
    return coerce_arg(rendered.text)


def render_fields(entity: Any, tag_key: str = TAG_KEY) -> List[RenderedField]:
    """
    Render the persisted, non-empty fields of an entity in column order.

    Args:
        entity: Dataclass instance (a class yields no fields)
        tag_key: Metadata key holding the field tags

    Returns:
        List of RenderedField sorted by column name
    """
    schema = entity_schema(entity_class(entity), tag_key)
    if isinstance(entity, type):
        return []

    rendered: List[RenderedField] = []
    for descriptor in schema.fields:
        value = getattr(entity, descriptor.attr)
        if is_empty_value(value):
            continue
        result = render_value(value)
        if result is None:
            continue
        text, textual = result
        rendered.append(RenderedField(descriptor.column, text, descriptor.options, textual))
    return rendered


def tags_to_field(entity: Any, tag_key: str = TAG_KEY) -> Dict[str, Tuple[str, TagOptions]]:
    """
    Map each qualifying column of an entity to its rendered value and options.

    A field qualifies iff it is tagged (and not ``-``) and its current value
    is not empty; nullable wrappers qualify iff they are valid.

    Returns:
        Dict of column -> (rendered text, TagOptions), ordered by column name
    """
    return {rf.column: (rf.text, rf.options) for rf in render_fields(entity, tag_key)}


def fields_to_args(
    entity: Any,
    render: RenderField,
    args: List[Any],
    tag_key: str = TAG_KEY,
) -> List[str]:
    """
    Render one SQL fragment per qualifying column and collect its argument.

    ``render`` receives (column, argument position, options), where the
    position is the 1-based index the argument will take in ``args``. A
    fragment rendered as ``""`` is dropped together with its argument.

    Args:
        entity: Dataclass instance
        render: Fragment renderer
        args: Argument list extended in place
        tag_key: Metadata key holding the field tags

    Returns:
        Fragments in column order
    """
    fragments: List[str] = []
    for rendered in render_fields(entity, tag_key):
        fragment = render(rendered.column, len(args) + 1, rendered.options)
        if not fragment:
            continue
        fragments.append(fragment)
        args.append(to_arg(rendered))
    return fragments
