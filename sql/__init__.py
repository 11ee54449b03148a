"""
=================================================
SQL mapper package for tagged dataclass entities.
=================================================

Turns tagged dataclass entities into positionally-parameterized SQL and maps
result rows back into entities. No schema compiler, no migrations.

The package follows a clear organization:
    - tags.py: parse ``name[,options]`` field tags
    - reflector.py: per-type schema descriptors and field rendering
    - nullable.py: NullString/NullInt64/NullFloat64/NullBool/NullTime wrappers
    - query_builder.py: the single-use ``Query`` accumulator
    - scanner.py: result rows -> entity instances
    - exceptions.py: MapperError hierarchy and PreconditionError

Example:
    >>> from dataclasses import dataclass
    >>> from sql import NullString, build, column
    >>>
    >>> @dataclass
    ... class User:
    ...     __tablename__ = "ref_user"
    ...     id: int = column("id", default=0)
    ...     name: str = column("name", default="")
    ...     nickname: NullString = column("nickname", default=NullString())
    >>>
    >>> sql, args = build().from_(User(name="budi"), "u").to_sql()
    >>> sql
    'SELECT u.* FROM ref_user u WHERE u.name = $1 LIMIT 100 OFFSET 0'
    >>> args
    ['budi']
"""

__version__ = "1.0.0"
__all__ = [
    # tags
    'parse_tag', 'is_valid_tag', 'TagOptions',
    # reflection
    'column', 'entity_schema', 'tags_to_field', 'fields_to_args', 'table_name', 'TAG_KEY',
    # nullable wrappers
    'NullString', 'NullInt64', 'NullFloat64', 'NullBool', 'NullTime', 'NullJSONEncoder',
    # query builder
    'Query', 'build', 'DEFAULT_PAGE_SIZE',
    # scanner
    'scan_row', 'scan_rows', 'scan_one', 'clone_entity',
    # errors
    'MapperError', 'MalformedTagError', 'NotAnEntityError', 'NilEntityError',
    'InvalidPageError', 'PreconditionError',
]

from .exceptions import (
    InvalidPageError,
    MalformedTagError,
    MapperError,
    NilEntityError,
    NotAnEntityError,
    PreconditionError,
)
from .nullable import (
    NullBool,
    NullFloat64,
    NullInt64,
    NullJSONEncoder,
    NullString,
    NullTime,
)
from .query_builder import DEFAULT_PAGE_SIZE, Query, build
from .reflector import (
    TAG_KEY,
    column,
    entity_schema,
    fields_to_args,
    table_name,
    tags_to_field,
)
from .scanner import clone_entity, scan_one, scan_row, scan_rows
from .tags import TagOptions, is_valid_tag, parse_tag
