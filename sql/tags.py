"""
===========================
Field tag parsing utilities.
===========================

A tag is the per-field string that controls persistence:
``name[,option1,option2,...]``. The first segment is the column name, the
remaining segments form an unordered option set that the core never
interprets (extensions may).

Example:
    >>> name, opts = parse_tag("game_code,omitempty,readonly")
    >>> name
    'game_code'
    >>> opts.contains("readonly")
    True
"""

from typing import FrozenSet, Iterable, Tuple

# Backslash and quote chars are reserved; any other punctuation listed
# here may appear in a tag name.
ALLOWED_PUNCTUATION = "!#$%&()*+-./:<=>?@[]^_{|}~ "

# Tag name that removes a field from persistence.
SKIP_TAG = "-"


class TagOptions:
    """Unordered set of options following the tag name."""

    __slots__ = ("_options",)

    def __init__(self, options: Iterable[str] = ()):
        self._options: FrozenSet[str] = frozenset(opt for opt in options if opt)

    def contains(self, option: str) -> bool:
        """Report whether ``option`` was declared on the tag."""
        return option in self._options

    def __contains__(self, option: object) -> bool:
        return option in self._options

    def __iter__(self):
        return iter(sorted(self._options))

    def __len__(self) -> int:
        return len(self._options)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TagOptions):
            return NotImplemented
        return self._options == other._options

    def __hash__(self) -> int:
        return hash(self._options)

    def __repr__(self) -> str:
        return f"TagOptions({sorted(self._options)!r})"


def parse_tag(raw: str) -> Tuple[str, TagOptions]:
    """
    Split a raw tag into its name and option set.

    Args:
        raw: Tag text such as ``"game_id"`` or ``"rate,omitempty"``

    Returns:
        Tuple of (name, TagOptions). The name is empty when the tag is empty
        or starts with a comma.
    """
    name, _, rest = raw.partition(",")
    if not rest:
        return name, TagOptions()
    return name, TagOptions(rest.split(","))


def is_valid_tag(name: str) -> bool:
    """
    Check a tag name against the tag grammar.

    Args:
        name: Tag name (first segment of the tag)

    Returns:
        False for empty names or names holding a character that is neither a
        letter, a digit nor one of ``ALLOWED_PUNCTUATION``.
    """
    if not name:
        return False
    for char in name:
        if char in ALLOWED_PUNCTUATION:
            continue
        if not (char.isalpha() or char.isdigit()):
            return False
    return True
