"""
========================================
Entity models for the SQL mapper.
========================================

Tagged dataclass entities used by the query builder and row scanner, kept
apart from the mapper itself so the ``sql`` package stays free of any
concrete table.

Modules:
    catalog: Game, User and Member entities with their Core table definitions

Example:
    >>> from models import Game, metadata
    >>>
    >>> metadata.create_all(engine)
    >>> game = Game(code="x1", title="Chess", enabled=True)
"""

__version__ = "1.0.0"
__all__ = [
    # Catalog entities
    'Game',
    'User',
    'Member',
    # Table definitions
    'metadata',
    'ref_game',
    'ref_user',
    'ref_member',
]

from .catalog import Game, Member, User, metadata, ref_game, ref_member, ref_user
