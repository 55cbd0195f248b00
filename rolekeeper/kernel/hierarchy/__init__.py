"""
Hierarchy resolver: role tag to privilege level.
"""

from rolekeeper.kernel.hierarchy.resolver import (
    ROLE_HIERARCHY,
    level_of,
    parse_role_tag,
    sort_by_level,
    tags_at_or_above,
)

__all__ = [
    "ROLE_HIERARCHY",
    "level_of",
    "parse_role_tag",
    "sort_by_level",
    "tags_at_or_above",
]
