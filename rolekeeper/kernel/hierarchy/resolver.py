"""
Hierarchy resolver: role tag -> privilege level.

A static lookup over the closed RoleTag set. Higher level means more
privileged. Role rank is only used to gate assignment and delegation;
it never confers permissions on its own.
"""

from typing import Dict, Iterable, List, Union

from rolekeeper.kernel.errors import ValidationError
from rolekeeper.kernel.models.role import RoleTag


ROLE_HIERARCHY: Dict[RoleTag, int] = {
    RoleTag.SUPER_ADMIN: 7,
    RoleTag.ADMIN: 6,
    RoleTag.MANAGER: 5,
    RoleTag.MODERATOR: 4,
    RoleTag.EDITOR: 3,
    RoleTag.USER: 2,
    RoleTag.GUEST: 1,
}

# A new tag without a level, or two tags sharing one, must fail at import time
_unranked = set(RoleTag) - set(ROLE_HIERARCHY)
if _unranked:
    raise RuntimeError(f"Role tags without a hierarchy level: {sorted(t.value for t in _unranked)}")
if len(set(ROLE_HIERARCHY.values())) != len(ROLE_HIERARCHY):
    raise RuntimeError("Hierarchy levels must be strictly ordered")


def parse_role_tag(tag: Union[str, RoleTag]) -> RoleTag:
    """Coerce a raw tag to RoleTag, raising ValidationError for unknown tags."""
    if isinstance(tag, RoleTag):
        return tag
    try:
        return RoleTag(tag)
    except ValueError:
        raise ValidationError(f"Unknown role tag: {tag!r}", role_tag=str(tag))


def level_of(tag: Union[str, RoleTag]) -> int:
    """Hierarchy level of a role tag."""
    return ROLE_HIERARCHY[parse_role_tag(tag)]


def tags_at_or_above(tag: Union[str, RoleTag]) -> List[RoleTag]:
    """Tags whose level is >= the given tag's level, highest first."""
    floor = level_of(tag)
    return sort_by_level(t for t, level in ROLE_HIERARCHY.items() if level >= floor)


def sort_by_level(tags: Iterable[Union[str, RoleTag]], descending: bool = True) -> List[RoleTag]:
    return sorted(
        (parse_role_tag(t) for t in tags),
        key=lambda t: ROLE_HIERARCHY[t],
        reverse=descending,
    )
