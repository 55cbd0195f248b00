"""Unit tests for the hierarchy resolver."""

import pytest

from rolekeeper.kernel.errors import ValidationError
from rolekeeper.kernel.hierarchy import (
    ROLE_HIERARCHY,
    level_of,
    parse_role_tag,
    sort_by_level,
    tags_at_or_above,
)
from rolekeeper.kernel.models.role import RoleTag


class TestLevelOf:
    """Tests for level_of."""

    def test_total_over_all_tags(self):
        for tag in RoleTag:
            assert isinstance(level_of(tag), int)

    def test_documented_order(self):
        ordered = [
            RoleTag.SUPER_ADMIN,
            RoleTag.ADMIN,
            RoleTag.MANAGER,
            RoleTag.MODERATOR,
            RoleTag.EDITOR,
            RoleTag.USER,
            RoleTag.GUEST,
        ]
        levels = [level_of(t) for t in ordered]
        assert levels == sorted(levels, reverse=True)
        assert len(set(levels)) == len(levels)

    def test_known_levels(self):
        assert level_of("super_admin") == 7
        assert level_of("admin") == 6
        assert level_of("manager") == 5
        assert level_of("user") == 2
        assert level_of("guest") == 1

    def test_deterministic(self):
        assert [level_of(t) for t in RoleTag] == [level_of(t) for t in RoleTag]

    def test_string_and_enum_agree(self):
        for tag in RoleTag:
            assert level_of(tag.value) == level_of(tag) == ROLE_HIERARCHY[tag]

    def test_unknown_tag_is_validation_error(self):
        with pytest.raises(ValidationError):
            level_of("overlord")


class TestTagHelpers:
    """Tests for parse_role_tag, tags_at_or_above and sort_by_level."""

    def test_parse_role_tag(self):
        assert parse_role_tag("editor") is RoleTag.EDITOR
        assert parse_role_tag(RoleTag.EDITOR) is RoleTag.EDITOR

    def test_parse_unknown_tag_carries_detail(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_role_tag("root")
        assert exc_info.value.details["role_tag"] == "root"
        assert exc_info.value.status_code == 422

    def test_tags_at_or_above(self):
        assert tags_at_or_above(RoleTag.MANAGER) == [
            RoleTag.SUPER_ADMIN,
            RoleTag.ADMIN,
            RoleTag.MANAGER,
        ]
        assert tags_at_or_above(RoleTag.SUPER_ADMIN) == [RoleTag.SUPER_ADMIN]

    def test_sort_by_level(self):
        assert sort_by_level(["guest", "admin", "editor"]) == [
            RoleTag.ADMIN,
            RoleTag.EDITOR,
            RoleTag.GUEST,
        ]
        assert sort_by_level(["guest", "admin"], descending=False) == [
            RoleTag.GUEST,
            RoleTag.ADMIN,
        ]
