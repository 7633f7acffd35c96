"""
Role hierarchy tests.

Covers:
    1. Level table and unknown-role handling
    2. has_min_role monotonicity over every role pair
    3. has_any_role / has_role set semantics
    4. Input normalization (None, single string, collections)
"""

import itertools

import pytest

from siteworks.services.roles import (
    ROLE_HIERARCHY,
    ROLE_LABELS,
    Role,
    effective_level,
    has_any_role,
    has_min_role,
    has_role,
    hierarchy_table,
    normalize_roles,
    parse_role,
    role_level,
    roles_at_least,
)


class TestRoleLevel:
    def test_every_role_has_a_unique_positive_level(self):
        levels = [ROLE_HIERARCHY[r] for r in Role]
        assert len(set(levels)) == len(Role)
        assert min(levels) > 0

    def test_known_levels(self):
        assert role_level("temporary") == 1
        assert role_level("user") == 3
        assert role_level("manager") == 9
        assert role_level(Role.OWNER) == 11

    @pytest.mark.parametrize("value", ["nonexistent-role", "", None, 42, ["admin"], "root"])
    def test_unknown_role_is_level_zero(self, value):
        assert role_level(value) == 0

    def test_parse_is_case_and_whitespace_tolerant(self):
        assert parse_role("  Admin ") is Role.ADMIN
        assert parse_role("FOREMAN") is Role.FOREMAN

    def test_every_role_has_a_label(self):
        assert set(ROLE_LABELS) == set(Role)


class TestHasMinRole:
    def test_monotonic_over_all_pairs(self):
        for a, b in itertools.permutations(Role, 2):
            if role_level(a) > role_level(b):
                assert has_min_role([a.value], b.value)
                assert not has_min_role([b.value], a.value)

    def test_role_satisfies_itself(self):
        for r in Role:
            assert has_min_role([r], r)

    def test_unknown_role_fails_closed(self):
        assert role_level("user") > 0
        assert has_min_role(["nonexistent-role"], "user") is False

    def test_empty_and_none_denied(self):
        assert has_min_role([], "temporary") is False
        assert has_min_role(None, "temporary") is False

    def test_unknown_min_role_is_level_zero(self):
        assert role_level("superuser") == 0
        assert has_min_role(["owner"], "superuser") is True
        assert has_min_role(["temporary"], "superuser") is True
        assert has_min_role([], "superuser") is False

    def test_single_role_string_is_normalized(self):
        assert has_min_role("manager", "coord") is True
        assert has_min_role("helper", "coord") is False

    def test_strongest_held_role_counts(self):
        assert has_min_role(["helper", "finance"], "vendor") is True
        assert has_min_role(["helper", "bogus"], "user") is False


class TestHasAnyRole:
    def test_intersection(self):
        assert has_any_role(["user", "safety"], ["safety", "admin"]) is True
        assert has_any_role(["user"], ["admin", "owner"]) is False

    def test_empty_inputs(self):
        assert has_any_role([], ["admin"]) is False
        assert has_any_role(["admin"], []) is False
        assert has_any_role(None, None) is False

    def test_unknown_strings_never_match(self):
        assert has_any_role(["ghost"], ["ghost"]) is False

    def test_has_role_is_exact_not_hierarchical(self):
        assert has_role(["owner"], "admin") is False
        assert has_role(["admin"], "admin") is True


class TestHelpers:
    def test_normalize_roles(self):
        assert normalize_roles(None) == ()
        assert normalize_roles("admin") == ("admin",)
        assert normalize_roles(["a", "b"]) == ("a", "b")
        assert normalize_roles({"x"}) == ("x",)
        assert normalize_roles(7) == ()

    def test_effective_level(self):
        assert effective_level([]) == 0
        assert effective_level(["user", "manager", "nope"]) == 9

    def test_roles_at_least(self):
        assert roles_at_least(Role.ADMIN) == ["admin", "owner"]
        assert roles_at_least("temporary")[0] == "temporary"
        assert len(roles_at_least("temporary")) == len(Role)
        assert roles_at_least("nope") == []

    def test_hierarchy_table_strongest_first(self):
        table = hierarchy_table()
        assert table[0]["role"] == "owner"
        assert table[-1]["role"] == "temporary"
        assert [row["level"] for row in table] == sorted((row["level"] for row in table), reverse=True)
