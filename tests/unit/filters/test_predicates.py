from __future__ import annotations

import pytest

from leaddesk.auth.scope import CallerIdentity, require_admin, require_caller, scope_conditions, scope_predicate
from leaddesk.core.exceptions import AuthorizationRequiredError, UnauthorizedError
from leaddesk.filters.predicates import custom_value_spellings, escape_like, filter_conditions
from leaddesk.models import UserRole
from leaddesk.schemas.filters import FilterCriteria


def test_escape_like_neutralizes_wildcards():
    assert escape_like("50%_off\\") == "50\\%\\_off\\\\"


def test_empty_criteria_has_no_conditions():
    assert filter_conditions(FilterCriteria.empty()) == []
    assert not FilterCriteria.empty().has_active_filters


def test_each_dimension_adds_one_condition():
    criteria = FilterCriteria.model_validate(
        {
            "school": ["North High"],
            "gender": ["F", "M"],
            "searchQuery": "  ann ",
            "dateRange": {"from": "2026-01-01T00:00:00Z", "to": "2026-01-31T00:00:00Z"},
            "customFilters": {"grade": "A", "ignored": "", "also_ignored": None},
        }
    )
    assert criteria.custom_filters == {"grade": "A"}
    assert criteria.has_active_filters
    # school, gender, search, from, to, grade
    assert len(filter_conditions(criteria)) == 6


def test_canonical_form_ignores_set_order():
    left = FilterCriteria(school=frozenset({"B", "A"}), custom_filters={"x": "1", "y": "2"})
    right = FilterCriteria(school=frozenset({"A", "B"}), custom_filters={"y": "2", "x": "1"})
    assert left.canonical_json() == right.canonical_json()
    assert left.same_as(right)


def test_admin_scope_has_no_predicate():
    admin = CallerIdentity(user_id="admin-1", role=UserRole.ADMIN)
    assert scope_predicate(admin) is None
    assert scope_conditions(admin) == []


@pytest.mark.parametrize("role", [UserRole.MANAGER, UserRole.SALES_REP, UserRole.VIEWER])
def test_non_admin_scope_restricts_to_own_assignments(role):
    caller = CallerIdentity(user_id="user-7", role=role)
    predicate = scope_predicate(caller)
    assert predicate is not None
    compiled = predicate.compile(compile_kwargs={"literal_binds": True})
    assert "leads.assigned_to = 'user-7'" in str(compiled)


def test_missing_identity_is_rejected():
    with pytest.raises(UnauthorizedError):
        require_caller(None)
    with pytest.raises(UnauthorizedError):
        require_caller(CallerIdentity(user_id="", role=UserRole.ADMIN))
    with pytest.raises(AuthorizationRequiredError):
        require_admin(CallerIdentity(user_id="u", role=UserRole.MANAGER))


@pytest.mark.parametrize(
    "value,expected",
    [
        (True, ["true", "1"]),
        (False, ["false", "0"]),
        (5, ["5", "5.0"]),
        (5.0, ["5", "5.0"]),
        (87.5, ["87.5"]),
        ("A", ["A"]),
    ],
)
def test_custom_values_match_every_stored_spelling(value, expected):
    assert custom_value_spellings(value) == expected
