"""Translate :class:`FilterCriteria` into SQLAlchemy predicates.

Count, unique-value, list and bulk-resolution queries all go through
:func:`filter_conditions`, so a filter means the same thing everywhere.
"""

from __future__ import annotations

from sqlalchemy import ColumnElement, or_

from leaddesk.models import Lead
from leaddesk.schemas.filters import CustomFilterValue, FilterCriteria

_LIKE_ESCAPE = "\\"


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return (
        term.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", f"{_LIKE_ESCAPE}%")
        .replace("_", f"{_LIKE_ESCAPE}_")
    )


def search_condition(search_query: str) -> ColumnElement[bool] | None:
    term = search_query.strip()
    if not term:
        return None
    pattern = f"%{escape_like(term)}%"
    return or_(
        Lead.name.ilike(pattern, escape=_LIKE_ESCAPE),
        Lead.phone.ilike(pattern, escape=_LIKE_ESCAPE),
        Lead.email.ilike(pattern, escape=_LIKE_ESCAPE),
    )


def custom_field_expression(key: str):
    """Text projection of one key inside the ``custom_fields`` JSON bag."""
    return Lead.custom_fields[key].as_string()


def custom_value_spellings(value: CustomFilterValue) -> list[str]:
    """Text forms a stored JSON value can take once projected to a string.

    PostgreSQL renders JSON booleans as ``true``/``false`` while SQLite
    renders them as ``1``/``0``; imported rows may also hold numbers as
    strings, with or without a trailing ``.0``.
    """
    if isinstance(value, bool):
        return ["true", "1"] if value else ["false", "0"]
    if isinstance(value, float) and value.is_integer():
        return [str(int(value)), str(value)]
    if isinstance(value, int):
        return [str(value), f"{value}.0"]
    return [str(value)]


def filter_conditions(criteria: FilterCriteria) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []

    for field, values in criteria.equality_fields.items():
        if values:
            conditions.append(getattr(Lead, field).in_(sorted(values)))

    search = search_condition(criteria.search_query)
    if search is not None:
        conditions.append(search)

    if criteria.date_range.from_ is not None:
        conditions.append(Lead.created_at >= criteria.date_range.from_)
    if criteria.date_range.to is not None:
        conditions.append(Lead.created_at <= criteria.date_range.to)

    for key, value in sorted(criteria.custom_filters.items()):
        conditions.append(custom_field_expression(key).in_(custom_value_spellings(value)))

    return conditions
