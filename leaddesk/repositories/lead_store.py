"""SQLAlchemy-backed lead row store.

Every query composes the caller's scope predicate with the translated filter
predicates, so scoping cannot drift between counts, option lists, pages and
bulk id resolution. Aggregations run in the database.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.orm import Session

from leaddesk.auth.scope import CallerIdentity, scope_conditions
from leaddesk.filters.predicates import custom_field_expression, filter_conditions
from leaddesk.models import FILTERABLE_FIELDS, CustomField, Lead
from leaddesk.schemas.filters import FilterCriteria

# Upper bound on bound parameters per IN clause.
IN_CLAUSE_CHUNK = 500

NEWEST_FIRST = (Lead.created_at.desc(), Lead.id.desc())

KeysetPosition = tuple[datetime, str]


def chunked(items: Sequence[str], size: int) -> Iterator[list[str]]:
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


class LeadStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def conditions(self, caller: CallerIdentity, criteria: FilterCriteria | None = None) -> list[Any]:
        conditions = scope_conditions(caller)
        if criteria is not None:
            conditions.extend(filter_conditions(criteria))
        return conditions

    # -- aggregation ----------------------------------------------------------

    def count(self, caller: CallerIdentity, criteria: FilterCriteria | None = None) -> int:
        stmt = select(func.count()).select_from(Lead).where(*self.conditions(caller, criteria))
        return int(self.session.execute(stmt).scalar_one())

    def count_by_field(self, caller: CallerIdentity, criteria: FilterCriteria, field: str) -> dict[str, int]:
        if field not in FILTERABLE_FIELDS:
            raise ValueError(f"Unknown filter field: {field}")
        column = getattr(Lead, field)
        stmt = (
            select(column, func.count())
            .where(*self.conditions(caller, criteria), column.is_not(None), column != "")
            .group_by(column)
        )
        return {str(value): int(total) for value, total in self.session.execute(stmt).all()}

    def count_by_custom_field(self, caller: CallerIdentity, criteria: FilterCriteria, key: str) -> dict[str, int]:
        expression = custom_field_expression(key)
        stmt = (
            select(expression, func.count())
            .where(*self.conditions(caller, criteria), expression.is_not(None), expression != "")
            .group_by(expression)
        )
        return {str(value): int(total) for value, total in self.session.execute(stmt).all()}

    def distinct_values(self, caller: CallerIdentity, field: str) -> list[str]:
        if field not in FILTERABLE_FIELDS:
            raise ValueError(f"Unknown filter field: {field}")
        column = getattr(Lead, field)
        stmt = (
            select(column)
            .where(*self.conditions(caller), column.is_not(None), column != "")
            .distinct()
            .order_by(column)
        )
        return [str(value) for value in self.session.execute(stmt).scalars().all()]

    def distinct_custom_values(self, caller: CallerIdentity, key: str) -> list[str]:
        expression = custom_field_expression(key)
        stmt = (
            select(expression)
            .where(*self.conditions(caller), expression.is_not(None), expression != "")
            .distinct()
            .order_by(expression)
        )
        return [str(value) for value in self.session.execute(stmt).scalars().all()]

    def custom_field_keys(self) -> list[str]:
        stmt = select(CustomField.name).distinct().order_by(CustomField.name)
        return list(self.session.execute(stmt).scalars().all())

    # -- ordered reads --------------------------------------------------------

    def page(self, caller: CallerIdentity, criteria: FilterCriteria, offset: int, limit: int) -> list[Lead]:
        stmt = (
            select(Lead)
            .where(*self.conditions(caller, criteria))
            .order_by(*NEWEST_FIRST)
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all())

    def keyset_page(
        self,
        caller: CallerIdentity,
        criteria: FilterCriteria,
        after: KeysetPosition | None,
        limit: int,
    ) -> list[Lead]:
        stmt = (
            select(Lead)
            .where(*self.conditions(caller, criteria), *self._after(after))
            .order_by(*NEWEST_FIRST)
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all())

    def keyset_ids(
        self,
        caller: CallerIdentity,
        criteria: FilterCriteria,
        after: KeysetPosition | None,
        limit: int,
    ) -> list[tuple[str, datetime]]:
        stmt = (
            select(Lead.id, Lead.created_at)
            .where(*self.conditions(caller, criteria), *self._after(after))
            .order_by(*NEWEST_FIRST)
            .limit(limit)
        )
        return [(row_id, created_at) for row_id, created_at in self.session.execute(stmt).all()]

    def scoped_existing_ids(self, caller: CallerIdentity, lead_ids: Sequence[str]) -> list[str]:
        """Keep the ids that exist and are visible to ``caller``, in input order."""
        visible: set[str] = set()
        for chunk in chunked(list(dict.fromkeys(lead_ids)), IN_CLAUSE_CHUNK):
            stmt = select(Lead.id).where(*self.conditions(caller), Lead.id.in_(chunk))
            visible.update(self.session.execute(stmt).scalars().all())
        return [lead_id for lead_id in dict.fromkeys(lead_ids) if lead_id in visible]

    @staticmethod
    def _after(after: KeysetPosition | None) -> list[Any]:
        if after is None:
            return []
        created_at, lead_id = after
        return [
            or_(
                Lead.created_at < created_at,
                and_(Lead.created_at == created_at, Lead.id < lead_id),
            )
        ]

    # -- writes ---------------------------------------------------------------

    def insert_many(self, rows: Iterable[dict[str, Any]]) -> list[str]:
        leads = [Lead(**row) for row in rows]
        self.session.add_all(leads)
        self.session.flush()
        return [lead.id for lead in leads]

    def assign(self, lead_ids: Sequence[str], user_id: str, assigned_at: datetime) -> int:
        updated = 0
        for chunk in chunked(lead_ids, IN_CLAUSE_CHUNK):
            stmt = (
                update(Lead)
                .where(Lead.id.in_(chunk))
                .values(assigned_to=user_id, assignment_date=assigned_at, updated_at=assigned_at)
                .execution_options(synchronize_session=False)
            )
            updated += self.session.execute(stmt).rowcount or 0
        return updated

    def delete(self, lead_ids: Sequence[str]) -> int:
        deleted = 0
        for chunk in chunked(lead_ids, IN_CLAUSE_CHUNK):
            stmt = delete(Lead).where(Lead.id.in_(chunk)).execution_options(synchronize_session=False)
            deleted += self.session.execute(stmt).rowcount or 0
        return deleted
