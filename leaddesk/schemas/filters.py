"""Filter criteria value object shared by every lead resolver."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from leaddesk.models.enums import FILTERABLE_FIELDS

CustomFilterValue = Union[str, int, float, bool]


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DateRange(BaseModel):
    """Inclusive bounds on lead creation time. Either side may be open."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_: datetime | None = Field(default=None, alias="from")
    to: datetime | None = None

    @field_validator("from_", "to")
    @classmethod
    def _normalize_tz(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.from_ is not None and self.to is not None and self.from_ > self.to:
            raise ValueError("date range 'from' must not be after 'to'")
        return self

    @property
    def is_open(self) -> bool:
        return self.from_ is None and self.to is None


class FilterCriteria(BaseModel):
    """Immutable snapshot of every filter dimension.

    Empty value sets mean "no restriction". Two criteria are equal when their
    canonical JSON forms are equal, which is also what caches key on.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    school: frozenset[str] = frozenset()
    district: frozenset[str] = frozenset()
    gender: frozenset[str] = frozenset()
    stream: frozenset[str] = frozenset()
    search_query: str = Field(default="", max_length=200, alias="searchQuery")
    date_range: DateRange = Field(default_factory=DateRange, alias="dateRange")
    custom_filters: dict[str, CustomFilterValue] = Field(default_factory=dict, alias="customFilters")

    @field_validator("custom_filters", mode="before")
    @classmethod
    def _drop_blank_custom_filters(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        return {key: item for key, item in value.items() if item is not None and item != ""}

    @classmethod
    def empty(cls) -> "FilterCriteria":
        return cls()

    @property
    def equality_fields(self) -> dict[str, frozenset[str]]:
        return {field: getattr(self, field) for field in FILTERABLE_FIELDS}

    @property
    def normalized_search(self) -> str:
        return self.search_query.strip()

    @property
    def has_active_filters(self) -> bool:
        return (
            any(self.equality_fields.values())
            or bool(self.normalized_search)
            or not self.date_range.is_open
            or bool(self.custom_filters)
        )

    def canonical_dict(self) -> dict[str, Any]:
        return {
            "equality": {field: sorted(values) for field, values in self.equality_fields.items()},
            "search_query": self.normalized_search,
            "date_range": {
                "from": self.date_range.from_.isoformat() if self.date_range.from_ else None,
                "to": self.date_range.to.isoformat() if self.date_range.to else None,
            },
            "custom_filters": dict(self.custom_filters),
        }

    def canonical_json(self) -> str:
        return json.dumps(self.canonical_dict(), sort_keys=True, separators=(",", ":"), default=str)

    def same_as(self, other: "FilterCriteria") -> bool:
        return self.canonical_json() == other.canonical_json()

    def to_storage(self) -> dict[str, Any]:
        """Serialize to the JSON shape accepted back by ``model_validate``."""
        payload = {field: sorted(values) for field, values in self.equality_fields.items()}
        payload["search_query"] = self.search_query
        payload["date_range"] = {
            "from": self.date_range.from_.isoformat() if self.date_range.from_ else None,
            "to": self.date_range.to.isoformat() if self.date_range.to else None,
        }
        payload["custom_filters"] = dict(self.custom_filters)
        return payload
