from __future__ import annotations

from leaddesk.models import Base
import leaddesk.models  # noqa: F401


def test_modular_model_metadata_contains_target_tables():
    expected = {
        "users",
        "leads",
        "lead_buckets",
        "custom_fields",
        "import_jobs",
    }
    assert expected == set(Base.metadata.tables.keys())


def test_lead_listing_indexes_cover_sort_and_scope_columns():
    leads = Base.metadata.tables["leads"]
    indexed = {tuple(column.name for column in index.columns) for index in leads.indexes}
    assert ("assigned_to",) in indexed
    assert ("created_at", "id") in indexed
