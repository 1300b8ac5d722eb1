from __future__ import annotations

import pytest

from leaddesk.core.config import _build_config
from leaddesk.core.exceptions import ConfigurationError


def test_defaults_are_valid(monkeypatch):
    monkeypatch.delenv("BULK_DELETE_BATCH_SIZE", raising=False)
    monkeypatch.delenv("BULK_SERVER_SIDE_BATCH_FACTOR", raising=False)
    monkeypatch.delenv("DEBUG", raising=False)
    config = _build_config("development")
    assert config.DEBUG is True
    assert config.server_side_delete_threshold == config.BULK_DELETE_BATCH_SIZE * config.BULK_SERVER_SIDE_BATCH_FACTOR


@pytest.mark.parametrize(
    "name,value",
    [
        ("DATABASE_URL", "mysql://db/leads"),
        ("DATABASE_URL", "postgresql:///nohost"),
        ("READ_MAX_RETRIES", "7"),
        ("QUERY_TIMEOUT_SECONDS", "0"),
        ("DEFAULT_PAGE_SIZE", "5000"),
        ("BULK_DELETE_BATCH_SIZE", "0"),
        ("LOG_LEVEL", "CHATTY"),
    ],
)
def test_invalid_settings_are_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigurationError):
        _build_config("development")


def test_production_rejects_placeholder_secret(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "change_me_in_production")
    monkeypatch.setenv("DATABASE_URL", "postgresql://leads:s3cret@db:5432/leaddesk")
    with pytest.raises(ConfigurationError, match="JWT_SECRET"):
        _build_config("production")
