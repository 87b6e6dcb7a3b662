"""Pytest configuration and shared fixtures."""

import pytest

from config import Config
from database import Database


@pytest.fixture
def config(tmp_path) -> Config:
    """Configuration pointing all file outputs at the test directory."""
    return Config(
        openai_api_key="test-key",
        exa_api_key="test-key",
        db_path=tmp_path / "test.db",
        reports_dir=tmp_path / "reports",
        log_dir=tmp_path / "log",
        search_concurrency=2,
        source_concurrency=5,
    )


@pytest.fixture
def db(config):
    database = Database(config.db_path)
    yield database
    database.close()
