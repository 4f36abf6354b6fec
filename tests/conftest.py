"""Pytest configuration for all tests."""

import pytest
import structlog

from schemadiff.core.config import get_settings


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Settings are cached per process; keep tests independent of each other."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Commands reconfigure structlog; restore the defaults after each test."""
    yield
    structlog.reset_defaults()
