"""
Shared pytest fixtures for eurostat-query tests.

Import fixtures from here instead of defining them in individual test files.
"""
from __future__ import annotations

import os
from typing import List

import pytest

from eurostat_query.config import Settings, get_settings
from eurostat_query.models import Dimension
from eurostat_query.services.catalog import StaticCatalog, build_catalog
from eurostat_query.tests.utils import DEMO_DIMENSIONS, DEMO_TSV


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def test_environment():
    """Strip EUROSTAT_* variables so every test starts from defaults."""
    old_env = os.environ.copy()
    for key in list(os.environ):
        if key.upper().startswith("EUROSTAT_"):
            del os.environ[key]
    get_settings.cache_clear()
    yield
    os.environ.clear()
    os.environ.update(old_env)
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings()


# ============================================================================
# Catalog Fixtures
# ============================================================================

@pytest.fixture
def demo_catalog() -> List[Dimension]:
    """freq, unit, sex, age, geo, geo_level (virtual), time_period (virtual)."""
    return build_catalog(DEMO_DIMENSIONS)


@pytest.fixture
def static_catalog() -> StaticCatalog:
    return StaticCatalog({("ESTAT", "demo_pjan"): DEMO_DIMENSIONS})


# ============================================================================
# Response Fixtures
# ============================================================================

@pytest.fixture
def demo_tsv() -> str:
    return DEMO_TSV
