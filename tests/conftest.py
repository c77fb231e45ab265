"""Root conftest: shared test configuration."""

import os

import pytest

from structmap.config import get_settings
from structmap.core.diagnostics import CollectingSink

# Ensure the host environment never changes mapper behaviour under test
for _var in (
    "STRUCTMAP_STRICT", "STRUCTMAP_TAG_NAME", "STRUCTMAP_MAX_DEPTH",
    "STRUCTMAP_LOG_LEVEL", "STRUCTMAP_LOG_FORMAT",
):
    os.environ.pop(_var, None)


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()
