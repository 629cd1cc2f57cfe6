"""Global test configuration for Agent Oracle."""

import os

import pytest


@pytest.fixture(autouse=True, scope="session")
def _set_test_env_vars():
    """Pin settings that tests rely on.

    Only sets values that aren't already present, so real env vars take
    precedence (useful for integration tests).
    """
    defaults = {
        "STORE_BACKEND": "memory",
        "MAINTENANCE_ENABLED": "false",
    }
    originals = {}
    for key, value in defaults.items():
        if key not in os.environ:
            os.environ[key] = value
            originals[key] = None
        else:
            originals[key] = os.environ[key]

    # Clear the lru_cache on get_settings so it picks up the new env vars
    from agent_oracle.config import get_settings
    get_settings.cache_clear()

    yield

    for key, original in originals.items():
        if original is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original
    get_settings.cache_clear()
