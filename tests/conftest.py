"""Pytest configuration and shared fixtures.

Organization:
    - Environment: keeps tests independent of the developer's shell and .env
    - Settings: cached loader reset between tests

Model gateway fakes (scripted providers, dispatch stubs) live in the
tests.fixtures package; registry fixtures live in test_ai/conftest.py.
"""

from __future__ import annotations

import os

import pytest

from model_gateway.core.settings import get_ai_settings, get_logging_settings

# Ensure tests never pick up real provider credentials
for _key in [k for k in os.environ if k.startswith(("AI_", "LOG_"))]:
    del os.environ[_key]
_NO_CONFIG = os.path.join(os.path.dirname(__file__), "no-such-config")
os.environ.setdefault("AI_CONFIG_DIR", _NO_CONFIG)
os.environ.setdefault("LOGGING_CONFIG_DIR", _NO_CONFIG)


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Reload settings from the environment for every test."""
    get_ai_settings.cache_clear()
    get_logging_settings.cache_clear()
    yield
    get_ai_settings.cache_clear()
    get_logging_settings.cache_clear()
