"""Fixtures for model gateway tests.

Registries are created fresh per test and use zero-delay retries; the
scripted providers live in tests/fixtures/ai_fixtures.py.
"""

from __future__ import annotations

import pytest

from model_gateway.core.settings import AISettings
from model_gateway.infra.ai.availability import AvailabilityController, RetryPolicy
from model_gateway.infra.ai.capabilities.registry import ModelRegistry
from tests.fixtures import ScriptedChatProvider, SleepRecorder, chat_spec

# ──────────────────────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────────────────────


@pytest.fixture
def settings():
    """Settings with fast, deterministic retries."""
    return AISettings(retry_max_attempts=3, retry_base_delay=0.0, retry_jitter=False)


@pytest.fixture
def registry(settings):
    """Create a fresh model registry for each test."""
    return ModelRegistry(settings)


@pytest.fixture
def sleeper():
    """Record backoff delays instead of sleeping."""
    return SleepRecorder()


@pytest.fixture
def controller(registry, sleeper):
    """Chat controller with three attempts and no real sleeping."""
    return AvailabilityController(
        registry.chat,
        RetryPolicy(max_attempts=3, base_delay=0.5, max_delay=30.0, jitter=False),
        sleep=sleeper,
    )


@pytest.fixture
def acme():
    """Scripted chat provider named 'acme'."""
    return ScriptedChatProvider("acme")


@pytest.fixture
def cheap_specs():
    """Three chat models with distinct blended costs (3.00 < 6.00 < 12.00)."""
    return [
        chat_spec("acme-mini", input_price="1.00", output_price="2.00", scores={"intelligence": 2}),
        chat_spec("acme-mid", input_price="2.00", output_price="4.00", scores={"intelligence": 3, "tools": 1}),
        chat_spec(
            "acme-max",
            input_price="4.00",
            output_price="8.00",
            context_length=200_000,
            scores={"intelligence": 5, "tools": 1},
        ),
    ]


@pytest.fixture
def acme_registry(registry, acme, cheap_specs):
    """Registry with the scripted acme provider installed."""
    registry.register_provider(acme.registration(cheap_specs))
    return registry
