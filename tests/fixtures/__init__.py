"""Test fixtures for pytest.

This module re-exports commonly used test helpers for easier importing.
"""

from .ai_fixtures import (
    AcmeFeatures,
    ScriptedChatProvider,
    ScriptedDispatch,
    SleepRecorder,
    acme_mangle,
    chat_spec,
    text_chunk,
    unit_spec,
)

__all__ = [
    "AcmeFeatures",
    "ScriptedChatProvider",
    "ScriptedDispatch",
    "SleepRecorder",
    "acme_mangle",
    "chat_spec",
    "text_chunk",
    "unit_spec",
]
