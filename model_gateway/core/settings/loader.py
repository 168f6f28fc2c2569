"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the
process.

Testing:
    In tests, clear the cache to force reload:
    get_ai_settings.cache_clear()

    Or construct settings directly:
    settings = AISettings(retry_max_attempts=1)
"""

from __future__ import annotations

from functools import lru_cache

from .ai import AISettings
from .logs import LoggingSettings


@lru_cache(maxsize=1)
def get_ai_settings() -> AISettings:
    """Get cached model gateway settings.

    Returns:
        Validated and frozen AISettings instance.
    """
    return AISettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()
