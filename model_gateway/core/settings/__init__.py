"""Pydantic Settings v2 configuration.

Import settings via cached loaders:
    from model_gateway.core.settings import get_ai_settings

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. YAML/conf.d files (optional, local/dev)
    3. Environment variables (production)
    4. .env file (development only)
    5. secrets_dir (Kubernetes/Docker secrets)
"""

from __future__ import annotations

from .ai import AISettings
from .loader import get_ai_settings, get_logging_settings
from .logs import LoggingSettings

__all__ = [
    "AISettings",
    "LoggingSettings",
    "get_ai_settings",
    "get_logging_settings",
]
