"""Utility modules for common operations.

This package provides reusable utilities for:
- Retry backoff schedules and statistics
"""

from model_gateway.utils.retry import RetryStatistics, RetryStrategy

__all__ = [
    "RetryStatistics",
    "RetryStrategy",
]
