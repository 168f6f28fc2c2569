from __future__ import annotations

from model_gateway.utils.retry.exceptions import RetryStatistics
from model_gateway.utils.retry.strategies import RetryStrategy

__all__ = ["RetryStatistics", "RetryStrategy"]
