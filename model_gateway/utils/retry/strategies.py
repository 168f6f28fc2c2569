from __future__ import annotations

import random


class RetryStrategy:
    """Exponential backoff schedule: ``initial_delay * base**attempt``, capped, jittered.

    ``attempt`` is zero-based: the delay before the second attempt is
    ``calculate_delay(0)``.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        jitter_range: tuple[float, float] = (0.5, 1.5),
    ) -> None:
        if max_attempts < 1:
            msg = "max_attempts must be at least 1"
            raise ValueError(msg)
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.jitter_range = jitter_range

    def has_attempts_left(self, attempts_made: int) -> bool:
        return attempts_made < self.max_attempts

    def calculate_delay(self, attempt: int, retry_after: float | None = None) -> float:
        delay = self.initial_delay * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay)
        if self.jitter:
            delay *= random.uniform(self.jitter_range[0], self.jitter_range[1])
        if retry_after is not None:
            # Provider-supplied hint wins when it asks for a longer wait
            delay = max(delay, min(retry_after, self.max_delay))
        return min(delay, self.max_delay)
