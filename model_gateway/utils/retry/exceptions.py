"""Statistics helpers for retry loops."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class RetryStatistics:
    """Statistics captured during a retry session."""

    attempts: int = 0
    total_delay: float = 0.0
    start_time: float = 0.0
    end_time: float = 0.0
    exceptions: list[str] = field(default_factory=list)

    @property
    def duration(self) -> float:
        """Total time spent retrying."""
        return self.end_time - self.start_time

    def to_log_extra(self) -> dict[str, object]:
        return {
            "attempts": self.attempts,
            "total_delay": round(self.total_delay, 3),
            "duration": round(self.duration, 3),
            "exceptions": list(self.exceptions),
        }
