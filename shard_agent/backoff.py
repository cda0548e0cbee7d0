"""Retry delay policy shared by every transient-failure site in the tick loop."""
from __future__ import annotations

from dataclasses import dataclass

from shard_agent import config


@dataclass
class BackoffPolicy:
    base_seconds: float = config.RETRY_BASE_SECONDS
    multiplier: float = config.RETRY_MULTIPLIER
    max_seconds: float = config.RETRY_MAX_SECONDS
    failures: int = 0

    def next_delay(self) -> float:
        """Record one more consecutive failure and return how long to wait."""
        self.failures += 1
        delay = max(0.0, self.base_seconds) * (self.multiplier ** (self.failures - 1))
        return min(delay, self.max_seconds)

    def reset(self) -> None:
        self.failures = 0
