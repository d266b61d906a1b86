"""
touchgrass.ingestion.retry

Bounded exponential backoff shared by the store and index adapters.
"""

from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay_s: float = 0.1
    max_delay_s: float = 10.0
    jitter: float = 0.0

    def compute_backoff_s(self, attempt: int) -> float:
        """
        attempt: 1..N
        """
        delay = self.base_delay_s * (2 ** max(0, attempt - 1))
        delay = min(delay, self.max_delay_s)
        if self.jitter > 0:
            delay = delay * (1.0 + (random.random() * 2 - 1) * self.jitter)  # +- jitter
        return max(0.0, delay)
