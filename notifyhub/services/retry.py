from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class RetryPolicy:
    base_ms: int = 15_000
    cap_ms: int = 30 * 60 * 1000
    jitter_ms: int = 5_000

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            base_ms=settings.outbox_backoff_base_ms,
            cap_ms=settings.outbox_backoff_cap_ms,
            jitter_ms=settings.outbox_backoff_jitter_ms,
        )


def base_delay_ms(attempt: int, policy: RetryPolicy = RetryPolicy()) -> int:
    # attempt is 1-based: the first failure waits base_ms
    return min(policy.cap_ms, policy.base_ms * (2 ** max(0, attempt - 1)))


def compute_backoff_ms(attempt: int, policy: RetryPolicy = RetryPolicy(), rng: random.Random | None = None) -> int:
    # exponential backoff with jitter
    jitter = (rng or random).randint(0, policy.jitter_ms) if policy.jitter_ms > 0 else 0
    return base_delay_ms(attempt, policy) + jitter


def next_attempt_at(now: datetime, attempt: int, policy: RetryPolicy = RetryPolicy(), rng: random.Random | None = None) -> datetime:
    return now + timedelta(milliseconds=compute_backoff_ms(attempt, policy, rng))
