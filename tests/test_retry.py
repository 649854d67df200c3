import random
from datetime import datetime, timedelta, timezone

from notifyhub.services.retry import RetryPolicy, base_delay_ms, compute_backoff_ms, next_attempt_at

from outbox_testing import MaxJitter, ZeroJitter


def test_backoff_sequence_without_jitter():
    delays = [compute_backoff_ms(n, rng=ZeroJitter()) for n in range(1, 9)]
    assert [d // 1000 for d in delays] == [15, 30, 60, 120, 240, 480, 960, 1800]


def test_backoff_stays_within_jitter_window():
    rng = random.Random(1234)
    for n in range(1, 12):
        low = min(15_000 * 2 ** (n - 1), 1_800_000)
        for _ in range(50):
            d = compute_backoff_ms(n, rng=rng)
            assert low <= d <= low + 5_000


def test_backoff_upper_bound_and_cap():
    assert compute_backoff_ms(1, rng=MaxJitter()) == 20_000
    assert base_delay_ms(8) == 1_800_000
    assert base_delay_ms(30) == 1_800_000


def test_custom_policy_without_jitter():
    policy = RetryPolicy(base_ms=1_000, cap_ms=4_000, jitter_ms=0)
    assert [compute_backoff_ms(n, policy) for n in (1, 2, 3, 4)] == [1_000, 2_000, 4_000, 4_000]


def test_next_attempt_at_adds_delay():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert next_attempt_at(now, 2, rng=ZeroJitter()) == now + timedelta(seconds=30)
