"""Backoff arithmetic and tenacity strategies for the retry loop.

Delay growth is deterministic: ``next_delay`` chains from the initial delay
and saturates at the cap. Randomness is only applied to the actual sleep via
``jittered_delay`` and never fed back into the chain.
"""

from __future__ import annotations

import random
from typing import Optional

from tenacity import stop_after_attempt, stop_never
from tenacity.stop import stop_base

from condakit.domain.config.retry import RetryPolicy

MIN_SLEEP_SECONDS = 0.1


def jittered_delay(base_delay: float, jitter: float, rng: Optional[random.Random] = None) -> float:
    """Sleep duration for one round: base +/- jitter fraction, floored at 0.1s.

    Args:
        base_delay: Current (un-jittered) delay in seconds
        jitter: Jitter fraction in [0, 1]
        rng: Random source (module-level generator if None)

    Returns:
        Seconds to sleep before the next attempt
    """
    u = (rng or random).uniform(-jitter, jitter) if jitter > 0 else 0.0
    return max(MIN_SLEEP_SECONDS, base_delay * (1 + u))


def next_delay(base_delay: float, multiplier: float, max_delay: float) -> float:
    """Next un-jittered delay: ``min(base * multiplier, max_delay)``"""
    return min(base_delay * multiplier, max_delay)


def delay_schedule(policy: RetryPolicy, count: int) -> list[float]:
    """First ``count`` un-jittered delays produced by a policy"""
    delays = []
    delay = policy.initial_delay
    for _ in range(count):
        delays.append(delay)
        delay = next_delay(delay, policy.backoff_multiplier, policy.max_delay)
    return delays


def stop_for_policy(policy: RetryPolicy) -> stop_base:
    """Termination predicate for a policy (0 attempts = never stop)"""
    if policy.unbounded:
        return stop_never
    return stop_after_attempt(policy.max_attempts)

