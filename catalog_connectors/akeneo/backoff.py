from __future__ import annotations

import random
from typing import Mapping, Optional

from .config import RetryPolicy
from .constants import DEFAULT_429_DELAY_MS, MAX_BACKOFF_EXPONENT


def calculate_delay(attempt: int, policy: RetryPolicy, rng: Optional[random.Random] = None) -> float:
    """
    Delay in milliseconds before retry number `attempt` (1-indexed).

    Exponential: delay_ms * 2^(attempt-1), the exponent capped at
    MAX_BACKOFF_EXPONENT.

    With jitter on, the delay is scaled by a factor drawn from
    [1 - 1/attempt, 1]: the first retry gets full jitter over [0, delay],
    later retries narrow toward the exponential value. The result never
    exceeds the un-jittered delay.
    """
    n = max(1, int(attempt))
    delay = float(policy.delay_ms) * (2 ** min(n - 1, MAX_BACKOFF_EXPONENT))
    if not policy.jitter or delay <= 0:
        return delay

    r = rng or random
    floor = 1.0 - (1.0 / n)
    return delay * r.uniform(floor, 1.0)


def parse_retry_after_ms(headers: Optional[Mapping[str, str]]) -> Optional[int]:
    """
    Retry-After as whole seconds → milliseconds. HTTP-date values and garbage
    are treated as absent.
    """
    if not headers:
        return None
    raw = None
    for k, v in headers.items():
        if str(k).lower() == "retry-after":
            raw = v
            break
    if raw is None:
        return None
    raw = str(raw).strip()
    if not raw.isdigit():
        return None
    return int(raw) * 1000


def rate_limit_delay_ms(headers: Optional[Mapping[str, str]]) -> int:
    parsed = parse_retry_after_ms(headers)
    return DEFAULT_429_DELAY_MS if parsed is None else parsed
