from __future__ import annotations

import random
from typing import Optional


def calc_backoff_ms(
    attempt: int,
    *,
    base_ms: int = 500,
    factor: float = 2.0,
    max_ms: int = 8000,
    jitter_ratio: float = 0.25,
    rng: Optional[random.Random] = None,
) -> int:
    """
    HTTP 重试用的毫秒级退避：base * factor^(attempt-1)，加 0~jitter_ratio 的抖动，总值不超过 max_ms。
    例（默认参数）：500, 1000, 2000, 4000, 8000, 8000 ...
    """
    attempt = max(1, attempt)
    delay = min(float(max_ms), base_ms * (factor ** (attempt - 1)))
    jitter = (rng or random).uniform(0, jitter_ratio * delay) if jitter_ratio > 0 else 0.0
    return int(min(float(max_ms), delay + jitter))
