import random
from dataclasses import dataclass


@dataclass
class RetryConfig:
    max_attempts: int = 5
    base_delay: float = 3.0
    max_delay: float = 60.0
    jitter: float = 0.0


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """Delay before retry number ``attempt`` (1-based): doubling, jittered, capped."""
    delay = config.base_delay * (2 ** (attempt - 1))
    if config.jitter > 0:
        delay *= 1 + random.uniform(0, config.jitter)
    return min(delay, config.max_delay)
