"""
Backoff between failing relay cycles.

A cycle that fails (authentication, network, rate limit) is not retried
in place; the loop waits an exponentially growing delay before the next
cycle and resets the delay after a clean one.
"""

import random
from dataclasses import dataclass


@dataclass
class RetryConfig:
    """Configuration for backoff behavior."""

    initial_delay: float = 1.0
    max_delay: float = 300.0
    exponential_base: float = 2.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        """Delay before the next cycle after ``attempt + 1`` consecutive failures."""
        return exponential_backoff(
            attempt,
            self.initial_delay,
            self.exponential_base,
            self.max_delay,
            self.jitter,
        )


def exponential_backoff(
    attempt: int,
    initial_delay: float = 1.0,
    exponential_base: float = 2.0,
    max_delay: float = 60.0,
    jitter: bool = True,
) -> float:
    """
    Calculate exponential backoff delay.

    Args:
        attempt: Current attempt number (0-indexed)
        initial_delay: Initial delay in seconds
        exponential_base: Base for exponential calculation
        max_delay: Maximum delay in seconds
        jitter: Whether to add random jitter

    Returns:
        Delay in seconds
    """
    delay = min(initial_delay * (exponential_base**attempt), max_delay)

    if jitter:
        # Add jitter (0-25% of delay)
        jitter_amount = delay * 0.25
        delay += random.uniform(0, jitter_amount)

    return delay
