"""Retry configuration with exponential backoff.

Used by the transaction runner to space out re-attempts after a write
conflict, so that writers racing on the same listing do not retry in
lock-step.
"""
import random

from auction_engine.core.config import Settings


class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds (doubles each retry)
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential backoff (default: 2)
        jitter: Add randomness to prevent thundering herd (default: True)
    """

    def __init__(
        self,
        max_retries: int = 5,
        initial_delay: float = 0.01,
        max_delay: float = 0.25,
        exponential_base: float = 2.0,
        jitter: bool = True,
    ):
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryConfig":
        return cls(
            max_retries=settings.TX_MAX_RETRIES,
            initial_delay=settings.TX_RETRY_INITIAL_DELAY,
            max_delay=settings.TX_RETRY_MAX_DELAY,
        )

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a given retry attempt.

        Args:
            attempt: Current attempt number (0-indexed)

        Returns:
            Delay in seconds before next retry

        Example:
            With initial_delay=0.01, exponential_base=2.0:
            - attempt 0: 0.01s
            - attempt 1: 0.02s
            - attempt 2: 0.04s
        """
        delay = self.initial_delay * (self.exponential_base ** attempt)
        delay = min(delay, self.max_delay)

        if self.jitter:
            # Add random factor between 0 and 0.3 * delay
            delay += random.uniform(0, 0.3 * delay)

        return delay
