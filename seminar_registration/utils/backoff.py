"""
Retry delay strategies for the email queue.

`retry_count` is the number of failed attempts so far (1 after the first
failure).
"""

from datetime import timedelta

from seminar_registration.core.config import Settings


class FixedBackoff:
    """Same delay before every retry."""

    def __init__(self, minutes: int = 5):
        self.minutes = minutes

    def __call__(self, retry_count: int) -> timedelta:
        return timedelta(minutes=self.minutes)


class ExponentialBackoff:
    """initial * multiplier^(retry_count - 1), capped."""

    def __init__(self, initial_minutes: int = 5, multiplier: int = 3, max_minutes: int = 24 * 60):
        self.initial_minutes = initial_minutes
        self.multiplier = multiplier
        self.max_minutes = max_minutes

    def __call__(self, retry_count: int) -> timedelta:
        exponent = max(retry_count - 1, 0)
        minutes = self.initial_minutes * (self.multiplier ** exponent)
        return timedelta(minutes=min(minutes, self.max_minutes))


def backoff_from_settings(settings: Settings):
    strategy = settings.EMAIL_QUEUE_BACKOFF_STRATEGY.lower()
    if strategy == "exponential":
        return ExponentialBackoff(
            initial_minutes=settings.EMAIL_QUEUE_INITIAL_BACKOFF_MINUTES,
            multiplier=settings.EMAIL_QUEUE_BACKOFF_MULTIPLIER,
        )
    if strategy == "fixed":
        return FixedBackoff(minutes=settings.EMAIL_QUEUE_INITIAL_BACKOFF_MINUTES)
    raise ValueError(f"Unknown EMAIL_QUEUE_BACKOFF_STRATEGY: {settings.EMAIL_QUEUE_BACKOFF_STRATEGY}")
