"""Backoff policies for rescheduling failed workflow jobs.

A failed job is put back in the queue ``compute_delay(retry_count)``
seconds in the future, where ``retry_count`` is the number of reschedules
including this one (1-based). The default policy is linear:

    retry 1 -> now + 1 * interval
    retry 2 -> now + 2 * interval
    retry 3 -> now + 3 * interval

Usage:
    strategy = RetryStrategy.from_settings(get_settings())
    if strategy.should_retry(job.retry_count, job.max_retries):
        run_at = strategy.next_run_at(utcnow(), job.retry_count + 1)
"""

import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from app.config import Settings


class RetryPolicy(str, Enum):
    """Available retry policies."""
    FIXED = "fixed"
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    NONE = "none"


@dataclass
class RetryStrategy:
    """How far into the future a failed job is rescheduled."""
    policy: RetryPolicy
    max_retries: int = 3
    base_delay: float = 60.0
    max_delay: Optional[float] = None
    jitter: bool = False
    jitter_range: float = 0.5

    @classmethod
    def none(cls) -> 'RetryStrategy':
        """No retries — the first failure is final."""
        return cls(policy=RetryPolicy.NONE, max_retries=0)

    @classmethod
    def fixed(cls, max_retries: int = 3, delay: float = 60.0) -> 'RetryStrategy':
        """Same delay before every retry."""
        return cls(policy=RetryPolicy.FIXED, max_retries=max_retries, base_delay=delay)

    @classmethod
    def linear(cls, max_retries: int = 3, base_delay: float = 60.0) -> 'RetryStrategy':
        """Linear backoff: delay = base_delay * retry_count."""
        return cls(policy=RetryPolicy.LINEAR, max_retries=max_retries, base_delay=base_delay)

    @classmethod
    def exponential(
        cls,
        max_retries: int = 3,
        base_delay: float = 60.0,
        max_delay: float = 3600.0,
        jitter: bool = False,
    ) -> 'RetryStrategy':
        """Exponential backoff: delay = base_delay * 2 ** (retry_count - 1)."""
        return cls(
            policy=RetryPolicy.EXPONENTIAL,
            max_retries=max_retries,
            base_delay=base_delay,
            max_delay=max_delay,
            jitter=jitter,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> 'RetryStrategy':
        """Job-queue strategy from ``JOB_BACKOFF_POLICY`` and friends."""
        return cls(
            policy=RetryPolicy(settings.JOB_BACKOFF_POLICY),
            max_retries=settings.JOB_MAX_RETRIES,
            base_delay=settings.JOB_RETRY_INTERVAL_SECONDS,
        )

    def compute_delay(self, retry_count: int) -> float:
        """Delay in seconds before retry number ``retry_count`` (1-based)."""
        if self.policy == RetryPolicy.NONE:
            return 0.0

        if self.policy == RetryPolicy.FIXED:
            delay = self.base_delay
        elif self.policy == RetryPolicy.EXPONENTIAL:
            delay = self.base_delay * (2 ** (retry_count - 1))
        else:
            delay = self.base_delay * retry_count

        if self.max_delay is not None:
            delay = min(delay, self.max_delay)

        if self.jitter and delay > 0:
            jitter_amount = delay * self.jitter_range
            delay = max(0.0, delay + random.uniform(-jitter_amount, jitter_amount))

        return round(delay, 3)

    def should_retry(self, retry_count: int, max_retries: Optional[int] = None) -> bool:
        """Whether a job that has been rescheduled ``retry_count`` times may be again."""
        if self.policy == RetryPolicy.NONE:
            return False
        limit = self.max_retries if max_retries is None else max_retries
        return retry_count < limit

    def next_run_at(self, now: datetime, retry_count: int) -> datetime:
        """When retry number ``retry_count`` should run."""
        return now + timedelta(seconds=self.compute_delay(retry_count))
