"""
Retry Policy

Count-bounded, immediate retry for remediation actions.

Authority calls are fast and idempotent, so a failed action is simply
re-attempted straight away until it succeeds or the per-entity failure count
reaches ``max_attempts``. There is no backoff and no cross-pass retry queue:
an entity whose ladder is exhausted is re-observed on the next pass.

    failures:   1        2        3 (= max_attempts)
    decision:   RETRY    RETRY    EXHAUSTED

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum, auto


class RetryDecision(Enum):
    """Outcome of consulting the policy after a failed attempt."""
    RETRY = auto()       # Attempt the same action again, immediately
    EXHAUSTED = auto()   # Give up for this pass


@dataclass
class RetryConfig:
    """Retry policy configuration."""
    max_attempts: int = 3


@dataclass
class RetryMetrics:
    """Retry metrics."""
    total_attempts: int = 0
    successful_attempts: int = 0
    failed_attempts: int = 0
    retries_exhausted: int = 0


class RetryPolicy:
    """
    Immediate retry bounded purely by count.

    The policy owns no per-entity state; callers pass the running failure
    count (the entity's ``retry_count`` after incrementing it) and act on the
    returned decision.

    Example:
        policy = RetryPolicy(max_attempts=3)
        record.retry_count += 1
        if policy.after_failure(record.retry_count) is RetryDecision.RETRY:
            ...
    """

    def __init__(self, max_attempts: int = 3):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.config = RetryConfig(max_attempts=max_attempts)
        self._metrics = RetryMetrics()
        self._lock = threading.Lock()

    @property
    def max_attempts(self) -> int:
        return self.config.max_attempts

    @property
    def metrics(self) -> RetryMetrics:
        """Current retry metrics."""
        with self._lock:
            return RetryMetrics(
                total_attempts=self._metrics.total_attempts,
                successful_attempts=self._metrics.successful_attempts,
                failed_attempts=self._metrics.failed_attempts,
                retries_exhausted=self._metrics.retries_exhausted,
            )

    def after_success(self) -> None:
        with self._lock:
            self._metrics.total_attempts += 1
            self._metrics.successful_attempts += 1

    def after_failure(self, failures: int) -> RetryDecision:
        """Decide what to do after the ``failures``-th consecutive failure."""
        with self._lock:
            self._metrics.total_attempts += 1
            self._metrics.failed_attempts += 1
            if failures >= self.config.max_attempts:
                self._metrics.retries_exhausted += 1
                return RetryDecision.EXHAUSTED
        return RetryDecision.RETRY
