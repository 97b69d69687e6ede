"""
CustomTees Backend — Circuit Breaker
======================================

What:  Fail-fast guard in front of an external integration.
Why:   When UPS is down every label, quote and tracking call would otherwise
       wait out its timeouts and retries before failing.
Who:   UPSService owns one instance; the health route reads its state.

State Machine:
    CLOSED (normal operation)
        → On failure: increment failure_count
        → When failure_count >= threshold: transition to OPEN

    OPEN (rejecting all requests)
        → All calls raise CircuitBreakerOpenError immediately
        → After recovery_timeout seconds: transition to HALF_OPEN

    HALF_OPEN (testing recovery)
        → Allow requests through
        → On success: transition to CLOSED (reset failure_count)
        → On failure: transition back to OPEN (reset timer)

Not thread-safe (plain counters). uvicorn async workers share one event
loop per process, so each process keeps its own breaker.
"""

import logging
import time
from typing import Optional

from app.exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)


class CircuitBreaker:

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60, service: str = "carrier"):
        """
        Args:
            failure_threshold: Consecutive failures before opening circuit
            recovery_timeout:  Seconds to wait before testing recovery
            service:           Name used in log lines and the 503 message
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.service = service
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        True when a call may proceed.

        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout has not elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "%s circuit breaker transitioning to HALF_OPEN after %.1fs",
                    self.service,
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = max(int(self.recovery_timeout - elapsed), 1)
            raise CircuitBreakerOpenError(recovery_time=remaining, service=self.service)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("%s circuit breaker transitioning to CLOSED (service recovered)", self.service)
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("%s circuit breaker returning to OPEN (test request failed)", self.service)
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "%s circuit breaker OPENING after %d consecutive failures",
                self.service,
                self.failure_count,
            )
            self.state = self.OPEN

    def reset(self) -> None:
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None
