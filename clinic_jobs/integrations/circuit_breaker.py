"""Circuit breaker shared by the outbound HTTP clients.

After failure_threshold consecutive failures the breaker opens and calls are
refused with DownstreamError. Once reset_timeout has passed, a single trial
call is let through: success closes the breaker, failure opens it again.
"""

import logging
import time
from collections.abc import Callable

from clinic_jobs.exceptions import DownstreamError

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """Consecutive-failure circuit breaker for one downstream service."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            name: Service name used in log lines and errors
            failure_threshold: Consecutive failures before opening
            reset_timeout: Seconds the breaker stays open before a trial call
            clock: Monotonic clock
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self.failure_count = 0
        self.opened_at: float | None = None
        self.half_open = False

    @property
    def is_open(self) -> bool:
        return self.opened_at is not None

    def guard(self) -> None:
        """Refuse the call while open.

        Raises:
            DownstreamError: If the breaker is open and not yet due a trial call
        """
        if self.opened_at is None:
            return

        if self._clock() - self.opened_at < self.reset_timeout:
            raise DownstreamError(f"{self.name} circuit breaker is open")

        logger.info(f"{self.name} circuit breaker half-open, allowing a trial request")
        self.opened_at = None
        self.half_open = True

    def record_success(self) -> None:
        if self.half_open:
            logger.info(f"{self.name} circuit breaker closed")
        self.failure_count = 0
        self.opened_at = None
        self.half_open = False

    def record_failure(self) -> bool:
        """Record a failed call. Returns True if this failure opened the breaker."""
        self.failure_count += 1
        if self.opened_at is None and (self.half_open or self.failure_count >= self.failure_threshold):
            self.opened_at = self._clock()
            self.half_open = False
            logger.warning(
                f"{self.name} circuit breaker opened after {self.failure_count} consecutive failures, "
                f"pausing calls for {self.reset_timeout:g}s"
            )
            return True
        return False
