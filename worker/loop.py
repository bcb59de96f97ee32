"""Dispatch loop: dequeue, dispatch, retry, and sweep delayed jobs.

Each iteration produces an IterationOutcome. Exceptions never escape an
iteration; a FAULT outcome is followed by a short cool-down so a broken
dependency cannot spin the loop.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from clinic_jobs.alerts import AdminAlerter
from clinic_jobs.config import Settings
from clinic_jobs.core.backoff import compute_retry_delay
from clinic_jobs.core.dispatcher import Dispatcher
from clinic_jobs.core.handlers import FailureReason, HandlerResult
from clinic_jobs.models import Job
from clinic_jobs.queue.job_queue import JobQueue

logger = logging.getLogger(__name__)


class IterationOutcome(str, Enum):
    """Result of a single loop iteration."""

    IDLE = "idle"
    COMPLETED = "completed"
    RESCHEDULED = "rescheduled"
    ABANDONED = "abandoned"
    FAULT = "fault"


@dataclass
class LoopConfig:
    """Timing and failure policy of the dispatch loop.

    Attributes:
        poll_timeout: Seconds to block waiting for a ready job.
        delayed_sweep_interval: Minimum seconds between delayed job sweeps.
        error_cooldown: Seconds to pause after a faulted iteration.
        handler_timeout: Seconds a job may run before it counts as failed (0 disables).
        retry_permanent_failures: Retry unknown-type and invalid-payload jobs
            like any other failure instead of dead-lettering them at once.
    """

    poll_timeout: int = 5
    delayed_sweep_interval: float = 5.0
    error_cooldown: float = 1.0
    handler_timeout: float = 0
    retry_permanent_failures: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "LoopConfig":
        return cls(
            poll_timeout=settings.poll_timeout,
            delayed_sweep_interval=settings.delayed_sweep_interval,
            error_cooldown=settings.error_cooldown,
            handler_timeout=settings.handler_timeout,
            retry_permanent_failures=settings.retry_permanent_failures,
        )


class DispatchLoop:
    """Runs jobs from a JobQueue until stopped.

    The only state carried between iterations is the time of the last
    delayed sweep, so several loops can run side by side (e.g. in tests).
    """

    def __init__(
        self,
        queue: JobQueue,
        dispatcher: Dispatcher,
        config: LoopConfig | None = None,
        alerter: AdminAlerter | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the loop.

        Args:
            queue: Queue to consume
            dispatcher: Routes jobs to handlers
            config: Loop timing and failure policy
            alerter: Optional admin alerter for abandoned jobs
            clock: Monotonic clock used for the sweep cadence
        """
        self.queue = queue
        self.dispatcher = dispatcher
        self.config = config or LoopConfig()
        self.alerter = alerter
        self._clock = clock
        self._last_sweep = clock()
        self._stop_event = asyncio.Event()
        self.jobs_processed = 0
        self.jobs_failed = 0

    def stop(self) -> None:
        """Request shutdown after the in-flight iteration finishes."""
        logger.info("Worker shutdown requested")
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    async def run(self) -> None:
        """Process jobs until stop() is called."""
        logger.info("Dispatch loop started")
        while not self._stop_event.is_set():
            outcome = await self.run_once()
            if outcome is IterationOutcome.FAULT:
                await self._cooldown()
        logger.info(f"Dispatch loop stopped: processed={self.jobs_processed}, failed={self.jobs_failed}")

    async def run_once(self) -> IterationOutcome:
        """Run one iteration, converting any exception into FAULT."""
        try:
            return await self._iterate()
        except Exception as e:
            logger.exception(f"ERROR in worker loop: {e}")
            return IterationOutcome.FAULT

    async def _iterate(self) -> IterationOutcome:
        await self._maybe_sweep()

        job = await self.queue.pop(self.config.poll_timeout)
        if job is None:
            return IterationOutcome.IDLE

        max_retries = self.queue.effective_max_retries(job)
        retry_info = f" (retry {job.retry_count}/{max_retries})" if job.is_retry else ""
        logger.info(f"Processing job: {job.id} (type: {job.type}){retry_info}")

        result = await self._dispatch(job)
        if result.success:
            self.jobs_processed += 1
            logger.info(f"Job {job.id} completed successfully")
            return IterationOutcome.COMPLETED

        self.jobs_failed += 1
        return await self._handle_failure(job, result, max_retries)

    async def _maybe_sweep(self) -> None:
        """Promote due delayed jobs, at most once per sweep interval."""
        if self._clock() - self._last_sweep < self.config.delayed_sweep_interval:
            return

        moved = await self.queue.process_delayed_jobs()
        if moved > 0:
            logger.info(f"Moved {moved} delayed job(s) to main queue")
        self._last_sweep = self._clock()

    async def _dispatch(self, job: Job) -> HandlerResult:
        """Dispatch a job; exceptions and timeouts become failures."""
        try:
            if self.config.handler_timeout > 0:
                return await asyncio.wait_for(self.dispatcher.dispatch(job), timeout=self.config.handler_timeout)
            return await self.dispatcher.dispatch(job)
        except asyncio.TimeoutError:
            logger.error(f"Job {job.id} timed out after {self.config.handler_timeout}s")
            return HandlerResult.failed(FailureReason.TIMEOUT, f"timed out after {self.config.handler_timeout}s")
        except Exception as e:
            logger.exception(f"Job {job.id} raised during dispatch: {e}")
            return HandlerResult.failed(FailureReason.HANDLER_ERROR, str(e))

    async def _handle_failure(self, job: Job, result: HandlerResult, max_retries: int) -> IterationOutcome:
        reason = result.reason.value if result.reason else "unknown"
        logger.warning(f"Job {job.id} FAILED ({reason})")

        if result.reason is not None and result.reason.is_permanent and not self.config.retry_permanent_failures:
            await self.queue.dead_letter(job, reason)
            logger.error(f"Job {job.id} abandoned without retry: {reason}")
            await self._alert(job, reason)
            return IterationOutcome.ABANDONED

        if await self.queue.retry(job):
            next_retry = job.retry_count + 1
            delay = compute_retry_delay(self.queue.get_retry_delay(), next_retry)
            logger.info(f"Job {job.id} scheduled for retry #{next_retry} in {delay}s")
            return IterationOutcome.RESCHEDULED

        logger.error(f"Job {job.id} exceeded max retries ({max_retries}) or failed to re-queue")
        await self._alert(job, f"max retries exceeded ({reason})")
        return IterationOutcome.ABANDONED

    async def _alert(self, job: Job, reason: str) -> None:
        if self.alerter is not None:
            await self.alerter.job_abandoned(job, reason)

    async def _cooldown(self) -> None:
        """Pause after a fault; returns early if shutdown is requested."""
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.config.error_cooldown)
