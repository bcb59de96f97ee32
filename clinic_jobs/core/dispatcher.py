"""Routes a job to the handler for its type."""

import logging

from clinic_jobs.core.handlers import FailureReason, HandlerResult, JobHandlers
from clinic_jobs.exceptions import InvalidPayloadError, UnknownJobTypeError
from clinic_jobs.models import CancelAppointmentPayload, Job, SendSmsPayload, parse_payload

logger = logging.getLogger(__name__)


class Dispatcher:
    """Parses a job's payload and invokes exactly one handler.

    Unknown types and invalid payloads fail before any handler runs and
    are logged separately from downstream failures.
    """

    def __init__(self, handlers: JobHandlers) -> None:
        self.handlers = handlers

    async def dispatch(self, job: Job) -> HandlerResult:
        """Execute a job.

        Args:
            job: Dequeued job

        Returns:
            HandlerResult of the handler, or a failure for unknown
            types and invalid payloads
        """
        try:
            payload = parse_payload(job)
        except UnknownJobTypeError as e:
            logger.error(f"Unknown job type: {job.type} (job {job.id})")
            return HandlerResult.failed(FailureReason.UNKNOWN_TYPE, str(e))
        except InvalidPayloadError as e:
            logger.error(f"Missing or invalid data for job {job.id}: {e}")
            return HandlerResult.failed(FailureReason.INVALID_INPUT, str(e))

        if isinstance(payload, SendSmsPayload):
            return await self.handlers.send_sms(payload)
        if isinstance(payload, CancelAppointmentPayload):
            return await self.handlers.cancel_appointment(payload)

        # parse_payload only returns the models above
        raise TypeError(f"No handler for payload {type(payload).__name__}")
