"""Job handlers: one external unit of work per job type.

Handlers never raise. Every failure, whether bad input or a downstream
error, comes back as a failed HandlerResult for the dispatch loop to retry.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from clinic_jobs.integrations.cliniko import ClinikoClient
from clinic_jobs.integrations.sms import SmsClient
from clinic_jobs.models import CancelAppointmentPayload, SendSmsPayload

logger = logging.getLogger(__name__)


class FailureReason(str, Enum):
    """Why a job execution failed."""

    UNKNOWN_TYPE = "unknown_type"
    INVALID_INPUT = "invalid_input"
    DOWNSTREAM_FAILED = "downstream_failed"
    TIMEOUT = "timeout"
    HANDLER_ERROR = "handler_error"

    @property
    def is_permanent(self) -> bool:
        """Failures that redelivering the same job cannot fix."""
        return self in (FailureReason.UNKNOWN_TYPE, FailureReason.INVALID_INPUT)


@dataclass(frozen=True)
class HandlerResult:
    """Outcome of one job execution."""

    success: bool
    reason: FailureReason | None = None
    detail: str = ""

    @classmethod
    def ok(cls) -> "HandlerResult":
        return cls(success=True)

    @classmethod
    def failed(cls, reason: FailureReason, detail: str = "") -> "HandlerResult":
        return cls(success=False, reason=reason, detail=detail)


class JobHandlers:
    """Handlers bound to their external clients."""

    def __init__(self, sms_client: SmsClient, cliniko_client: ClinikoClient) -> None:
        self.sms_client = sms_client
        self.cliniko_client = cliniko_client

    async def send_sms(self, payload: SendSmsPayload) -> HandlerResult:
        """Send an SMS through the gateway.

        Args:
            payload: Validated send_sms payload

        Returns:
            HandlerResult
        """
        try:
            sent = await self.sms_client.send(payload.message, payload.phone, payload.business_name, payload.token)
        except Exception as e:
            logger.error(f"Failed to send SMS to {payload.phone}: {e}")
            return HandlerResult.failed(FailureReason.DOWNSTREAM_FAILED, str(e))

        if not sent:
            logger.error(f"Failed to send SMS to {payload.phone}")
            return HandlerResult.failed(FailureReason.DOWNSTREAM_FAILED, "gateway rejected message")

        logger.info(f"SMS sent successfully to {payload.phone}")
        return HandlerResult.ok()

    async def cancel_appointment(self, payload: CancelAppointmentPayload) -> HandlerResult:
        """Cancel an appointment in Cliniko.

        Args:
            payload: Validated cancel_appointment payload

        Returns:
            HandlerResult
        """
        try:
            await self.cliniko_client.cancel_appointment(
                payload.appointment_id,
                cancellation_note=payload.cancellation_note,
                cancellation_reason=payload.cancellation_reason,
                apply_to_repeats=payload.apply_to_repeats,
            )
        except Exception as e:
            logger.error(f"Failed to cancel appointment {payload.appointment_id}: {e}")
            return HandlerResult.failed(FailureReason.DOWNSTREAM_FAILED, str(e))

        logger.info(f"Appointment {payload.appointment_id} cancelled successfully")
        return HandlerResult.ok()
