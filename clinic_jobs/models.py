"""Pydantic v2 models for queued jobs and their typed payloads.

Job data arrives untyped from producers. Each known job type owns a payload
model, so required-field validation happens once when the payload is parsed.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from clinic_jobs.exceptions import InvalidPayloadError, UnknownJobTypeError

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]
NumericId = Annotated[str, StringConstraints(pattern=r"^[0-9]+$")]


class JobType(str, Enum):
    """Job types the dispatcher knows how to handle."""

    SEND_SMS = "send_sms"
    CANCEL_APPOINTMENT = "cancel_appointment"


class Job(BaseModel):
    """A queued unit of work.

    `type` stays a plain string: the queue accepts any type, and unknown
    types are a dispatch failure rather than a decoding error.
    """

    id: str = Field(..., min_length=1, description="Job ID, stable across retries")
    type: str = Field(..., min_length=1, description="Job type discriminator")
    data: dict[str, Any] = Field(default_factory=dict, description="Handler-specific payload")
    retry_count: int = Field(default=0, ge=0, description="Retries scheduled so far")
    max_retries: int | None = Field(default=None, ge=0, description="Per-job retry ceiling override")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("data", mode="before")
    @classmethod
    def empty_data_as_mapping(cls, value: Any) -> Any:
        """Accept null and empty JSON arrays as an empty payload."""
        if value is None or value == []:
            return {}
        return value

    @field_validator("retry_count", mode="before")
    @classmethod
    def missing_retry_count(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def is_retry(self) -> bool:
        return self.retry_count > 0


class SendSmsPayload(BaseModel):
    """Payload of a send_sms job."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, frozen=True)

    message: NonEmptyStr
    phone: NonEmptyStr
    token: NonEmptyStr
    business_name: str = Field(default="", alias="businessName")

    @field_validator("business_name", mode="before")
    @classmethod
    def missing_business_name(cls, value: Any) -> Any:
        return "" if value is None else value


class CancelAppointmentPayload(BaseModel):
    """Payload of a cancel_appointment job."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, frozen=True)

    appointment_id: NumericId = Field(..., alias="appointmentId")
    cancellation_note: str = Field(default="", alias="cancellationNote")
    cancellation_reason: int = Field(default=50, alias="cancellationReason")
    apply_to_repeats: bool = Field(default=False, alias="applyToRepeats")

    @field_validator("cancellation_note", "cancellation_reason", "apply_to_repeats", mode="before")
    @classmethod
    def null_means_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return cls.model_fields[info.field_name].default
        return value


JobPayload = SendSmsPayload | CancelAppointmentPayload

PAYLOAD_MODELS: dict[JobType, type[BaseModel]] = {
    JobType.SEND_SMS: SendSmsPayload,
    JobType.CANCEL_APPOINTMENT: CancelAppointmentPayload,
}


def parse_payload(job: Job) -> JobPayload:
    """Turn a job's raw data into the typed payload for its job type.

    Args:
        job: Dequeued job

    Returns:
        Payload model instance

    Raises:
        UnknownJobTypeError: If the job type is not one of JobType
        InvalidPayloadError: If required fields are missing or empty
    """
    try:
        job_type = JobType(job.type)
    except ValueError:
        raise UnknownJobTypeError(job.type) from None

    model = PAYLOAD_MODELS[job_type]
    try:
        return model.model_validate(job.data)
    except ValidationError as e:
        errors = [f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise InvalidPayloadError(job.type, errors) from e
