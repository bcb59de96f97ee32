"""Worker exception types."""


class UnknownJobTypeError(ValueError):
    """Job type has no registered handler."""

    def __init__(self, job_type: str) -> None:
        super().__init__(f"Unknown job type: {job_type}")
        self.job_type = job_type


class InvalidPayloadError(ValueError):
    """Job data is missing required fields or has invalid values."""

    def __init__(self, job_type: str, errors: list[str]) -> None:
        super().__init__(f"Invalid {job_type} payload: {'; '.join(errors)}")
        self.job_type = job_type
        self.errors = errors


class DownstreamError(RuntimeError):
    """External service call failed or was short-circuited."""
