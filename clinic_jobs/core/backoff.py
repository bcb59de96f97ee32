"""Retry eligibility and exponential backoff for failed jobs.

Attempt n (the retry count after increment) waits base_delay * (2**n - 1)
seconds: 1x, 3x, 7x, 15x the base delay.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of the retry policy for one failed execution."""

    should_retry: bool
    attempt: int
    delay: int


def compute_retry_delay(base_delay: int, attempt: int) -> int:
    """Backoff delay in seconds for the given 1-based retry attempt.

    Args:
        base_delay: Configured base delay in seconds
        attempt: Retry count after increment (1 for the first retry)

    Returns:
        Delay in seconds

    Raises:
        ValueError: If attempt is less than 1
    """
    if attempt < 1:
        raise ValueError(f"Retry attempt must be >= 1, got {attempt}")
    return base_delay * (2**attempt - 1)


def decide_retry(retry_count: int, max_retries: int, base_delay: int) -> RetryDecision:
    """Decide whether a failed job gets another attempt.

    A job stays eligible while its retry count after increment is below
    max_retries.

    Args:
        retry_count: Retries already scheduled for the job
        max_retries: Effective retry ceiling
        base_delay: Configured base delay in seconds

    Returns:
        RetryDecision with the next attempt number and its delay
        (delay is 0 when the job is abandoned)
    """
    attempt = retry_count + 1
    if attempt >= max_retries:
        return RetryDecision(should_retry=False, attempt=attempt, delay=0)
    return RetryDecision(should_retry=True, attempt=attempt, delay=compute_retry_delay(base_delay, attempt))
