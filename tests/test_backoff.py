"""Tests for the retry/backoff policy."""

import pytest

from clinic_jobs.core.backoff import RetryDecision, compute_retry_delay, decide_retry


class TestComputeRetryDelay:
    """Delay grows as base_delay * (2**n - 1)."""

    @pytest.mark.parametrize("attempt, expected", [(1, 2), (2, 6), (3, 14), (4, 30)])
    def test_exponential_curve(self, attempt, expected):
        assert compute_retry_delay(2, attempt) == expected

    def test_first_retry_waits_one_base_delay(self):
        assert compute_retry_delay(30, 1) == 30

    def test_zero_base_delay(self):
        assert compute_retry_delay(0, 5) == 0

    def test_attempt_must_be_positive(self):
        with pytest.raises(ValueError):
            compute_retry_delay(2, 0)


class TestDecideRetry:
    """Eligibility: retry count after increment must stay below max_retries."""

    def test_first_failure_is_retried(self):
        decision = decide_retry(retry_count=0, max_retries=3, base_delay=2)

        assert decision == RetryDecision(should_retry=True, attempt=1, delay=2)

    def test_second_failure_is_retried(self):
        decision = decide_retry(retry_count=1, max_retries=3, base_delay=2)

        assert decision.should_retry
        assert decision.attempt == 2
        assert decision.delay == 6

    def test_boundary_is_exhausted(self):
        decision = decide_retry(retry_count=2, max_retries=3, base_delay=2)

        assert not decision.should_retry
        assert decision.delay == 0

    def test_already_at_max_is_exhausted(self):
        assert not decide_retry(retry_count=3, max_retries=3, base_delay=2).should_retry

    def test_zero_max_retries_never_retries(self):
        assert not decide_retry(retry_count=0, max_retries=0, base_delay=2).should_retry
