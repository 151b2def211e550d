from datetime import timedelta

import pytest

from app.services.retry_policy import (
    compute_next_retry_at,
    next_retry_delay,
    schedule_retry,
    should_retry,
)
from factories import FIXED_NOW


class TestNextRetryDelay:
    @pytest.mark.parametrize(
        "base,count,expected",
        [(60, 0, 60), (60, 1, 120), (60, 2, 240), (1, 1, 2), (1, 3, 8), (0, 5, 0)],
    )
    def test_exponential(self, base, count, expected):
        assert next_retry_delay(base, count) == expected

    def test_strictly_increasing(self):
        delays = [next_retry_delay(5, n) for n in range(8)]
        assert delays == sorted(set(delays))

    def test_negative_inputs_rejected(self):
        with pytest.raises(ValueError):
            next_retry_delay(-1, 0)
        with pytest.raises(ValueError):
            next_retry_delay(1, -1)


class TestShouldRetry:
    @pytest.mark.parametrize(
        "enabled,before,max_retries,expected",
        [
            (True, 0, 3, True),
            (True, 2, 3, True),
            (True, 3, 3, False),
            (False, 0, 3, False),
            (True, 0, 0, False),
        ],
    )
    def test_cap(self, enabled, before, max_retries, expected):
        assert should_retry(enabled, before, max_retries) is expected


class TestScheduleRetry:
    def test_first_failure_waits_twice_the_base(self):
        assert schedule_retry(FIXED_NOW, True, 0, 2, 1) == FIXED_NOW + timedelta(seconds=2)

    def test_second_failure_waits_four_times_the_base(self):
        assert schedule_retry(FIXED_NOW, True, 1, 2, 1) == FIXED_NOW + timedelta(seconds=4)

    def test_exhausted(self):
        assert schedule_retry(FIXED_NOW, True, 2, 2, 1) is None

    def test_disabled(self):
        assert schedule_retry(FIXED_NOW, False, 0, 5, 60) is None

    def test_compute_next_retry_at(self):
        assert compute_next_retry_at(FIXED_NOW, 30, 2) == FIXED_NOW + timedelta(seconds=120)
