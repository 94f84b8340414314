"""Tests for release lifecycle classification."""

from datetime import datetime, timedelta, timezone

import pytest

from releasedash.core.exceptions import IndeterminateStateError
from releasedash.core.releases.models import ReleaseState
from releasedash.core.releases.state import classify_release_state, days_until

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
DAY = timedelta(days=1)
MS = timedelta(milliseconds=1)


def classify(code_freeze_in, release_in, is_complete=False):
    return classify_release_state(NOW + code_freeze_in, NOW + release_in, is_complete, NOW)


class TestDaysUntil:
    """Tests for the day counter."""

    def test_rounds_up_partial_days(self) -> None:
        assert days_until(NOW + MS, NOW) == 1
        assert days_until(NOW + DAY + MS, NOW) == 2

    def test_exact_days(self) -> None:
        assert days_until(NOW + 3 * DAY, NOW) == 3
        assert days_until(NOW, NOW) == 0

    def test_past_targets_are_negative(self) -> None:
        assert days_until(NOW - MS, NOW) == 0
        assert days_until(NOW - DAY, NOW) == -1
        assert days_until(NOW - DAY - MS, NOW) == -1
        assert days_until(NOW - 2 * DAY - MS, NOW) == -2

    def test_naive_datetimes_are_utc(self) -> None:
        naive_now = NOW.replace(tzinfo=None)
        assert days_until(NOW + DAY, naive_now) == 1


class TestClassifyReleaseState:
    """Tests for classify_release_state()."""

    def test_scheduled_before_code_freeze(self) -> None:
        result = classify(10 * DAY, 17 * DAY)
        assert result.state == ReleaseState.SCHEDULED
        assert result.days_until_code_freeze == 10
        assert result.days_until_release == 17

    def test_scheduled_one_millisecond_before_code_freeze(self) -> None:
        assert classify(MS, 7 * DAY).state == ReleaseState.SCHEDULED

    def test_code_freeze_at_the_instant_of_code_freeze(self) -> None:
        assert classify(timedelta(0), 7 * DAY).state == ReleaseState.CODE_FREEZE

    def test_code_freeze_until_release(self) -> None:
        assert classify(-3 * DAY, MS).state == ReleaseState.CODE_FREEZE

    def test_release_day(self) -> None:
        assert classify(-7 * DAY, timedelta(0)).state == ReleaseState.RELEASE_DAY
        assert classify(-7 * DAY, -MS).state == ReleaseState.RELEASE_DAY

    def test_released_when_complete(self) -> None:
        result = classify(-10 * DAY, -3 * DAY, is_complete=True)
        assert result.state == ReleaseState.RELEASED

    def test_delayed_when_not_complete(self) -> None:
        assert classify(-10 * DAY, -3 * DAY).state == ReleaseState.DELAYED

    def test_completion_flag_ignored_before_release(self) -> None:
        assert classify(-1 * DAY, 6 * DAY, is_complete=True).state == ReleaseState.CODE_FREEZE

    def test_equal_dates_at_now_are_indeterminate(self) -> None:
        with pytest.raises(IndeterminateStateError) as exc_info:
            classify(timedelta(0), timedelta(0))
        assert exc_info.value.context["days_until_code_freeze"] == 0
        assert exc_info.value.context["days_until_release"] == 0

    def test_defaults_to_current_time(self) -> None:
        now = datetime.now(timezone.utc)
        result = classify_release_state(now + 30 * DAY, now + 37 * DAY, False)
        assert result.state == ReleaseState.SCHEDULED


class TestClassificationFlags:
    """Tests for the derived sync decisions."""

    @pytest.mark.parametrize(
        "code_freeze_in,expected",
        [
            (10 * DAY, False),
            (2 * DAY + MS, False),
            (2 * DAY, True),
            (MS, True),
            (-1 * DAY, True),
        ],
    )
    def test_needs_host_data(self, code_freeze_in, expected) -> None:
        assert classify(code_freeze_in, 20 * DAY).needs_host_data is expected

    def test_branch_optional_while_scheduled(self) -> None:
        assert classify(DAY, 8 * DAY).branch_required is False

    def test_branch_required_after_code_freeze(self) -> None:
        assert classify(-DAY, 6 * DAY).branch_required is True
