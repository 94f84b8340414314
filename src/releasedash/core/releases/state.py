"""
Release state classification.

Derives a release's lifecycle state from its code freeze date, release date
and completion flag. The classifier is pure: for a fixed ``now`` it always
returns the same answer, which makes it safe to call on every sync.

Day counts are computed as the ceiling of the millisecond difference divided
by one day, so a target that is 36 hours away is "2 days" away and a target
that passed one hour ago is "0 days" away.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from releasedash.core.exceptions import IndeterminateStateError
from releasedash.core.releases.models import ReleaseState, ensure_utc

_DAY_MS = 24 * 60 * 60 * 1000

# Host data is only needed once code freeze is this many days away or closer
PRE_FREEZE_WINDOW_DAYS = 2


def days_until(target: datetime, now: datetime) -> int:
    """
    Number of whole days from ``now`` until ``target``, rounded up.

    Negative when ``target`` is in the past. Naive datetimes are taken as UTC.
    """
    delta_ms = (ensure_utc(target) - ensure_utc(now)) // timedelta(milliseconds=1)
    return -((-delta_ms) // _DAY_MS)


@dataclass(frozen=True)
class ReleaseClassification:
    """Result of classifying a release at a point in time."""

    state: ReleaseState
    days_until_code_freeze: int
    days_until_release: int

    @property
    def needs_host_data(self) -> bool:
        """Whether GitHub needs to be consulted for this release."""
        return self.days_until_code_freeze <= PRE_FREEZE_WINDOW_DAYS

    @property
    def branch_required(self) -> bool:
        """Whether a missing release branch is an error rather than expected."""
        return self.state != ReleaseState.SCHEDULED


def classify_release_state(
    code_freeze_date: datetime,
    release_date: datetime,
    is_complete: bool,
    now: datetime | None = None,
) -> ReleaseClassification:
    """
    Classify a release into its lifecycle state.

    Args:
        code_freeze_date: When the release branch is cut
        release_date: When the release ships
        is_complete: Whether the release operator marked the release done
        now: Reference time (defaults to the current UTC time)

    Returns:
        ReleaseClassification with the state and both day counts

    Raises:
        IndeterminateStateError: If the dates do not place the release in
            any state, e.g. code freeze and release on the same instant
    """
    if now is None:
        now = datetime.now(timezone.utc)

    dcf = days_until(code_freeze_date, now)
    dr = days_until(release_date, now)

    if dcf > 0:
        state = ReleaseState.SCHEDULED
    elif dr > 0:
        state = ReleaseState.CODE_FREEZE
    elif dcf < 0 and dr == 0:
        state = ReleaseState.RELEASE_DAY
    elif dr < 0:
        state = ReleaseState.RELEASED if is_complete else ReleaseState.DELAYED
    else:
        raise IndeterminateStateError(
            f"Unable to determine release state "
            f"(days until code freeze: {dcf}, days until release: {dr})",
            days_until_code_freeze=dcf,
            days_until_release=dr,
        )

    return ReleaseClassification(
        state=state,
        days_until_code_freeze=dcf,
        days_until_release=dr,
    )
