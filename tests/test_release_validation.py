"""Tests for release scheduling validation."""

from datetime import datetime, timedelta, timezone

import pytest

from releasedash.core.releases.models import Release, ReleaseState
from releasedash.core.releases.validation import (
    ValidationErrorKind,
    ValidationIssue,
    is_valid_release_name,
    to_draft,
    validate_new_releases,
    validate_release,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
DAY = timedelta(days=1)


def payload(name="M135", code_freeze_in=7 * DAY, release_in=14 * DAY, operator="octocat"):
    return {
        "releaseName": name,
        "releaseOperator": operator,
        "codeFreezeDate": (NOW + code_freeze_in).isoformat(),
        "releaseDate": (NOW + release_in).isoformat(),
    }


def existing(name: str) -> Release:
    return Release(
        id=f"id-{name}",
        release_name=name,
        release_operator="octocat",
        code_freeze_date=NOW - 30 * DAY,
        release_date=NOW - 23 * DAY,
        state=ReleaseState.RELEASED,
    )


def kinds(issues: list[ValidationIssue]) -> list[ValidationErrorKind]:
    return [issue.kind for issue in issues]


class TestReleaseName:
    """Tests for is_valid_release_name()."""

    @pytest.mark.parametrize("name", ["M1", "M134", "M134.1", "M134-hotfix"])
    def test_valid(self, name) -> None:
        assert is_valid_release_name(name)

    @pytest.mark.parametrize("name", ["", "134", "m134", "MX", "M", "M134 beta", "Release M134"])
    def test_invalid(self, name) -> None:
        assert not is_valid_release_name(name)


class TestValidateRelease:
    """Tests for validate_release()."""

    def test_valid_release(self) -> None:
        assert validate_release(payload()) == []

    def test_missing_name(self) -> None:
        raw = payload()
        del raw["releaseName"]
        assert kinds(validate_release(raw)) == [ValidationErrorKind.MISSING_RELEASE_FIELD]

    def test_blank_operator(self) -> None:
        raw = payload(operator="   ")
        assert kinds(validate_release(raw)) == [ValidationErrorKind.INVALID_RELEASE_FIELD]

    def test_non_string_name(self) -> None:
        raw = payload()
        raw["releaseName"] = 135
        assert kinds(validate_release(raw)) == [ValidationErrorKind.INVALID_RELEASE_FIELD]

    def test_invalid_name(self) -> None:
        assert kinds(validate_release(payload(name="135"))) == [
            ValidationErrorKind.INVALID_RELEASE_NAME
        ]

    def test_unparseable_date(self) -> None:
        raw = payload()
        raw["releaseDate"] = "next tuesday"
        assert kinds(validate_release(raw)) == [ValidationErrorKind.INVALID_DATE]

    def test_missing_date(self) -> None:
        raw = payload()
        del raw["codeFreezeDate"]
        assert kinds(validate_release(raw)) == [ValidationErrorKind.MISSING_RELEASE_FIELD]

    def test_code_freeze_after_release(self) -> None:
        raw = payload(code_freeze_in=14 * DAY, release_in=7 * DAY)
        assert kinds(validate_release(raw)) == [ValidationErrorKind.CODEFREEZE_AFTER_RELEASE]

    def test_equal_dates_are_rejected(self) -> None:
        raw = payload(code_freeze_in=7 * DAY, release_in=7 * DAY)
        assert kinds(validate_release(raw)) == [ValidationErrorKind.CODEFREEZE_AFTER_RELEASE]

    def test_reports_every_problem(self) -> None:
        raw = {"releaseName": "bad", "codeFreezeDate": "2026-11-01T00:00:00Z"}
        assert kinds(validate_release(raw)) == [
            ValidationErrorKind.INVALID_RELEASE_NAME,
            ValidationErrorKind.MISSING_RELEASE_FIELD,
            ValidationErrorKind.MISSING_RELEASE_FIELD,
        ]

    def test_offending_release_is_the_payload(self) -> None:
        raw = payload(name="bad")
        [issue] = validate_release(raw)
        assert issue.offending_release == raw
        assert issue.message == "There is a release with an invalid release name"


class TestValidateNewReleases:
    """Tests for validate_new_releases()."""

    def test_no_releases(self) -> None:
        for empty in (None, []):
            [issue] = validate_new_releases(empty, now=NOW)
            assert issue.kind == ValidationErrorKind.NO_RELEASES
            assert issue.offending_release is None

    def test_valid_batch(self) -> None:
        batch = [
            payload("M135", 7 * DAY, 14 * DAY),
            payload("M136", 21 * DAY, 28 * DAY),
        ]
        assert validate_new_releases(batch, [existing("M134")], now=NOW) == []

    def test_first_release_may_start_anywhere(self) -> None:
        assert validate_new_releases([payload("M200")], [], now=NOW) == []

    def test_non_object_entry(self) -> None:
        assert kinds(validate_new_releases(["M135"], now=NOW)) == [
            ValidationErrorKind.INVALID_RELEASE_FIELD
        ]

    def test_duplicate_names(self) -> None:
        batch = [payload("M135", 7 * DAY, 14 * DAY), payload("M135", 21 * DAY, 28 * DAY)]
        issues = validate_new_releases(batch, now=NOW)
        assert kinds(issues).count(ValidationErrorKind.DUPLICATE_RELEASE_NAMES) == 2

    def test_code_freeze_in_the_past(self) -> None:
        batch = [payload("M135", -1 * DAY, 6 * DAY)]
        assert kinds(validate_new_releases(batch, now=NOW)) == [ValidationErrorKind.INVALID_DATE]

    def test_gap_after_existing_release(self) -> None:
        issues = validate_new_releases([payload("M137")], [existing("M135")], now=NOW)
        assert kinds(issues) == [ValidationErrorKind.NON_MONOTONIC_RELEASE_NUMBER]
        assert issues[0].offending_release["releaseName"] == "M137"

    def test_gap_within_batch(self) -> None:
        batch = [payload("M135", 7 * DAY, 14 * DAY), payload("M137", 21 * DAY, 28 * DAY)]
        issues = validate_new_releases(batch, [existing("M134")], now=NOW)
        assert kinds(issues) == [ValidationErrorKind.NON_MONOTONIC_RELEASE_NUMBER]
        assert issues[0].offending_release["releaseName"] == "M137"

    def test_batch_order_does_not_matter_for_numbering(self) -> None:
        batch = [payload("M136", 21 * DAY, 28 * DAY), payload("M135", 7 * DAY, 14 * DAY)]
        assert validate_new_releases(batch, [existing("M134")], now=NOW) == []

    def test_overlapping_releases(self) -> None:
        batch = [payload("M135", 7 * DAY, 14 * DAY), payload("M136", 10 * DAY, 20 * DAY)]
        issues = validate_new_releases(batch, now=NOW)
        assert kinds(issues) == [ValidationErrorKind.RELEASE_OVERLAP]
        assert issues[0].offending_release["releaseName"] == "M135"

    def test_release_on_next_code_freeze_overlaps(self) -> None:
        batch = [payload("M135", 7 * DAY, 14 * DAY), payload("M136", 14 * DAY, 21 * DAY)]
        assert kinds(validate_new_releases(batch, now=NOW)) == [ValidationErrorKind.RELEASE_OVERLAP]

    def test_invalid_releases_skip_batch_checks(self) -> None:
        batch = [payload("M135"), payload("nope")]
        assert kinds(validate_new_releases(batch, now=NOW)) == [
            ValidationErrorKind.INVALID_RELEASE_NAME
        ]


class TestToDraft:
    """Tests for to_draft()."""

    def test_parses_dates_as_utc(self) -> None:
        draft = to_draft(
            {
                "releaseName": "M135",
                "releaseOperator": "octocat",
                "codeFreezeDate": "2026-11-02T09:00:00+02:00",
                "releaseDate": "2026-11-09T00:00:00Z",
            }
        )
        assert draft.release_name == "M135"
        assert draft.code_freeze_date == datetime(2026, 11, 2, 7, 0, tzinfo=timezone.utc)
        assert draft.code_freeze_date.tzinfo == timezone.utc
