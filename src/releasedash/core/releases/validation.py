"""
Validation of release scheduling requests.

Validation runs before any write and reports every problem it finds, so a
request handler can return the complete list at once. Each problem is a
ValidationIssue naming its kind and, where it applies, the offending release
exactly as it was submitted.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from releasedash.core.releases.models import (
    RELEASE_NAME_PATTERN,
    Release,
    ReleaseDraft,
    ensure_utc,
    release_number,
)

_DATETIME = TypeAdapter(datetime)


class ValidationErrorKind(str, Enum):
    """Kinds of release validation failures."""

    NO_RELEASES = "NO_RELEASES"
    CODEFREEZE_AFTER_RELEASE = "CODEFREEZE_AFTER_RELEASE"
    MISSING_RELEASE_FIELD = "MISSING_RELEASE_FIELD"
    INVALID_RELEASE_FIELD = "INVALID_RELEASE_FIELD"
    INVALID_RELEASE_NAME = "INVALID_RELEASE_NAME"
    NON_MONOTONIC_RELEASE_NUMBER = "NON_MONOTONIC_RELEASE_NUMBER"
    INVALID_DATE = "INVALID_DATE"
    RELEASE_OVERLAP = "RELEASE_OVERLAP"
    DUPLICATE_RELEASE_NAMES = "DUPLICATE_RELEASE_NAMES"


_MESSAGES = {
    ValidationErrorKind.NO_RELEASES: "There are no releases",
    ValidationErrorKind.CODEFREEZE_AFTER_RELEASE: (
        "The release has a code freeze date that is after the release date"
    ),
    ValidationErrorKind.MISSING_RELEASE_FIELD: "There is a required release field that is missing",
    ValidationErrorKind.INVALID_RELEASE_FIELD: (
        "There is a required release field that is in an invalid format"
    ),
    ValidationErrorKind.INVALID_RELEASE_NAME: "There is a release with an invalid release name",
    ValidationErrorKind.NON_MONOTONIC_RELEASE_NUMBER: (
        "Release number is not one more than the previous release number"
    ),
    ValidationErrorKind.INVALID_DATE: "There is a date that is invalid",
    ValidationErrorKind.RELEASE_OVERLAP: "There are releases with overlapping dates",
    ValidationErrorKind.DUPLICATE_RELEASE_NAMES: "There are releases with duplicate names",
}


class ValidationIssue(BaseModel):
    """A single validation problem."""

    kind: ValidationErrorKind
    offending_release: dict[str, Any] | None = None

    @property
    def message(self) -> str:
        return _MESSAGES[self.kind]


def is_valid_release_name(name: str) -> bool:
    """Check that a release name has the form ``M<releaseNumber>[suffix]``."""
    return bool(RELEASE_NAME_PATTERN.match(name))


def _parse_date(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        return None
    try:
        return ensure_utc(_DATETIME.validate_python(value))
    except ValidationError:
        return None


def _is_blank_string_field(value: Any) -> bool:
    return not isinstance(value, str) or value.strip() == ""


def validate_release(raw: dict[str, Any]) -> list[ValidationIssue]:
    """
    Validate one release payload.

    Checks the name, the operator and the date pair independently, so a
    release can produce up to three issues.

    Args:
        raw: Release payload using camelCase keys

    Returns:
        List of issues (empty when the release is valid)
    """
    issues: list[ValidationIssue] = []

    def report(kind: ValidationErrorKind) -> None:
        issues.append(ValidationIssue(kind=kind, offending_release=raw))

    name = raw.get("releaseName")
    if not name:
        report(ValidationErrorKind.MISSING_RELEASE_FIELD)
    elif _is_blank_string_field(name):
        report(ValidationErrorKind.INVALID_RELEASE_FIELD)
    elif not is_valid_release_name(name):
        report(ValidationErrorKind.INVALID_RELEASE_NAME)

    operator = raw.get("releaseOperator")
    if not operator:
        report(ValidationErrorKind.MISSING_RELEASE_FIELD)
    elif _is_blank_string_field(operator):
        report(ValidationErrorKind.INVALID_RELEASE_FIELD)

    raw_code_freeze = raw.get("codeFreezeDate")
    raw_release = raw.get("releaseDate")
    if not raw_code_freeze or not raw_release:
        report(ValidationErrorKind.MISSING_RELEASE_FIELD)
    else:
        code_freeze = _parse_date(raw_code_freeze)
        release = _parse_date(raw_release)
        if code_freeze is None or release is None:
            report(ValidationErrorKind.INVALID_DATE)
        elif release <= code_freeze:
            report(ValidationErrorKind.CODEFREEZE_AFTER_RELEASE)

    return issues


def validate_new_releases(
    raw_releases: list[dict[str, Any]] | None,
    existing_releases: list[Release] | None = None,
    now: datetime | None = None,
) -> list[ValidationIssue]:
    """
    Validate a batch of releases that are about to be scheduled.

    On top of the per-release checks, a batch must not contain duplicate
    names, its release numbers must continue the existing sequence without
    gaps, new code freezes must lie in the future, and no two releases of the
    batch may overlap.

    Args:
        raw_releases: Release payloads using camelCase keys
        existing_releases: Releases already in the store
        now: Reference time (defaults to the current UTC time)

    Returns:
        List of issues (empty when the batch is valid)
    """
    if not raw_releases:
        return [ValidationIssue(kind=ValidationErrorKind.NO_RELEASES)]

    if now is None:
        now = datetime.now(timezone.utc)
    existing_releases = existing_releases or []

    issues: list[ValidationIssue] = []
    valid: list[dict[str, Any]] = []
    for raw in raw_releases:
        if not isinstance(raw, dict):
            issues.append(ValidationIssue(kind=ValidationErrorKind.INVALID_RELEASE_FIELD))
            continue
        release_issues = validate_release(raw)
        issues.extend(release_issues)
        if not release_issues:
            valid.append(raw)

    # Batch-level checks only look at releases that passed the per-release checks
    name_counts = Counter(raw["releaseName"] for raw in valid)
    for raw in valid:
        if name_counts[raw["releaseName"]] > 1:
            issues.append(
                ValidationIssue(kind=ValidationErrorKind.DUPLICATE_RELEASE_NAMES, offending_release=raw)
            )

    for raw in valid:
        if _parse_date(raw["codeFreezeDate"]) <= ensure_utc(now):
            issues.append(ValidationIssue(kind=ValidationErrorKind.INVALID_DATE, offending_release=raw))

    issues.extend(_check_monotonic(valid, existing_releases))
    issues.extend(_check_overlap(valid))
    return issues


def _check_monotonic(
    valid: list[dict[str, Any]], existing_releases: list[Release]
) -> list[ValidationIssue]:
    existing_numbers = [
        release_number(release.release_name)
        for release in existing_releases
        if is_valid_release_name(release.release_name)
    ]
    expected = max(existing_numbers) + 1 if existing_numbers else None

    issues = []
    for raw in sorted(valid, key=lambda r: release_number(r["releaseName"])):
        number = release_number(raw["releaseName"])
        if expected is not None and number != expected:
            issues.append(
                ValidationIssue(
                    kind=ValidationErrorKind.NON_MONOTONIC_RELEASE_NUMBER,
                    offending_release=raw,
                )
            )
        expected = number + 1
    return issues


def _check_overlap(valid: list[dict[str, Any]]) -> list[ValidationIssue]:
    ordered = sorted(valid, key=lambda r: _parse_date(r["codeFreezeDate"]))
    issues = []
    for earlier, later in zip(ordered, ordered[1:]):
        if _parse_date(earlier["releaseDate"]) >= _parse_date(later["codeFreezeDate"]):
            issues.append(
                ValidationIssue(kind=ValidationErrorKind.RELEASE_OVERLAP, offending_release=earlier)
            )
    return issues


def to_draft(raw: dict[str, Any]) -> ReleaseDraft:
    """Build a ReleaseDraft from a payload that passed validation."""
    return ReleaseDraft.model_validate(raw)
