"""Version extraction from gradle.properties-style descriptors."""

from __future__ import annotations

from releasedash.core.exceptions import VersionNotFoundError


def extract_version(text: str) -> str:
    """
    Extract the version value from a key/value descriptor file.

    The first non-comment ``version=`` assignment wins. The key match is case
    insensitive but exact, so ``versionCode`` or ``versionName`` lines are
    skipped. Everything after the first ``=`` is the value, so values may
    themselves contain ``=``.

    Example:
        >>> extract_version("# comment\\nversionCode=3\\nversion=21.0.1\\n")
        '21.0.1'

    Raises:
        VersionNotFoundError: If no version assignment is present
    """
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if sep and key.strip().lower() == "version":
            return value.strip()

    raise VersionNotFoundError("Version not found in version descriptor")
