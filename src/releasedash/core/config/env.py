"""
.env support for releasedash settings.

Only the variables load_config() reads are imported from .env files:
anything prefixed ``RELEASEDASH_`` plus ``GITHUB_TOKEN`` and
``GITHUB_WEBHOOK_SECRET``. Other keys in a shared .env are left alone.

Precedence, highest first:
    process environment > project .env files > user .env
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

from dotenv import dotenv_values

from .loader import get_xdg_config_home

logger = logging.getLogger(__name__)

ENV_PREFIX = "RELEASEDASH_"
GITHUB_ENV_KEYS = frozenset({"GITHUB_TOKEN", "GITHUB_WEBHOOK_SECRET"})


def is_releasedash_key(key: str) -> bool:
    """True for environment variables that feed releasedash configuration."""
    return key.startswith(ENV_PREFIX) or key in GITHUB_ENV_KEYS


def read_env_file(path: Path) -> dict[str, str]:
    """
    Read the releasedash keys from one .env file.

    Missing files and keys without a value yield nothing.
    """
    if not path.exists():
        return {}
    values = {
        key: value
        for key, value in dotenv_values(path).items()
        if key and value is not None and is_releasedash_key(key)
    }
    logger.debug("Read %d releasedash keys from %s", len(values), path)
    return values


def default_user_env_path() -> Path:
    """~/.config/releasedash/.env (or the XDG equivalent)."""
    return get_xdg_config_home() / "releasedash" / ".env"


def load_layered_env(
    *,
    project_dir: Path | None = None,
    user_env_paths: Iterable[Path] | None = None,
    project_env_paths: Iterable[Path] | None = None,
) -> dict[str, str]:
    """
    Export releasedash settings from user and project .env files.

    A project file may override a key taken from the user file, but a
    variable that was already in the process environment is never replaced.

    Args:
        project_dir: Base directory for the project .env files (defaults to cwd)
        user_env_paths: Explicit user .env paths
        project_env_paths: Explicit project .env paths (defaults to .env, .env.local)

    Returns:
        The keys this call exported, with their values
    """
    if project_dir is None:
        project_dir = Path.cwd()
    if user_env_paths is None:
        user_env_paths = [default_user_env_path()]
    if project_env_paths is None:
        project_env_paths = [project_dir / ".env", project_dir / ".env.local"]

    preexisting = {key for key in os.environ if is_releasedash_key(key)}
    applied: dict[str, str] = {}

    for path in [*user_env_paths, *project_env_paths]:
        for key, value in read_env_file(Path(path)).items():
            if key not in preexisting:
                applied[key] = value

    os.environ.update(applied)
    if applied:
        logger.debug("Exported %s from .env files", ", ".join(sorted(applied)))
    return applied
