"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < env vars
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from .models import ReleaseDashConfig

logger = logging.getLogger(__name__)

# Global cache to avoid reloading config on every request
_config_cache: ReleaseDashConfig | None = None


def get_xdg_config_home() -> Path:
    """
    Get XDG config home directory.

    Returns:
        Path to config directory (defaults to ~/.config)
    """
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_user_config_path() -> Path:
    """Path to ~/.config/releasedash/config.json (or XDG equivalent)."""
    return get_xdg_config_home() / "releasedash" / "config.json"


def get_project_config_path(cwd: Path | None = None) -> Path:
    """
    Get path to project configuration file.

    Args:
        cwd: Working directory to search from (defaults to current directory)

    Returns:
        Path to .releasedash.json in the project root
    """
    if cwd is None:
        cwd = Path.cwd()
    return cwd / ".releasedash.json"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence over values in `base`. Nested dicts
    are merged, not replaced.

    Example:
        >>> deep_merge({"github": {"owner": "a", "repo": "b"}}, {"github": {"repo": "c"}})
        {'github': {'owner': 'a', 'repo': 'c'}}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Load a JSON file, returning None if it doesn't exist or is invalid.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON as dict, or None if file doesn't exist or can't be parsed
    """
    if not path.exists():
        return None

    try:
        with path.open() as f:
            data = json.load(f)
            if isinstance(data, dict):
                return data
            logger.warning("Ignoring config at %s: top level is not an object", path)
            return None
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None


def _first_env(*names: str) -> str | None:
    for name in names:
        if value := os.environ.get(name):
            return value
    return None


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Env vars have the highest precedence and override all config files.

    Supported env vars:
        RELEASEDASH_GITHUB_TOKEN / GITHUB_TOKEN - overrides github.token
        RELEASEDASH_WEBHOOK_SECRET / GITHUB_WEBHOOK_SECRET - overrides github.webhook_secret
        RELEASEDASH_REPO - "owner/repo", overrides github.owner and github.repo
        RELEASEDASH_DB_PATH - overrides store.db_path
        RELEASEDASH_API_TOKEN - overrides api.api_token

    Args:
        config_dict: Configuration dictionary to override

    Returns:
        Configuration dictionary with env var overrides applied
    """
    result = config_dict.copy()
    github = dict(result.get("github") or {})
    store = dict(result.get("store") or {})
    api = dict(result.get("api") or {})

    if token := _first_env("RELEASEDASH_GITHUB_TOKEN", "GITHUB_TOKEN"):
        github["token"] = token

    if secret := _first_env("RELEASEDASH_WEBHOOK_SECRET", "GITHUB_WEBHOOK_SECRET"):
        github["webhook_secret"] = secret

    if repo_str := os.environ.get("RELEASEDASH_REPO"):
        owner, sep, repo = repo_str.partition("/")
        if sep and owner and repo and "/" not in repo:
            github["owner"] = owner
            github["repo"] = repo
        else:
            logger.warning("Invalid RELEASEDASH_REPO value '%s', expected owner/repo; ignoring", repo_str)

    if db_path := os.environ.get("RELEASEDASH_DB_PATH"):
        store["db_path"] = db_path

    if api_token := os.environ.get("RELEASEDASH_API_TOKEN"):
        api["api_token"] = api_token

    result["github"] = github
    result["store"] = store
    result["api"] = api
    return result


def get_default_config() -> dict[str, Any]:
    """
    Get hardcoded default configuration.

    Returns:
        Dictionary with default configuration values
    """
    return {
        "github": {
            "owner": "firebase",
            "repo": "firebase-android-sdk",
            "api_url": "https://api.github.com",
            "api_version": "2022-11-28",
            "timeout_seconds": 30.0,
            "max_retries": 3,
        },
        "layout": {
            "manifest_path": "release.json",
            "change_report_path": "release_report.json",
            "version_descriptor": "gradle.properties",
            "companion_suffix": "/ktx",
            "build_workflow_name": "Build Release Artifacts",
            "branch_prefix": "releases/",
        },
        "store": {"db_path": ".releasedash/releases.db"},
        "api": {},
    }


def load_config(project_dir: Path | None = None, use_cache: bool = True) -> ReleaseDashConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Environment variables (RELEASEDASH_*, GITHUB_TOKEN, GITHUB_WEBHOOK_SECRET)
        2. Project config (.releasedash.json)
        3. User config (~/.config/releasedash/config.json)
        4. Hardcoded defaults

    Args:
        project_dir: Project directory to load .releasedash.json from (defaults to cwd)
        use_cache: If True, return cached config from previous load

    Returns:
        Validated ReleaseDashConfig instance

    Raises:
        ValidationError: If the merged config fails Pydantic validation
    """
    global _config_cache

    if use_cache and _config_cache is not None:
        return _config_cache

    merged = get_default_config()

    user_config_path = get_user_config_path()
    if user_config := load_json_file(user_config_path):
        merged = deep_merge(merged, user_config)

    project_config_path = get_project_config_path(project_dir)
    if project_config := load_json_file(project_config_path):
        merged = deep_merge(merged, project_config)

    merged = apply_env_overrides(merged)

    config = ReleaseDashConfig(**merged)
    _config_cache = config

    return config


def clear_cache() -> None:
    """
    Clear the cached configuration.

    Useful for testing or when config files change during execution.
    """
    global _config_cache
    _config_cache = None
