"""
Configuration data models for releasedash.

These models define the structure of .releasedash.json and
~/.config/releasedash/config.json files, with validation and type safety via
Pydantic.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from releasedash.core.releases.models import BranchNaming


class GitHubConfig(BaseModel):
    """
    Connection settings for the GitHub repository that releases are cut from.
    """
    owner: str = Field(
        default="firebase",
        description="Repository owner (user or organization)"
    )
    repo: str = Field(
        default="firebase-android-sdk",
        description="Repository name"
    )
    api_url: str = Field(
        default="https://api.github.com",
        description="Base URL of the GitHub REST API"
    )
    token: Optional[str] = Field(
        default=None,
        description="Token used to authenticate API requests"
    )
    webhook_secret: Optional[str] = Field(
        default=None,
        description="Shared secret used to sign webhook deliveries"
    )
    api_version: str = Field(
        default="2022-11-28",
        description="Value of the X-GitHub-Api-Version header"
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout in seconds"
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries for transient failures before giving up"
    )

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def html_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}"


class LayoutConfig(BaseModel):
    """
    Where release facts live inside the repository.
    """
    manifest_path: str = Field(
        default="release.json",
        description="Release manifest at the root of the release branch"
    )
    change_report_path: str = Field(
        default="release_report.json",
        description="Change report at the root of the release branch"
    )
    version_descriptor: str = Field(
        default="gradle.properties",
        description="Per-library file holding the version assignment"
    )
    companion_suffix: str = Field(
        default="/ktx",
        description="Suffix marking a companion library folded into its root"
    )
    build_workflow_name: str = Field(
        default="Build Release Artifacts",
        description="Name of the workflow that builds release artifacts"
    )
    branch_prefix: str = Field(
        default="releases/",
        description="Prefix of snapshot and release branch names"
    )

    @field_validator("companion_suffix")
    @classmethod
    def validate_companion_suffix(cls, v: str) -> str:
        """An empty suffix would fold every library into itself."""
        if not v:
            raise ValueError("companion_suffix must not be empty")
        return v


class StoreConfig(BaseModel):
    """
    SQLite store settings.
    """
    db_path: Path = Field(
        default=Path(".releasedash/releases.db"),
        description="Path to the SQLite database file"
    )


class ApiConfig(BaseModel):
    """
    HTTP API settings.
    """
    api_token: Optional[str] = Field(
        default=None,
        description="Bearer token required for write actions (unset disables the check)"
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Origins allowed to call the API from a browser"
    )


class ReleaseDashConfig(BaseModel):
    """
    Top-level releasedash configuration.

    Loaded from defaults, user config, project config, and env vars.

    Example:
        >>> config = ReleaseDashConfig(github=GitHubConfig(owner="acme", repo="sdk"))
        >>> config.github.full_name
        'acme/sdk'
    """
    github: GitHubConfig = Field(
        default_factory=GitHubConfig,
        description="GitHub repository and API settings"
    )
    layout: LayoutConfig = Field(
        default_factory=LayoutConfig,
        description="Release file layout"
    )
    store: StoreConfig = Field(
        default_factory=StoreConfig,
        description="SQLite store"
    )
    api: ApiConfig = Field(
        default_factory=ApiConfig,
        description="HTTP API"
    )

    model_config = ConfigDict(
        extra="allow",  # Allow extra fields for forward compatibility
        validate_assignment=True,
    )

    def branch_naming(self) -> BranchNaming:
        """Branch naming rules for this repository."""
        return BranchNaming(
            branch_prefix=self.layout.branch_prefix,
            repo_url=self.github.html_url,
        )
