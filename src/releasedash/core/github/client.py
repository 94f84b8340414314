"""
Async GitHub REST client for releasedash.

Read-only access to the facts a release sync needs: branch existence, the
release manifest and change report, the build-artifact workflow run, check
runs and per-library version descriptors.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from releasedash.core.config.models import ReleaseDashConfig
from releasedash.core.exceptions import (
    GitHubClientError,
    MalformedChangeReportError,
    MalformedHostResponseError,
    MalformedManifestError,
    WorkflowNotFoundError,
)
from releasedash.core.github.http import RetryConfig, retry_request
from releasedash.core.github.models import (
    ChangeReportDoc,
    ManifestDoc,
    RepoInfo,
    WorkflowRun,
    check_run_from_api,
)
from releasedash.core.releases.models import CheckRun

logger = logging.getLogger(__name__)

CHECK_RUNS_PAGE_SIZE = 100


class GitHubClient:
    """
    Client for the GitHub REST API.

    Every request carries the configured API version header and, when a
    token is set, a bearer authorization header. Transient failures are
    retried; anything left over surfaces as GitHubClientError.

    Example:
        >>> async with GitHubClient(RepoInfo(owner="firebase", repo="firebase-android-sdk")) as gh:
        ...     exists = await gh.branch_exists("releases/M134.release")
    """

    def __init__(
        self,
        repo: RepoInfo,
        *,
        token: str | None = None,
        api_url: str = "https://api.github.com",
        api_version: str = "2022-11-28",
        timeout: float = 30.0,
        retry: RetryConfig | None = None,
        manifest_path: str = "release.json",
        change_report_path: str = "release_report.json",
        version_descriptor: str = "gradle.properties",
        build_workflow_name: str = "Build Release Artifacts",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize GitHubClient.

        Args:
            repo: Repository to read from
            token: API token (anonymous requests if None)
            api_url: Base URL of the REST API
            api_version: Value of the X-GitHub-Api-Version header
            timeout: Per-request timeout in seconds
            retry: Retry behavior for transient failures
            manifest_path: Path of the release manifest on a release branch
            change_report_path: Path of the change report on a release branch
            version_descriptor: File name of per-library version descriptors
            build_workflow_name: Name of the build-artifact workflow
            transport: Optional transport (used by tests)
        """
        self.repo = repo
        self.retry = retry or RetryConfig()
        self.manifest_path = manifest_path
        self.change_report_path = change_report_path
        self.version_descriptor = version_descriptor
        self.build_workflow_name = build_workflow_name

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": api_version,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._http = httpx.AsyncClient(
            base_url=api_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: ReleaseDashConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> GitHubClient:
        """Create a client from releasedash configuration."""
        return cls(
            RepoInfo(owner=config.github.owner, repo=config.github.repo),
            token=config.github.token,
            api_url=config.github.api_url,
            api_version=config.github.api_version,
            timeout=config.github.timeout_seconds,
            retry=RetryConfig(max_retries=config.github.max_retries),
            manifest_path=config.layout.manifest_path,
            change_report_path=config.layout.change_report_path,
            version_descriptor=config.layout.version_descriptor,
            build_workflow_name=config.layout.build_workflow_name,
            transport=transport,
        )

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.repo.full_name}"

    async def _get(self, path: str, **params: Any) -> httpx.Response:
        """
        GET a repository-relative path with retries.

        Raises:
            GitHubClientError: On any HTTP or transport failure
        """
        url = f"{self._repo_path}{path}"
        logger.debug("GET %s %s", url, params or "")
        try:
            return await retry_request(
                self._http, "GET", url, config=self.retry, params=params or None
            )
        except httpx.HTTPStatusError as e:
            raise GitHubClientError(
                f"GitHub API error {e.response.status_code} for {url}",
                status_code=e.response.status_code,
                url=url,
            ) from e
        except httpx.HTTPError as e:
            raise GitHubClientError(f"GitHub request failed for {url}: {e}", url=url) from e

    async def branch_exists(self, branch_name: str) -> bool:
        """
        Check whether a branch exists.

        Returns:
            True if the branch exists, False on 404

        Raises:
            GitHubClientError: On any failure other than 404
        """
        try:
            await self._get(f"/branches/{quote(branch_name, safe='')}")
        except GitHubClientError as e:
            if e.status_code == 404:
                logger.debug("Branch %s does not exist", branch_name)
                return False
            raise
        return True

    async def get_file_content(self, ref: str, path: str) -> str:
        """
        Fetch and decode a file from the contents API.

        Args:
            ref: Branch, tag or commit to read from
            path: Repository-relative file path

        Returns:
            Decoded file content
        """
        response = await self._get(f"/contents/{quote(path)}", ref=ref)
        try:
            payload = response.json()
            return base64.b64decode(payload["content"]).decode("utf-8")
        except (ValueError, KeyError, TypeError, binascii.Error) as e:
            raise GitHubClientError(
                f"Unexpected contents response for {path} on {ref}", path=path, ref=ref
            ) from e

    async def fetch_manifest(self, branch_ref: str) -> ManifestDoc:
        """
        Fetch the release manifest from a release branch.

        Raises:
            MalformedManifestError: If the manifest is not valid JSON or has the wrong shape
        """
        text = await self.get_file_content(branch_ref, self.manifest_path)
        try:
            return ManifestDoc.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as e:
            raise MalformedManifestError(
                f"Malformed release manifest {self.manifest_path} on {branch_ref}: {e}",
                branch=branch_ref,
            ) from e

    async def fetch_change_report(self, branch_ref: str) -> ChangeReportDoc:
        """
        Fetch the change report from a release branch.

        Raises:
            MalformedChangeReportError: If the report is not valid JSON or has the wrong shape
        """
        text = await self.get_file_content(branch_ref, self.change_report_path)
        try:
            return ChangeReportDoc.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as e:
            raise MalformedChangeReportError(
                f"Malformed change report {self.change_report_path} on {branch_ref}: {e}",
                branch=branch_ref,
            ) from e

    async def fetch_build_workflow(self, branch_name: str) -> WorkflowRun:
        """
        Find the build-artifact workflow run on a branch.

        Returns:
            The first run (most recent) whose name matches the build workflow

        Raises:
            WorkflowNotFoundError: If no run on the branch matches
            MalformedHostResponseError: If the runs listing has the wrong shape
        """
        response = await self._get("/actions/runs", branch=branch_name, per_page=100)
        try:
            for run in response.json().get("workflow_runs", []):
                if run.get("name") == self.build_workflow_name:
                    return WorkflowRun.model_validate(run)
        except (ValueError, AttributeError, TypeError) as e:
            # pydantic's ValidationError is a ValueError
            raise MalformedHostResponseError(
                f"Unexpected workflow runs response for {branch_name}: {e}",
                branch=branch_name,
            ) from e
        raise WorkflowNotFoundError(self.build_workflow_name, branch_name)

    async def list_check_runs(self, branch_ref: str) -> list[CheckRun]:
        """
        List all check runs for the head of a branch, across pages.

        Returns:
            Check runs in API order

        Raises:
            MalformedHostResponseError: If a page has the wrong shape
        """
        runs: list[CheckRun] = []
        page = 1
        while True:
            response = await self._get(
                f"/commits/{quote(branch_ref, safe='')}/check-runs",
                per_page=CHECK_RUNS_PAGE_SIZE,
                page=page,
            )
            try:
                data = response.json()
                items = data.get("check_runs", [])
                runs.extend(check_run_from_api(item) for item in items)
                total = int(data.get("total_count", len(runs)))
            except (ValueError, KeyError, AttributeError, TypeError) as e:
                raise MalformedHostResponseError(
                    f"Unexpected check runs response for {branch_ref} (page {page}): {e}",
                    branch=branch_ref,
                ) from e
            if not items or len(runs) >= total:
                break
            page += 1
        logger.debug("Fetched %d check runs for %s", len(runs), branch_ref)
        return runs

    async def fetch_version_descriptor(self, branch_ref: str, library_path: str) -> str:
        """Fetch the raw version descriptor of a library directory."""
        return await self.get_file_content(
            branch_ref, f"{library_path}/{self.version_descriptor}"
        )
