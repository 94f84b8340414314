"""Tests for configuration loading and merging."""

import json
import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from releasedash.core.config import (
    ReleaseDashConfig,
    get_project_config_path,
    get_user_config_path,
    load_config,
    load_layered_env,
)
from releasedash.core.config.loader import apply_env_overrides, deep_merge, load_json_file

ENV_VARS = [
    "RELEASEDASH_GITHUB_TOKEN",
    "GITHUB_TOKEN",
    "RELEASEDASH_WEBHOOK_SECRET",
    "GITHUB_WEBHOOK_SECRET",
    "RELEASEDASH_REPO",
    "RELEASEDASH_DB_PATH",
    "RELEASEDASH_API_TOKEN",
]


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Point XDG_CONFIG_HOME at a temp dir and clear config env vars."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    # load_layered_env exports straight into os.environ
    for name in ENV_VARS:
        os.environ.pop(name, None)


@pytest.fixture
def project(tmp_path):
    project_dir = tmp_path / "project"
    project_dir.mkdir()
    return project_dir


def write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


class TestDeepMerge:
    def test_nested_dicts_are_merged(self) -> None:
        base = {"github": {"owner": "a", "repo": "b"}, "store": {"db_path": "x"}}
        result = deep_merge(base, {"github": {"repo": "c"}})
        assert result == {"github": {"owner": "a", "repo": "c"}, "store": {"db_path": "x"}}
        assert base["github"]["repo"] == "b"

    def test_non_dict_values_replace(self) -> None:
        assert deep_merge({"a": {"b": 1}}, {"a": 2}) == {"a": 2}


class TestLoadJsonFile:
    def test_missing_file(self, tmp_path) -> None:
        assert load_json_file(tmp_path / "missing.json") is None

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{nope")
        assert load_json_file(path) is None

    def test_non_object(self, tmp_path) -> None:
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")
        assert load_json_file(path) is None


class TestLoadConfig:
    """Tests for load_config() precedence."""

    def test_defaults(self, project) -> None:
        config = load_config(project, use_cache=False)
        assert config.github.full_name == "firebase/firebase-android-sdk"
        assert config.github.token is None
        assert config.layout.companion_suffix == "/ktx"
        assert config.store.db_path == Path(".releasedash/releases.db")

    def test_user_then_project(self, project) -> None:
        write_json(get_user_config_path(), {"github": {"owner": "acme", "repo": "user-repo"}})
        write_json(get_project_config_path(project), {"github": {"repo": "project-repo"}})

        config = load_config(project, use_cache=False)

        assert config.github.owner == "acme"
        assert config.github.repo == "project-repo"

    def test_env_overrides_files(self, project, monkeypatch) -> None:
        write_json(get_project_config_path(project), {"github": {"token": "from-file"}})
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")
        monkeypatch.setenv("RELEASEDASH_REPO", "octo/widgets")
        monkeypatch.setenv("RELEASEDASH_DB_PATH", "/tmp/releases.db")

        config = load_config(project, use_cache=False)

        assert config.github.token == "from-env"
        assert config.github.full_name == "octo/widgets"
        assert config.store.db_path == Path("/tmp/releases.db")

    def test_releasedash_token_wins_over_github_token(self, monkeypatch) -> None:
        monkeypatch.setenv("GITHUB_TOKEN", "generic")
        monkeypatch.setenv("RELEASEDASH_GITHUB_TOKEN", "specific")
        assert apply_env_overrides({})["github"]["token"] == "specific"

    def test_invalid_repo_env_is_ignored(self, monkeypatch) -> None:
        monkeypatch.setenv("RELEASEDASH_REPO", "not-a-repo")
        assert "owner" not in apply_env_overrides({})["github"]

    def test_cache(self, project) -> None:
        first = load_config(project)
        write_json(get_project_config_path(project), {"github": {"repo": "changed"}})
        assert load_config(project) is first
        assert load_config(project, use_cache=False).github.repo == "changed"

    def test_invalid_values_are_rejected(self, project) -> None:
        write_json(get_project_config_path(project), {"layout": {"companion_suffix": ""}})
        with pytest.raises(ValidationError):
            load_config(project, use_cache=False)

    def test_branch_naming(self) -> None:
        config = ReleaseDashConfig.model_validate(
            {"github": {"owner": "acme", "repo": "sdk"}, "layout": {"branch_prefix": "rel/"}}
        )
        fields = config.branch_naming().branch_fields("M7")
        assert fields["release_branch_name"] == "rel/M7.release"
        assert fields["snapshot_branch_link"] == "https://github.com/acme/sdk/tree/rel/M7"


class TestLoadLayeredEnv:
    """Tests for load_layered_env()."""

    def test_precedence(self, tmp_path, monkeypatch) -> None:
        user_env = tmp_path / "user.env"
        user_env.write_text(
            "RELEASEDASH_DB_PATH=user.db\nRELEASEDASH_API_TOKEN=user\nRELEASEDASH_REPO=user/sdk\n"
        )
        project_env = tmp_path / ".env"
        project_env.write_text("RELEASEDASH_API_TOKEN=project\nRELEASEDASH_REPO=project/sdk\n")
        monkeypatch.setenv("RELEASEDASH_REPO", "os/sdk")

        applied = load_layered_env(user_env_paths=[user_env], project_env_paths=[project_env])

        assert os.environ["RELEASEDASH_DB_PATH"] == "user.db"
        assert os.environ["RELEASEDASH_API_TOKEN"] == "project"
        assert os.environ["RELEASEDASH_REPO"] == "os/sdk"
        assert applied == {"RELEASEDASH_DB_PATH": "user.db", "RELEASEDASH_API_TOKEN": "project"}

    def test_only_releasedash_keys_are_exported(self, tmp_path, monkeypatch) -> None:
        monkeypatch.delenv("RD_UNRELATED", raising=False)
        project_env = tmp_path / ".env"
        project_env.write_text("GITHUB_TOKEN=ghp_x\nRD_UNRELATED=1\nDATABASE_URL=postgres://\n")

        applied = load_layered_env(user_env_paths=[], project_env_paths=[project_env])

        assert applied == {"GITHUB_TOKEN": "ghp_x"}
        assert "RD_UNRELATED" not in os.environ
        assert load_config(use_cache=False).github.token == "ghp_x"

    def test_missing_files(self, tmp_path) -> None:
        applied = load_layered_env(
            user_env_paths=[tmp_path / "absent.env"], project_env_paths=[tmp_path / ".env"]
        )
        assert applied == {}
