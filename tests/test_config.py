"""Tests for monorel.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from monorel.config import RegistryCommands, WorkspaceConfig, load_config, write_workspace_version
from monorel.errors import WorkspaceError


class TestLoadConfig:
    def test_missing_pyproject(self, tmp_path: Path) -> None:
        with pytest.raises(WorkspaceError, match="No pyproject.toml"):
            load_config(tmp_path)

    def test_defaults_without_table(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text('[project]\nname = "ws"\n')
        config = load_config(tmp_path)
        assert config == WorkspaceConfig()
        assert config.members == ["packages/*"]
        assert config.publish_delay == 2.0
        assert config.commands.publish.startswith("npm publish")
        assert config.release_branches == ["main", "master"]
        assert config.commands.auth.startswith("npm whoami")

    def test_kebab_case_keys(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text(
            "[tool.monorel]\n"
            'members = ["libs/*"]\n'
            "publish-delay = 0.5\n"
            "max-workers = 2\n"
            'tag-prefix = "release-"\n'
            'release-branches = ["trunk"]\n'
            "[tool.monorel.commands]\n"
            'exists = "pip index versions {name}"\n'
        )
        config = load_config(tmp_path)
        assert config.members == ["libs/*"]
        assert config.publish_delay == 0.5
        assert config.max_workers == 2
        assert config.tag_for("1.0.0") == "release-1.0.0"
        assert config.release_branches == ["trunk"]
        assert config.commands.exists == "pip index versions {name}"
        assert config.commands.pack == RegistryCommands().pack

    @pytest.mark.parametrize(
        "body",
        ['unknown-key = "x"', "publish-delay = -1", "verify-attempts = 0"],
    )
    def test_invalid_table(self, tmp_path: Path, body: str) -> None:
        (tmp_path / "pyproject.toml").write_text(f"[tool.monorel]\n{body}\n")
        with pytest.raises(WorkspaceError, match="Invalid \\[tool.monorel\\]"):
            load_config(tmp_path)


class TestWriteWorkspaceVersion:
    def test_creates_table(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text('[project]\nname = "ws"\n')
        write_workspace_version(tmp_path, "2.0.0")
        assert load_config(tmp_path).version == "2.0.0"

    def test_keeps_other_keys(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text(
            '# root\n[tool.monorel]\nversion = "1.0.0"\nremote = "upstream"\n'
        )
        write_workspace_version(tmp_path, "1.1.0")
        config = load_config(tmp_path)
        assert config.version == "1.1.0"
        assert config.remote == "upstream"
        assert (tmp_path / "pyproject.toml").read_text().startswith("# root")
