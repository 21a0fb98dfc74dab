"""Tests for monorel.cli."""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from monorel.cli import cli
from monorel.publish import PublishOrchestrator
from monorel.workspace import load_workspace

if TYPE_CHECKING:
    from conftest import FakeRegistry, FakeRunner, FakeVcs, WorkspaceFactory


@pytest.fixture
def fakes(
    fake_runner: FakeRunner, fake_registry: FakeRegistry, fake_vcs: FakeVcs
) -> Iterator[None]:
    with (
        patch("monorel.cli.make_runner", return_value=fake_runner),
        patch("monorel.cli.make_registry", return_value=fake_registry),
        patch("monorel.cli.make_vcs", return_value=fake_vcs),
    ):
        yield


def invoke(root: Path, *args: str):
    return CliRunner().invoke(cli, ["--root", str(root), *args])


class TestStatus:
    def test_json(self, scenario_root: Path) -> None:
        result = invoke(scenario_root, "status", "--json")

        assert result.exit_code == 0, result.output
        report = json.loads(result.output)
        assert report["packages"] == 4
        assert report["levels"][0] == ["core"]

    def test_text(self, scenario_root: Path) -> None:
        result = invoke(scenario_root, "status")
        assert result.exit_code == 0, result.output
        assert "Level 1: core" in result.output
        assert "Version conflicts: 1" in result.output

    def test_cycle_is_reported(self, make_workspace: WorkspaceFactory) -> None:
        root = make_workspace(
            {
                "a": {"dependencies": {"b": "^1.0.0"}},
                "b": {"dependencies": {"a": "^1.0.0"}},
            }
        )
        result = invoke(root, "status")
        assert result.exit_code == 1
        assert "Circular dependency detected" in result.output


class TestSyncDeps:
    def test_dry_run_keeps_manifests(self, scenario_root: Path) -> None:
        manifest = scenario_root / "packages" / "tools" / "package.toml"
        before = manifest.read_text()

        result = invoke(scenario_root, "sync-deps", "--dry-run")

        assert result.exit_code == 0, result.output
        assert "would update tools: X ^4.9.0 → ^5.0.0" in result.output
        assert manifest.read_text() == before

    def test_global_dry_run(self, scenario_root: Path) -> None:
        manifest = scenario_root / "packages" / "tools" / "package.toml"
        before = manifest.read_text()
        result = CliRunner().invoke(cli, ["--root", str(scenario_root), "--dry-run", "sync-deps"])
        assert result.exit_code == 0, result.output
        assert manifest.read_text() == before

    def test_writes(self, scenario_root: Path) -> None:
        result = invoke(scenario_root, "sync-deps")
        assert result.exit_code == 0, result.output
        assert load_workspace(scenario_root).package("tools").dependencies["X"] == "^5.0.0"


@pytest.mark.usefixtures("fakes")
class TestBuildAndTest:
    def test_build(self, scenario_root: Path, fake_runner: FakeRunner) -> None:
        result = invoke(scenario_root, "build")
        assert result.exit_code == 0, result.output
        assert fake_runner.names()[0] == "core"

    def test_failure_exits_nonzero(self, scenario_root: Path, fake_runner: FakeRunner) -> None:
        fake_runner.failing.add("core")
        result = invoke(scenario_root, "test", "--sequential")
        assert result.exit_code == 1
        assert "test failed" in result.output

    def test_coverage(self, scenario_root: Path, fake_runner: FakeRunner) -> None:
        result = invoke(scenario_root, "test", "--coverage")
        assert result.exit_code == 0, result.output
        assert ("testing", "test:coverage") in fake_runner.calls


class TestVersion:
    def test_sets_version(self, scenario_root: Path) -> None:
        result = invoke(scenario_root, "version", "1.5.0")
        assert result.exit_code == 0, result.output
        ws = load_workspace(scenario_root)
        assert ws.config.version == "1.5.0"
        assert ws.package("tools").dependencies["core"] == "^1.5.0"

    def test_rejects_invalid(self, scenario_root: Path) -> None:
        result = invoke(scenario_root, "version", "1.5")
        assert result.exit_code == 1
        assert "Invalid version: 1.5" in result.output


@pytest.mark.usefixtures("fakes")
class TestRelease:
    def test_release(self, scenario_root: Path, fake_vcs: FakeVcs) -> None:
        fake_vcs.history = ["a1 fix: typo"]
        result = invoke(scenario_root, "release")
        assert result.exit_code == 0, result.output
        assert fake_vcs.tags == ["v1.2.1"]

    def test_global_dry_run(self, scenario_root: Path, fake_vcs: FakeVcs) -> None:
        fake_vcs.history = ["a1 feat: thing"]
        result = CliRunner().invoke(
            cli, ["--root", str(scenario_root), "--dry-run", "release", "minor"]
        )
        assert result.exit_code == 0, result.output
        assert "1.2.0 → 1.3.0" in result.output
        assert fake_vcs.tags == []

    def test_dirty_tree_fails(self, scenario_root: Path, fake_vcs: FakeVcs) -> None:
        fake_vcs.dirty = True
        fake_vcs.history = ["a1 fix: typo"]
        result = invoke(scenario_root, "release")
        assert result.exit_code == 1
        assert "Pre-release checks failed" in result.output
        assert fake_vcs.tags == []

    def test_skip_checks(self, scenario_root: Path, fake_vcs: FakeVcs) -> None:
        fake_vcs.dirty = True
        fake_vcs.history = ["a1 fix: typo"]
        result = invoke(scenario_root, "release", "--skip-checks")
        assert result.exit_code == 0, result.output
        assert fake_vcs.tags == ["v1.2.1"]


@pytest.mark.usefixtures("fakes")
class TestPublish:
    def test_partial_publish(self, scenario_root: Path, fake_registry: FakeRegistry) -> None:
        fake_registry.published.add(("core", "1.2.0"))

        result = invoke(scenario_root, "publish")

        assert result.exit_code == 0, result.output
        assert "core" not in fake_registry.published_calls()
        assert "tools" in fake_registry.published_calls()
        assert "skipped: 1 (core)" in result.output

    def test_failure(self, scenario_root: Path, fake_registry: FakeRegistry) -> None:
        fake_registry.failing.add("core")
        result = invoke(scenario_root, "publish")
        assert result.exit_code == 1
        assert "Failed to publish core" in result.output
        assert "failed: 1 (core)" in result.output

    def test_force_still_exits_nonzero(
        self, scenario_root: Path, fake_registry: FakeRegistry
    ) -> None:
        fake_registry.failing.add("core")
        result = invoke(scenario_root, "publish", "--force")
        assert result.exit_code == 1
        assert "published: 3" in result.output

    def test_verify_after_publish(self, scenario_root: Path, fake_registry: FakeRegistry) -> None:
        result = invoke(scenario_root, "publish", "--verify")
        assert result.exit_code == 0, result.output
        assert "Verified core@1.2.0" in result.output

    def test_dry_run(self, scenario_root: Path, fake_registry: FakeRegistry) -> None:
        result = invoke(scenario_root, "publish", "--dry-run")
        assert result.exit_code == 0, result.output
        assert fake_registry.published_calls() == []

    def test_failed_checks(self, scenario_root: Path, fake_registry: FakeRegistry) -> None:
        fake_registry.authenticated = False
        result = invoke(scenario_root, "publish")
        assert result.exit_code == 1
        assert "Pre-publish checks failed. Use --force to override" in result.output
        assert fake_registry.published_calls() == []

    def test_skip_checks(
        self, scenario_root: Path, fake_registry: FakeRegistry, fake_vcs: FakeVcs
    ) -> None:
        fake_vcs.dirty = True
        result = invoke(scenario_root, "publish", "--skip-checks")
        assert result.exit_code == 0, result.output
        assert len(fake_registry.published_calls()) == 4


@pytest.mark.usefixtures("fakes")
class TestVerify:
    def test_all_present(self, scenario_root: Path, fake_registry: FakeRegistry) -> None:
        for name in ("cli", "core", "testing", "tools"):
            fake_registry.published.add((name, "1.2.0"))
        result = invoke(scenario_root, "verify", "1.2.0")
        assert result.exit_code == 0, result.output
        assert "All 4 packages verified" in result.output

    def test_timeout(self, scenario_root: Path, fake_registry: FakeRegistry) -> None:
        fake_registry.published.add(("core", "1.2.0"))
        result = invoke(scenario_root, "verify", "1.2.0", "--timeout", "100")
        assert result.exit_code == 1
        assert "Timed out waiting for 1.2.0" in result.output
        assert "tools" in result.output

    def test_timeout_without_interval(self, scenario_root: Path) -> None:
        # verify-interval is 0 in the test workspace
        with patch.object(PublishOrchestrator, "verify", return_value=[]) as mock_verify:
            result = invoke(scenario_root, "verify", "1.2.0", "--timeout", "100")

        assert result.exit_code == 0, result.output
        kwargs = mock_verify.call_args.kwargs
        assert kwargs["attempts"] == 10
        assert kwargs["interval"] == pytest.approx(0.01)

    def test_timeout_sets_attempts(self, make_workspace: WorkspaceFactory) -> None:
        root = make_workspace({"core": {}}, {"verify-interval": 0.5})
        with patch.object(PublishOrchestrator, "verify", return_value=[]) as mock_verify:
            invoke(root, "verify", "1.2.0", "--timeout", "1200")

        kwargs = mock_verify.call_args.kwargs
        assert kwargs["attempts"] == 3
        assert kwargs["interval"] == 0.5


@pytest.mark.usefixtures("fakes")
class TestRollback:
    def test_requires_force(self, scenario_root: Path, fake_vcs: FakeVcs) -> None:
        result = invoke(scenario_root, "rollback", "1.2.0")
        assert result.exit_code == 1
        assert "Rollback requires --force flag" in result.output
        assert fake_vcs.removed == []

    def test_unpublish(
        self, scenario_root: Path, fake_registry: FakeRegistry, fake_vcs: FakeVcs
    ) -> None:
        fake_registry.published.add(("core", "1.2.0"))

        result = invoke(scenario_root, "rollback", "1.2.0", "--force", "--unpublish")

        assert result.exit_code == 0, result.output
        assert fake_vcs.removed == ["v1.2.0"]
        assert "unpublish core: success" in result.output
        assert "unpublish tools: not_found" in result.output

    def test_failed_action_exits_nonzero(self, scenario_root: Path, fake_vcs: FakeVcs) -> None:
        fake_vcs.fail_remove = True
        result = invoke(scenario_root, "rollback", "1.2.0", "--force")
        assert result.exit_code == 1
        assert "Rollback finished with failures" in result.output
