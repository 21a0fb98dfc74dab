"""Pre-release and pre-publish checks.

Each check is a named callable that raises ``CheckFailure`` (or any
``MonorelError``/``OSError`` from the command it runs) when it does not
pass. ``run_checks`` runs all of them, reports each one and only then
decides whether to stop, so one run shows every problem at once.
"""

from __future__ import annotations

from collections.abc import Callable

from pydantic import BaseModel

from .build import BuildOrchestrator
from .errors import CheckFailure, MonorelError, PreflightFailure
from .registry import Registry
from .runner import CommandRunner
from .shell import error, step, success, warn
from .vcs import Vcs
from .workspace import Workspace

Check = tuple[str, Callable[[], None]]


class CheckResult(BaseModel):
    name: str
    passed: bool
    message: str = ""


def check_clean_tree(vcs: Vcs) -> None:
    if not vcs.is_clean():
        raise CheckFailure("Uncommitted changes detected")


def check_release_branch(vcs: Vcs, branches: list[str]) -> None:
    branch = vcs.current_branch()
    if branch not in branches:
        raise CheckFailure(
            f"On branch {branch or '<detached>'}, expected one of: {', '.join(branches)}"
        )


def check_version_consistency(ws: Workspace) -> None:
    """Every package must carry the workspace version.

    Without a configured workspace version, the packages only have to agree
    with each other.
    """
    expected = ws.config.version
    for pkg in ws.ordered_packages():
        if expected is None:
            expected = pkg.version
        if pkg.version != expected:
            raise CheckFailure(
                f"Version mismatch: {pkg.name} is {pkg.version}, expected {expected}"
            )


def check_script_passes(ws: Workspace, runner: CommandRunner, script: str) -> None:
    results = BuildOrchestrator(ws, runner, max_workers=ws.config.max_workers).run(script)
    failed = [r.name for r in results if not r.ok]
    if failed:
        raise CheckFailure(f"{script} failed for: {', '.join(failed)}")


def run_checks(
    label: str, checks: list[Check], *, force: bool = False
) -> list[CheckResult]:
    """Run every check and stop the operation if any failed.

    Args:
        label: "Pre-release" or "Pre-publish", used in messages.
        checks: (name, callable) pairs, run in order.
        force: Report failures as warnings and carry on.

    Raises:
        PreflightFailure: If a check failed and ``force`` is not set.
    """
    step(f"Running {label.lower()} checks")
    results: list[CheckResult] = []

    for name, check in checks:
        try:
            check()
        except (MonorelError, OSError) as exc:
            results.append(CheckResult(name=name, passed=False, message=str(exc)))
            if force:
                warn(f"{name}: {exc} (forced continue)")
            else:
                error(f"{name}: {exc}")
            continue
        results.append(CheckResult(name=name, passed=True))
        success(name)

    if not all(r.passed for r in results) and not force:
        hint = " Use --force to override or" if label == "Pre-publish" else " Please"
        raise PreflightFailure(
            f"{label} checks failed.{hint} fix the issues and try again.", results
        )
    return results


def pre_release_checks(
    ws: Workspace, vcs: Vcs, runner: CommandRunner, *, dry_run: bool = False
) -> list[Check]:
    """Clean tree, release branch, tests and build. Scripts don't run in a dry run."""
    checks: list[Check] = [
        ("Git working directory clean", lambda: check_clean_tree(vcs)),
        (
            "On release branch",
            lambda: check_release_branch(vcs, ws.config.release_branches),
        ),
    ]
    if not dry_run:
        checks += [
            ("Tests passing", lambda: check_script_passes(ws, runner, "test")),
            ("Build passing", lambda: check_script_passes(ws, runner, "build")),
        ]
    return checks


def pre_publish_checks(
    ws: Workspace,
    vcs: Vcs,
    runner: CommandRunner,
    registry: Registry,
    *,
    dry_run: bool = False,
) -> list[Check]:
    """Registry credentials, tests, clean tree and version consistency."""
    checks: list[Check] = [("Registry authentication", registry.check_auth)]
    if not dry_run:
        checks.append(("Tests passing", lambda: check_script_passes(ws, runner, "test")))
    checks += [
        ("No uncommitted changes", lambda: check_clean_tree(vcs)),
        ("Version consistency", lambda: check_version_consistency(ws)),
    ]
    return checks
