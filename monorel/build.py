"""Build and test orchestration.

Runs one script (``build``, ``test``) for every package, either level by
level with the packages of a level in parallel, or one package at a time in
topological order.

Parallel mode puts a barrier between levels: level k+1 starts only after
every package of level k has finished, successfully or not. When a package
fails, every package that depends on it, directly or transitively, is marked
``blocked`` and never started, so nothing builds against a broken
dependency.
"""

from __future__ import annotations

import re
import time
from concurrent.futures import ThreadPoolExecutor, as_completed

from .errors import BuildFailure, MonorelError, TestFailure
from .graph import transitive_dependents
from .models import BuildStatus, Package, PackageResult
from .runner import CommandRunner
from .shell import error, info, step, success, warn
from .workspace import Workspace

COVERAGE_SCRIPT = "test:coverage"

_PYTEST_COV_TOTAL = re.compile(r"^TOTAL\s.*?(\d+(?:\.\d+)?)%\s*$", re.MULTILINE)
_JEST_ALL_FILES = re.compile(
    r"All files\s*\|\s*([\d.]+)\s*\|\s*([\d.]+)\s*\|\s*([\d.]+)\s*\|\s*([\d.]+)"
)


def extract_coverage(output: str) -> float | None:
    """Pull the overall line coverage percentage out of test output.

    Understands the pytest-cov ``TOTAL`` row and Jest's ``All files`` row.
    """
    match = _PYTEST_COV_TOTAL.search(output)
    if match:
        return float(match.group(1))
    match = _JEST_ALL_FILES.search(output)
    if match:
        return float(match.group(4))
    return None


class BuildOrchestrator:
    """Runs a script across the workspace in dependency order.

    Args:
        workspace: Loaded workspace; its graph and levels are only read.
        runner: Executes one package script.
        max_workers: Upper bound on concurrent packages within a level.
            Defaults to the width of the level.
        dry_run: Report what would run without starting anything.
    """

    def __init__(
        self,
        workspace: Workspace,
        runner: CommandRunner,
        *,
        max_workers: int | None = None,
        dry_run: bool = False,
    ) -> None:
        self.workspace = workspace
        self.runner = runner
        self.max_workers = max_workers
        self.dry_run = dry_run

    def run(
        self, script: str, *, sequential: bool = False, coverage: bool = False
    ) -> list[PackageResult]:
        """Run ``script`` for every package and return one result each.

        Sequential mode stops at the first failure and leaves the remaining
        packages out of the results.
        """
        if sequential:
            return self._run_sequential(script, coverage)
        return self._run_levels(script, coverage)

    def _run_sequential(self, script: str, coverage: bool) -> list[PackageResult]:
        step(f"Running {script} sequentially for {len(self.workspace.order)} packages")
        results: list[PackageResult] = []
        for name in self.workspace.order:
            result = self._run_one(self.workspace.package(name), script, coverage)
            results.append(result)
            _report(result, script)
            if result.status == BuildStatus.FAILED:
                break
        return results

    def _run_levels(self, script: str, coverage: bool) -> list[PackageResult]:
        levels = self.workspace.levels
        results: dict[str, PackageResult] = {}
        blocked: dict[str, str] = {}

        for idx, level in enumerate(levels):
            step(f"Level {idx + 1}/{len(levels)}: {', '.join(level)}")

            runnable: list[str] = []
            for name in level:
                if name in blocked:
                    results[name] = PackageResult(
                        name=name,
                        status=BuildStatus.BLOCKED,
                        message=f"dependency {blocked[name]} failed",
                        level=idx,
                    )
                    _report(results[name], script)
                else:
                    runnable.append(name)
            if not runnable:
                continue

            workers = min(self.max_workers or len(runnable), len(runnable))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = {
                    pool.submit(
                        self._run_one,
                        self.workspace.package(name),
                        script,
                        coverage,
                        idx,
                    ): name
                    for name in runnable
                }
                # Barrier: the pool only exits once every future is done
                for future in as_completed(futures):
                    result = future.result()
                    results[result.name] = result
                    _report(result, script)

            for name in runnable:
                if results[name].status != BuildStatus.FAILED:
                    continue
                for dependent in transitive_dependents(self.workspace.graph, [name]):
                    blocked.setdefault(dependent, name)

        return [results[name] for level in levels for name in level]

    def _resolve_script(self, pkg: Package, script: str, coverage: bool) -> str | None:
        if coverage and COVERAGE_SCRIPT in pkg.scripts:
            return COVERAGE_SCRIPT
        return script if script in pkg.scripts else None

    def _run_one(
        self, pkg: Package, script: str, coverage: bool, level: int | None = None
    ) -> PackageResult:
        """Run one package's script. Never raises: failures become results."""
        resolved = self._resolve_script(pkg, script, coverage)
        if resolved is None:
            return PackageResult(
                name=pkg.name,
                status=BuildStatus.SKIPPED,
                message=f"no {script} script",
                level=level,
            )
        if self.dry_run:
            return PackageResult(
                name=pkg.name,
                status=BuildStatus.DRY_RUN,
                message=f"would run {resolved}: {pkg.scripts[resolved]}",
                level=level,
            )

        failure = TestFailure if script.startswith("test") else BuildFailure
        start = time.monotonic()
        try:
            outcome = self.runner.run(pkg, resolved)
            if not outcome.ok:
                raise failure(
                    f"{script} failed with code {outcome.returncode}. "
                    f"{outcome.stderr.strip()}".strip()
                )
        except (MonorelError, OSError) as exc:
            return PackageResult(
                name=pkg.name,
                status=BuildStatus.FAILED,
                duration=time.monotonic() - start,
                message=str(exc),
                level=level,
            )

        return PackageResult(
            name=pkg.name,
            status=BuildStatus.SUCCESS,
            duration=time.monotonic() - start,
            level=level,
            coverage=extract_coverage(outcome.stdout) if coverage else None,
        )


def _report(result: PackageResult, script: str) -> None:
    if result.status == BuildStatus.SUCCESS:
        success(f"{result.name}: {script} passed in {result.duration:.2f}s")
    elif result.status == BuildStatus.FAILED:
        error(f"{result.name}: {result.message}")
    elif result.status == BuildStatus.BLOCKED:
        warn(f"{result.name}: blocked, {result.message}")
    else:
        info(f"{result.name}: {result.message}")


def print_summary(results: list[PackageResult], script: str) -> None:
    """Print succeeded/skipped/failed/blocked package names."""
    step(f"{script} summary")

    def names(status: BuildStatus) -> list[str]:
        return [r.name for r in results if r.status == status]

    for status in BuildStatus:
        members = names(status)
        if members:
            info(f"{status.value}: {', '.join(members)}")

    measured = [r.coverage for r in results if r.coverage is not None]
    if measured:
        info(f"average line coverage: {sum(measured) / len(measured):.1f}%")
