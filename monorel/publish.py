"""Publishing, verification and rollback.

Packages are published strictly one at a time in topological order, so a
registry consumer never sees a package before its dependencies. Each package
moves through::

    pending → (already on the registry → skipped)
            → building → packaging verified → publishing → published | failed

Re-running a publish is idempotent: versions already on the registry are
skipped without running anything. Without ``force`` the first failure stops
the run; with ``force`` the failure is recorded and the next package is
tried.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from .errors import (
    BuildFailure,
    CommandError,
    ForceRequiredError,
    MonorelError,
    PublishFailure,
    RollbackFailure,
)
from .checks import pre_publish_checks, run_checks
from .models import (
    Package,
    PublishRecord,
    PublishStatus,
    ReleaseState,
    RollbackRecord,
    RollbackStatus,
    VerificationResult,
    VerificationStatus,
)
from .registry import Registry
from .runner import CommandRunner
from .shell import debug, error, info, step, success, warn
from .vcs import Vcs
from .workspace import Workspace

VERSION_EXISTS = "version already exists"


class PublishOrchestrator:
    """Drives publish, verify and rollback for one workspace.

    Args:
        workspace: Loaded workspace.
        runner: Runs the build script before publishing.
        registry: Registry to query, publish to and unpublish from.
        vcs: Used by rollback to remove the release tag.
        publish_delay: Seconds to wait after a successful publish before the
            next package, to stay under registry rate limits.
        sleep: Injected so tests don't wait.
    """

    def __init__(
        self,
        workspace: Workspace,
        runner: CommandRunner,
        registry: Registry,
        vcs: Vcs,
        *,
        publish_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.workspace = workspace
        self.runner = runner
        self.registry = registry
        self.vcs = vcs
        self.publish_delay = publish_delay
        self.sleep = sleep
        self.state = ReleaseState(order=list(workspace.order))

    def publish_all(
        self,
        *,
        force: bool = False,
        dry_run: bool = False,
        skip_version_check: bool = False,
        skip_checks: bool = False,
    ) -> ReleaseState:
        """Publish every package in topological order.

        Pre-publish checks run first unless ``skip_checks`` is set; with
        ``force`` their failures are only reported.

        Raises:
            PreflightFailure: If a pre-publish check failed and ``force`` is
                not set. Nothing has been published at that point.
            PublishFailure: On the first failure when not forcing. The state
                recorded so far is attached to the exception.
        """
        if not skip_checks:
            run_checks(
                "Pre-publish",
                pre_publish_checks(
                    self.workspace, self.vcs, self.runner, self.registry, dry_run=dry_run
                ),
                force=force,
            )

        step(f"Publishing {len(self.state.order)} packages")
        self.state.records.clear()

        for idx, name in enumerate(self.state.order):
            pkg = self.workspace.package(name)
            record = self._publish_one(pkg, force, dry_run, skip_version_check)
            self.state.records.append(record)

            if record.status == PublishStatus.FAILED:
                error(f"{name}@{pkg.version}: {record.message}")
                if not force:
                    raise PublishFailure(name, record.message, self.state)
            elif record.status == PublishStatus.PUBLISHED:
                success(f"Published {name}@{pkg.version}")
                if idx < len(self.state.order) - 1:
                    self.sleep(self.publish_delay)
            elif record.status == PublishStatus.SKIPPED:
                warn(f"Skipping {name}@{pkg.version} ({record.reason})")
            else:
                info(f"[dry run] would publish {name}@{pkg.version}")

        return self.state

    def _publish_one(
        self, pkg: Package, force: bool, dry_run: bool, skip_version_check: bool
    ) -> PublishRecord:
        def record(status: PublishStatus, **kwargs: str) -> PublishRecord:
            return PublishRecord(
                name=pkg.name, version=pkg.version, status=status, **kwargs
            )

        try:
            if not skip_version_check and self.registry.exists(pkg.name, pkg.version):
                if not force:
                    return record(PublishStatus.SKIPPED, reason=VERSION_EXISTS)
                debug(f"{pkg.name}@{pkg.version} exists, publishing anyway (--force)")

            if dry_run:
                return record(PublishStatus.DRY_RUN)

            self._build(pkg)
            debug(f"{pkg.name}: checking package contents")
            self.registry.pack_check(pkg)
            debug(f"{pkg.name}: publishing")
            self.registry.publish(pkg)
        except (MonorelError, OSError) as exc:
            return record(PublishStatus.FAILED, message=str(exc))

        return record(PublishStatus.PUBLISHED)

    def _build(self, pkg: Package) -> None:
        if "build" not in pkg.scripts:
            return
        debug(f"{pkg.name}: building")
        result = self.runner.run(pkg, "build")
        if not result.ok:
            raise BuildFailure(
                f"build failed with code {result.returncode}. "
                f"{result.stderr.strip()}".strip()
            )

    def verify(
        self,
        version: str | None = None,
        *,
        names: list[str] | None = None,
        attempts: int,
        interval: float,
    ) -> list[VerificationResult]:
        """Poll the registry until each package shows up at ``version``.

        Each package gets up to ``attempts`` queries, ``interval`` seconds
        apart. Running out of attempts is reported as ``timeout``, never
        raised; the caller decides whether that is fatal.

        Args:
            version: Version to look for. None means each package's own
                current version.
            names: Packages to check, defaults to all in topological order.
        """
        step(f"Verifying {version or 'current versions'} on the registry")
        results: list[VerificationResult] = []

        for name in names if names is not None else self.state.order:
            wanted = version or self.workspace.package(name).version
            status = VerificationStatus.TIMEOUT
            attempt = 0
            while attempt < attempts:
                attempt += 1
                if self._visible(name, wanted):
                    status = VerificationStatus.VERIFIED
                    break
                if attempt < attempts:
                    debug(f"{name}@{wanted} not visible yet (attempt {attempt})")
                    self.sleep(interval)

            results.append(
                VerificationResult(
                    name=name, version=wanted, status=status, attempts=attempt
                )
            )
            if status == VerificationStatus.VERIFIED:
                success(f"Verified {name}@{wanted}")
            else:
                warn(f"{name}@{wanted} not found after {attempt} attempts")

        return results

    def _visible(self, name: str, version: str) -> bool:
        """One registry query; a query that cannot run counts as a miss."""
        try:
            return self.registry.exists(name, version)
        except (MonorelError, OSError) as exc:
            debug(f"{name}@{version}: registry query failed: {exc}")
            return False

    def rollback(
        self,
        version: str,
        *,
        force: bool = False,
        unpublish: bool = False,
        dry_run: bool = False,
    ) -> list[RollbackRecord]:
        """Remove the release tag and, optionally, unpublish the packages.

        Every action is attempted and recorded on its own; one failure never
        stops the others.

        Raises:
            ForceRequiredError: If ``force`` is not set.
        """
        if not force:
            raise ForceRequiredError("Rollback requires --force flag")

        step(f"Rolling back {version}")
        tag = self.workspace.config.tag_for(version)
        records = [self._remove_tag(tag, dry_run)]

        if unpublish:
            # Dependents go first so nothing is left pointing at a removed package
            for name in reversed(self.state.order):
                records.append(self._unpublish_one(name, version, dry_run))

        for rec in records:
            line = f"{rec.action} {rec.target}: {rec.status.value}"
            if rec.message:
                line += f" ({rec.message})"
            if rec.status == RollbackStatus.FAILED:
                error(line)
            else:
                info(line)
        return records

    def _remove_tag(self, tag: str, dry_run: bool) -> RollbackRecord:
        if dry_run:
            return RollbackRecord(
                action="remove_tag", target=tag, status=RollbackStatus.DRY_RUN
            )
        try:
            self.vcs.remove_tag(tag)
        except (MonorelError, OSError) as exc:
            return RollbackRecord(
                action="remove_tag",
                target=tag,
                status=RollbackStatus.FAILED,
                message=str(exc),
            )
        return RollbackRecord(
            action="remove_tag", target=tag, status=RollbackStatus.SUCCESS
        )

    def _unpublish_one(self, name: str, version: str, dry_run: bool) -> RollbackRecord:
        def record(status: RollbackStatus, message: str = "") -> RollbackRecord:
            return RollbackRecord(
                action="unpublish", target=name, status=status, message=message
            )

        try:
            if not self.registry.exists(name, version):
                return record(RollbackStatus.NOT_FOUND)
            if dry_run:
                return record(RollbackStatus.DRY_RUN)
            try:
                self.registry.unpublish(name, version)
            except CommandError as exc:
                raise RollbackFailure(f"unpublish {name}@{version}: {exc}") from exc
        except (MonorelError, OSError) as exc:
            return record(RollbackStatus.FAILED, str(exc))
        return record(RollbackStatus.SUCCESS)


def print_publish_summary(state: ReleaseState) -> None:
    """Print which packages were published, skipped, dry-run or failed."""
    step("Release summary")
    for status in PublishStatus:
        names = state.by_status(status)
        info(f"{status.value}: {len(names)}" + (f" ({', '.join(names)})" if names else ""))
    if state.rollback_plan:
        info(f"rollback order if needed: {', '.join(state.rollback_plan)}")
