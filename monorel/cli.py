"""CLI entry point for monorel."""

from __future__ import annotations

import json
import math
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
from pydantic import BaseModel

from .build import BuildOrchestrator, print_summary
from .errors import MonorelError, PublishFailure, VerificationTimeout
from .models import PublishStatus, RollbackStatus, VerificationStatus
from .pipeline import bump_versions, health_report, print_status, run_release, sync_dependencies
from .publish import PublishOrchestrator, print_publish_summary
from .registry import CommandRegistry, Registry
from .runner import CommandRunner, SubprocessRunner
from .shell import set_verbose, success
from .vcs import GitRepository, Vcs
from .workspace import Workspace, load_workspace


class Options(BaseModel):
    root: Path
    verbose: bool = False
    dry_run: bool = False


def make_runner() -> CommandRunner:
    return SubprocessRunner()


def make_registry(ws: Workspace) -> Registry:
    return CommandRegistry(ws.config.commands, ws.config.registry, ws.root)


def make_vcs(ws: Workspace) -> Vcs:
    return GitRepository(ws.root, ws.config.remote)


@contextmanager
def _errors() -> Iterator[None]:
    """Turn monorel errors into a clean message and exit code 1."""
    try:
        yield
    except MonorelError as exc:
        raise click.ClickException(str(exc)) from exc


def _workspace(opts: Options) -> Workspace:
    with _errors():
        return load_workspace(opts.root)


def _publisher(ws: Workspace) -> PublishOrchestrator:
    return PublishOrchestrator(
        ws,
        make_runner(),
        make_registry(ws),
        make_vcs(ws),
        publish_delay=ws.config.publish_delay,
    )


dry_run_option = click.option(
    "--dry-run", is_flag=True, help="Report intended actions without changing anything."
)


@click.group()
@click.version_option(package_name="monorel")
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output.")
@dry_run_option
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Workspace root containing pyproject.toml.",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, dry_run: bool, root: Path) -> None:
    """Dependency-graph build and release orchestrator for monorepos."""
    set_verbose(verbose)
    ctx.obj = Options(root=root, verbose=verbose, dry_run=dry_run)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print a JSON health report.")
@click.pass_obj
def status(opts: Options, as_json: bool) -> None:
    """Show packages, build levels and script coverage."""
    ws = _workspace(opts)
    if as_json:
        click.echo(json.dumps(health_report(ws), indent=2))
    else:
        print_status(ws)


@cli.command("sync-deps")
@dry_run_option
@click.pass_obj
def sync_deps(opts: Options, dry_run: bool) -> None:
    """Report external version conflicts and align every package."""
    ws = _workspace(opts)
    with _errors():
        sync_dependencies(ws, dry_run=dry_run or opts.dry_run)


def _run_script(opts: Options, script: str, sequential: bool, coverage: bool = False) -> None:
    ws = _workspace(opts)
    orchestrator = BuildOrchestrator(
        ws,
        make_runner(),
        max_workers=ws.config.max_workers,
        dry_run=opts.dry_run,
    )
    results = orchestrator.run(script, sequential=sequential, coverage=coverage)
    print_summary(results, script)
    if not all(r.ok for r in results):
        raise click.ClickException(f"{script} failed")


@cli.command()
@click.option("--sequential", is_flag=True, help="Build one package at a time.")
@click.pass_obj
def build(opts: Options, sequential: bool) -> None:
    """Build every package in dependency order."""
    _run_script(opts, "build", sequential)


@cli.command()
@click.option("--sequential", is_flag=True, help="Test one package at a time.")
@click.option("--coverage", is_flag=True, help="Prefer test:coverage scripts.")
@click.pass_obj
def test(opts: Options, sequential: bool, coverage: bool) -> None:
    """Run every package's tests in dependency order."""
    _run_script(opts, "test", sequential, coverage)


@cli.command()
@click.argument("new_version")
@click.pass_obj
def version(opts: Options, new_version: str) -> None:
    """Set every package to NEW_VERSION and re-point internal deps."""
    ws = _workspace(opts)
    with _errors():
        bump_versions(ws, new_version, dry_run=opts.dry_run)


@cli.command()
@click.argument("bump", required=False)
@click.option("--skip-checks", is_flag=True, help="Skip the pre-release checks.")
@click.pass_obj
def release(opts: Options, bump: str | None, skip_checks: bool) -> None:
    """Bump, update the changelog, commit and tag.

    BUMP is patch, minor, major or an explicit version; defaults to what the
    commits since the last release suggest.
    """
    ws = _workspace(opts)
    with _errors():
        run_release(
            ws,
            make_vcs(ws),
            make_runner(),
            bump=bump,
            dry_run=opts.dry_run,
            skip_checks=skip_checks,
        )


@cli.command()
@dry_run_option
@click.option("--force", is_flag=True, help="Publish existing versions and keep going after failures.")
@click.option("--skip-version-check", is_flag=True, help="Don't ask the registry first.")
@click.option("--skip-checks", is_flag=True, help="Skip the pre-publish checks.")
@click.option("--verify", "verify_after", is_flag=True, help="Poll the registry afterwards.")
@click.pass_obj
def publish(
    opts: Options,
    dry_run: bool,
    force: bool,
    skip_version_check: bool,
    skip_checks: bool,
    verify_after: bool,
) -> None:
    """Publish packages to the registry in dependency order."""
    ws = _workspace(opts)
    publisher = _publisher(ws)
    dry_run = dry_run or opts.dry_run

    try:
        state = publisher.publish_all(
            force=force,
            dry_run=dry_run,
            skip_version_check=skip_version_check,
            skip_checks=skip_checks,
        )
    except PublishFailure as exc:
        if exc.state is not None:
            print_publish_summary(exc.state)
        raise click.ClickException(str(exc)) from exc
    except MonorelError as exc:
        raise click.ClickException(str(exc)) from exc
    print_publish_summary(state)

    published = state.by_status(PublishStatus.PUBLISHED)
    if verify_after and published:
        publisher.verify(
            names=published,
            attempts=ws.config.verify_attempts,
            interval=ws.config.verify_interval,
        )
    if state.by_status(PublishStatus.FAILED):
        raise click.ClickException("Some packages failed to publish")


@cli.command()
@click.argument("version")
@click.option("--timeout", type=click.IntRange(min=1), help="Give up after this many milliseconds per package.")
@click.pass_obj
def verify(opts: Options, version: str, timeout: int | None) -> None:
    """Check that every package is available on the registry at VERSION."""
    ws = _workspace(opts)
    interval = ws.config.verify_interval
    attempts = ws.config.verify_attempts
    if timeout is not None:
        seconds = timeout / 1000
        if interval > 0:
            attempts = max(1, math.ceil(seconds / interval))
        else:
            # No configured pause: spread the configured attempts over the timeout
            interval = seconds / attempts

    results = _publisher(ws).verify(version, attempts=attempts, interval=interval)
    missing = [r.name for r in results if r.status == VerificationStatus.TIMEOUT]
    with _errors():
        if missing:
            raise VerificationTimeout(version, missing)
    success(f"All {len(results)} packages verified")


@cli.command()
@click.argument("version")
@click.option("--force", is_flag=True, help="Required: confirm the rollback.")
@click.option("--unpublish", is_flag=True, help="Also unpublish VERSION from the registry.")
@click.pass_obj
def rollback(opts: Options, version: str, force: bool, unpublish: bool) -> None:
    """Remove the release tag for VERSION and optionally unpublish it."""
    ws = _workspace(opts)
    with _errors():
        records = _publisher(ws).rollback(
            version, force=force, unpublish=unpublish, dry_run=opts.dry_run
        )
    if any(r.status == RollbackStatus.FAILED for r in records):
        raise click.ClickException("Rollback finished with failures")
