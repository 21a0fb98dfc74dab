"""Workspace configuration.

Read from ``[tool.monorel]`` in the workspace root ``pyproject.toml``::

    [tool.monorel]
    members = ["packages/*"]
    registry = "https://registry.npmjs.org/"
    publish-delay = 2.0

    [tool.monorel.commands]
    publish = "npm publish --access public --registry {registry}"

Every key is optional. A missing table means all defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, cast

import tomlkit
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import WorkspaceError


def _kebab(name: str) -> str:
    return name.replace("_", "-")


class RegistryCommands(BaseModel):
    """Command templates for talking to the package registry.

    Placeholders: ``{name}``, ``{version}`` and ``{registry}``. ``exists`` runs
    in the workspace root and must print the version when it is published;
    ``pack`` and ``publish`` run inside the package directory. ``auth`` runs
    in the workspace root and must fail when there are no credentials.
    """

    model_config = ConfigDict(extra="forbid")

    exists: str = "npm view {name}@{version} version --registry {registry}"
    pack: str = "npm pack --dry-run"
    publish: str = "npm publish --access public --registry {registry}"
    unpublish: str = "npm unpublish {name}@{version} --registry {registry}"
    auth: str = "npm whoami --registry {registry}"


class WorkspaceConfig(BaseModel):
    model_config = ConfigDict(
        alias_generator=_kebab, populate_by_name=True, extra="forbid"
    )

    members: list[str] = Field(default_factory=lambda: ["packages/*"])
    manifest: str = "package.toml"
    version: str | None = None
    registry: str = "https://registry.npmjs.org/"
    publish_delay: float = Field(default=2.0, ge=0)
    verify_attempts: int = Field(default=10, ge=1)
    verify_interval: float = Field(default=3.0, ge=0)
    max_workers: int | None = Field(default=None, ge=1)
    changelog: str = "CHANGELOG.md"
    tag_prefix: str = "v"
    remote: str = "origin"
    release_branches: list[str] = Field(default_factory=lambda: ["main", "master"])
    commands: RegistryCommands = Field(default_factory=RegistryCommands)

    def tag_for(self, version: str) -> str:
        return f"{self.tag_prefix}{version}"


def load_pyproject(path: Path) -> tomlkit.TOMLDocument:
    return tomlkit.parse(path.read_text())


def save_pyproject(path: Path, doc: tomlkit.TOMLDocument) -> None:
    path.write_text(tomlkit.dumps(doc))


def load_config(root: Path) -> WorkspaceConfig:
    """Load and validate ``[tool.monorel]`` from ``root/pyproject.toml``.

    Raises:
        WorkspaceError: If pyproject.toml is missing or the table is invalid.
    """
    pyproject = root / "pyproject.toml"
    if not pyproject.exists():
        raise WorkspaceError(f"No pyproject.toml found in {root}")

    table = load_pyproject(pyproject).get("tool", {}).get("monorel", {})
    try:
        # unwrap() turns tomlkit containers into plain dicts and lists
        return WorkspaceConfig.model_validate(table.unwrap() if table else {})
    except ValidationError as exc:
        raise WorkspaceError(f"Invalid [tool.monorel] configuration:\n{exc}") from exc


def write_workspace_version(root: Path, version: str) -> None:
    """Record the workspace release version in ``[tool.monorel].version``."""
    pyproject = root / "pyproject.toml"
    doc = load_pyproject(pyproject)
    tool = cast(dict[str, Any], doc.setdefault("tool", tomlkit.table()))
    section = cast(dict[str, Any], tool.setdefault("monorel", tomlkit.table()))
    section["version"] = version
    save_pyproject(pyproject, doc)
