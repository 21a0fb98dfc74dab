"""Package manifest reading and writing.

Each workspace package carries a ``package.toml`` manifest::

    [package]
    name = "tools"
    version = "1.2.0"

    [dependencies]
    core = "^1.2.0"

    [dev-dependencies]
    pytest = "^8.0.0"

    [peer-dependencies]

    [scripts]
    build = "python -m build"
    test = "pytest"

Uses tomlkit to preserve formatting and comments when manifests are rewritten.
This keeps version bumps and dependency syncs readable in diffs.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, cast

import tomlkit

from .models import Package

# Package attribute → manifest table.
SECTIONS = {
    "dependencies": "dependencies",
    "dev_dependencies": "dev-dependencies",
    "peer_dependencies": "peer-dependencies",
}


def load_manifest(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a manifest file.

    Returns a TOMLDocument that preserves formatting when modified and saved.
    """
    return tomlkit.parse(path.read_text())


def save_manifest(path: Path, doc: tomlkit.TOMLDocument) -> None:
    """Save a TOMLDocument back to disk, preserving original formatting."""
    path.write_text(tomlkit.dumps(doc))


def get_package_name(doc: tomlkit.TOMLDocument, fallback: str) -> str:
    """Extract [package].name, or ``fallback`` if it is not set."""
    return str(doc.get("package", {}).get("name", fallback))


def get_package_version(doc: tomlkit.TOMLDocument) -> str:
    """Extract [package].version, defaulting to '0.0.0'."""
    return str(doc.get("package", {}).get("version", "0.0.0"))


def get_string_table(doc: tomlkit.TOMLDocument, table: str) -> dict[str, str]:
    """Read a flat ``name = "value"`` table as a plain dict."""
    return {str(k): str(v) for k, v in doc.get(table, {}).items()}


def read_package(package_dir: Path, manifest_name: str) -> Package:
    """Build a Package from the manifest inside ``package_dir``."""
    doc = load_manifest(package_dir / manifest_name)
    return Package(
        name=get_package_name(doc, package_dir.name),
        version=get_package_version(doc),
        path=package_dir,
        scripts=get_string_table(doc, "scripts"),
        **{field: get_string_table(doc, table) for field, table in SECTIONS.items()},
    )


def rewrite_manifest(
    package: Package,
    manifest_name: str,
    *,
    version: str | None = None,
    ranges: dict[str, dict[str, str]] | None = None,
) -> None:
    """Update a package's version and dependency ranges on disk.

    Only keys that already exist are rewritten; nothing is added or removed.

    Args:
        package: Package whose manifest is rewritten.
        manifest_name: Manifest file name inside the package directory.
        version: New [package].version, if it changes.
        ranges: Package attribute (e.g. "dev_dependencies") → dependency
            name → new range.
    """
    path = package.path / manifest_name
    doc = load_manifest(path)

    if version is not None:
        # Cast needed because tomlkit types are complex unions
        section = cast(dict[str, Any], doc.setdefault("package", tomlkit.table()))
        section["version"] = version

    for field, updates in (ranges or {}).items():
        table = doc.get(SECTIONS[field])
        if not isinstance(table, dict):
            continue
        for dep, rng in updates.items():
            if dep in table:
                table[dep] = rng

    save_manifest(path, doc)
