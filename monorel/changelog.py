"""Changelog generation from conventional commits.

Commits since the last release tag are classified by their conventional
commit prefix (``feat:``, ``fix(scope):``, ``refactor!:`` ...) and rendered
as a markdown entry that is prepended to the changelog, newest first.
"""

from __future__ import annotations

import re
from datetime import date
from pathlib import Path

from pydantic import BaseModel, Field

CHANGELOG_HEADER = "# Changelog\n"

_CONVENTIONAL = re.compile(
    r"^(feat|fix|docs|style|refactor|perf|test|chore|ci|build)(\(.+\))?(!)?: (.+)$"
)


class Commit(BaseModel):
    hash: str
    type: str = "other"
    scope: str | None = None
    breaking: bool = False
    description: str


class ChangeAnalysis(BaseModel):
    breaking: list[Commit] = Field(default_factory=list)
    features: list[Commit] = Field(default_factory=list)
    fixes: list[Commit] = Field(default_factory=list)
    other: list[Commit] = Field(default_factory=list)
    suggested_bump: str = "patch"

    @property
    def total(self) -> int:
        return len(self.breaking) + len(self.features) + len(self.fixes) + len(self.other)


def parse_commit(line: str) -> Commit:
    """Parse one ``git log --oneline`` line."""
    hash_, _, message = line.partition(" ")
    match = _CONVENTIONAL.match(message)
    if not match:
        return Commit(hash=hash_, description=message)

    type_, scope, bang, description = match.groups()
    return Commit(
        hash=hash_,
        type=type_,
        scope=scope[1:-1] if scope else None,
        breaking=bool(bang) or "BREAKING CHANGE" in message,
        description=description,
    )


def analyze_commits(lines: list[str]) -> ChangeAnalysis:
    """Group commits and suggest a bump: major > minor > patch."""
    analysis = ChangeAnalysis()
    for line in lines:
        commit = parse_commit(line)
        if commit.breaking or "BREAKING CHANGE" in commit.description:
            analysis.breaking.append(commit)
            analysis.suggested_bump = "major"
        elif commit.type == "feat":
            analysis.features.append(commit)
            if analysis.suggested_bump == "patch":
                analysis.suggested_bump = "minor"
        elif commit.type == "fix":
            analysis.fixes.append(commit)
        else:
            analysis.other.append(commit)
    return analysis


def render_entry(analysis: ChangeAnalysis, version: str, on: date | None = None) -> str:
    """Render one changelog entry for ``version``."""
    day = (on or date.today()).isoformat()
    lines = [f"## [{version}] - {day}", ""]

    sections = [
        ("BREAKING CHANGES", analysis.breaking),
        ("Features", analysis.features),
        ("Bug Fixes", analysis.fixes),
        ("Other Changes", analysis.other),
    ]
    for title, commits in sections:
        if not commits:
            continue
        lines.append(f"### {title}")
        lines.append("")
        for commit in commits:
            scope = f"**{commit.scope}**: " if commit.scope else ""
            lines.append(f"- {scope}{commit.description} ({commit.hash})")
        lines.append("")

    if analysis.total == 0:
        lines.extend(["No changes recorded.", ""])
    return "\n".join(lines)


def prepend_entry(path: Path, entry: str) -> None:
    """Insert ``entry`` at the top of the changelog, below its header."""
    existing = path.read_text() if path.exists() else ""
    if existing.startswith(CHANGELOG_HEADER):
        existing = existing[len(CHANGELOG_HEADER) :].lstrip("\n")
    body = entry.rstrip("\n") + "\n"
    if existing:
        body += "\n" + existing
    path.write_text(f"{CHANGELOG_HEADER}\n{body}")
