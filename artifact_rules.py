#!/usr/bin/env python3
"""
Artifact rules for Kenosis

Maps a directory name plus the names found beside it to the project type
whose build output or dependency cache it is. The rule table is static
data; extra rules can be loaded from a TOML file.
"""

import fnmatch
import tomllib
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


class ProjectType(Enum):
    """Supported ecosystems, declared in rule priority order"""

    RUST = "rust"
    NODE = "node"
    PYTHON = "python"
    MAVEN = "maven"
    GRADLE = "gradle"
    DOTNET = "dotnet"
    NEXTJS = "nextjs"
    NUXTJS = "nuxtjs"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def from_name(cls, name: str) -> "ProjectType":
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            known = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown project type {name!r} (known: {known})") from None


_LABELS = {
    ProjectType.RUST: "Rust",
    ProjectType.NODE: "Node.js",
    ProjectType.PYTHON: "Python",
    ProjectType.MAVEN: "Java (Maven)",
    ProjectType.GRADLE: "Gradle",
    ProjectType.DOTNET: ".NET",
    ProjectType.NEXTJS: "Next.js",
    ProjectType.NUXTJS: "Nuxt.js",
}

_GLOB_CHARS = frozenset("*?[")


@dataclass(frozen=True)
class ArtifactRule:
    marker: str
    project_type: ProjectType
    siblings: tuple[str, ...] = ()
    description: str = ""

    def confirmed_by(self, listing: frozenset[str]) -> bool:
        """Return True if any confirming sibling is present in *listing*."""
        if not self.siblings:
            return True
        for pattern in self.siblings:
            if _GLOB_CHARS.isdisjoint(pattern):
                if pattern in listing:
                    return True
            elif any(fnmatch.fnmatchcase(name, pattern) for name in listing):
                return True
        return False


class RuleFileError(ValueError):
    """Raised when a rules file cannot be parsed into rules"""


# ---------------------------------------------------------------------------
# Default rule table
# ---------------------------------------------------------------------------

_GRADLE_FILES = ("build.gradle", "build.gradle.kts")
_DOTNET_FILES = ("*.csproj", "*.fsproj", "*.sln")

DEFAULT_RULES: tuple[ArtifactRule, ...] = (
    ArtifactRule("target", ProjectType.RUST, ("Cargo.toml",), "Cargo build output"),
    ArtifactRule("node_modules", ProjectType.NODE, (), "npm / yarn / pnpm dependencies"),
    ArtifactRule("__pycache__", ProjectType.PYTHON, (), "Python bytecode cache"),
    ArtifactRule(".venv", ProjectType.PYTHON, (), "Python virtual environment"),
    ArtifactRule("venv", ProjectType.PYTHON, (), "Python virtual environment"),
    ArtifactRule(".pytest_cache", ProjectType.PYTHON, (), "pytest cache"),
    ArtifactRule(".mypy_cache", ProjectType.PYTHON, (), "mypy cache"),
    ArtifactRule(".ruff_cache", ProjectType.PYTHON, (), "ruff cache"),
    ArtifactRule(".tox", ProjectType.PYTHON, (), "tox environments"),
    ArtifactRule("target", ProjectType.MAVEN, ("pom.xml",), "Maven build output"),
    ArtifactRule("build", ProjectType.MAVEN, ("pom.xml",), "Maven build output"),
    ArtifactRule("build", ProjectType.GRADLE, _GRADLE_FILES, "Gradle build output"),
    ArtifactRule(".gradle", ProjectType.GRADLE, _GRADLE_FILES, "Gradle project cache"),
    ArtifactRule("bin", ProjectType.DOTNET, _DOTNET_FILES, ".NET build output"),
    ArtifactRule("obj", ProjectType.DOTNET, _DOTNET_FILES, ".NET intermediate output"),
    ArtifactRule(".next", ProjectType.NEXTJS, (), "Next.js build output"),
    ArtifactRule(".nuxt", ProjectType.NUXTJS, (), "Nuxt.js build output"),
)


# ---------------------------------------------------------------------------
# Rules loading from TOML
# ---------------------------------------------------------------------------


def load_rules(path: Path) -> list[ArtifactRule]:
    """Load additional artifact rules from a TOML file.

    Expected layout::

        [[rules]]
        marker = "dist"
        type = "node"
        siblings = ["package.json"]
        description = "Bundler output"
    """
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise RuleFileError(f"{path}: {e}") from e
    except OSError as e:
        raise RuleFileError(f"{path}: {e.strerror or e}") from e

    rules: list[ArtifactRule] = []
    for index, entry in enumerate(data.get("rules", []), 1):
        if not isinstance(entry, dict):
            raise RuleFileError(f"{path}: rule #{index} is not a table")
        try:
            marker = entry["marker"]
            project_type = ProjectType.from_name(entry["type"])
        except KeyError as e:
            raise RuleFileError(f"{path}: rule #{index} is missing {e.args[0]!r}") from None
        except ValueError as e:
            raise RuleFileError(f"{path}: rule #{index}: {e}") from None

        siblings = entry.get("siblings", [])
        if isinstance(siblings, str):
            siblings = [siblings]
        if not isinstance(siblings, list) or not all(isinstance(s, str) for s in siblings):
            raise RuleFileError(f"{path}: rule #{index} siblings must be a list of strings")
        if not isinstance(marker, str) or not marker or "/" in marker or "\\" in marker:
            raise RuleFileError(f"{path}: rule #{index} has an invalid marker {marker!r}")

        rules.append(
            ArtifactRule(
                marker=marker,
                project_type=project_type,
                siblings=tuple(siblings),
                description=entry.get("description", ""),
            )
        )
    return rules


# ---------------------------------------------------------------------------
# Matcher
# ---------------------------------------------------------------------------


class Matcher:
    """Classifies directory names against the active subset of a rule table.

    Rules sharing a marker are tried in table order; the first one whose
    confirming sibling is present wins. Rules for disabled project types
    never participate.
    """

    def __init__(
        self,
        rules: Iterable[ArtifactRule] = DEFAULT_RULES,
        enabled: Optional[Iterable[ProjectType]] = None,
    ):
        self.enabled = frozenset(ProjectType) if enabled is None else frozenset(enabled)
        self._by_marker: dict[str, list[ArtifactRule]] = {}
        for rule in rules:
            if rule.project_type in self.enabled:
                self._by_marker.setdefault(rule.marker, []).append(rule)

    def match(self, name: str, parent_listing: frozenset[str]) -> Optional[ArtifactRule]:
        for rule in self._by_marker.get(name, ()):
            if rule.confirmed_by(parent_listing):
                return rule
        return None

    def classify(self, name: str, parent_listing: frozenset[str]) -> Optional[ProjectType]:
        rule = self.match(name, parent_listing)
        return rule.project_type if rule else None
