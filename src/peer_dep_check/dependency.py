import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from semantic_version import NpmSpec, Version

YALC_VERSION_PATTERN = re.compile(r"-[a-f0-9]+-yalc$")

# npm accepts whitespace between an operator and its version: ">= 16.8.0"
OPERATOR_SPACE_PATTERN = re.compile(r"(\^|~|[<>]=?|=)\s+")


def is_yalc_version(installed_version: Optional[str]) -> bool:
    """True if the version string was produced by a yalc local install."""
    if not installed_version:
        return False
    return YALC_VERSION_PATTERN.search(installed_version) is not None


def normalize_range(version_range: Optional[str]) -> str:
    """Range text as NpmSpec parses it; empty means any version."""
    return OPERATOR_SPACE_PATTERN.sub(r"\1", (version_range or "").strip()) or "*"


def semver_satisfies(installed_version: Optional[str], version_range: str) -> bool:
    """
    Check an installed version against an npm-style semver range.

    Never raises: a missing version, an unparseable version or a malformed
    range all count as not satisfying.
    """
    if not installed_version:
        return False

    try:
        spec = NpmSpec(normalize_range(version_range))
        return spec.match(Version(installed_version.strip().lstrip("v=")))
    except ValueError:
        return False


@dataclass(frozen=True)
class Dependency:
    """One declared peer-dependency edge: depender requires name at version."""

    name: str
    version: str
    depender: str
    depender_version: str = ""
    installed_version: Optional[str] = None
    is_peer_dev_dependency: bool = False

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise ValueError("Dependency name must be a non-empty string")
        if not isinstance(self.depender, str) or not self.depender:
            raise ValueError("Dependency depender must be a non-empty string")
        if not isinstance(self.version, str):
            raise ValueError(
                f"Version range for {self.name} must be a string, "
                f"got {type(self.version).__name__}"
            )

    @property
    def semver_satisfies(self) -> bool:
        return semver_satisfies(self.installed_version, self.version)

    @property
    def is_yalc(self) -> bool:
        return is_yalc_version(self.installed_version)

    @property
    def is_problem(self) -> bool:
        """Unsatisfied and not covered by a yalc install."""
        return not self.semver_satisfies and not self.is_yalc

    def with_installed_version(self, installed_version: Optional[str]) -> "Dependency":
        """Return an annotated copy carrying the installed version of name."""
        return replace(self, installed_version=installed_version)


def is_same_dep(a: Dependency, b: Dependency) -> bool:
    """Two records describe the same logical edge."""
    return a.name == b.name and a.depender == b.depender and a.version == b.version


class ResolutionType(Enum):
    """How a resolved version gets into the project."""

    UPGRADE = "upgrade"  # Installed, but at a non-matching version
    INSTALL = "install"  # Not installed at all
    DEV_INSTALL = "dev_install"  # Not installed, required by the project root


@dataclass(frozen=True)
class Resolution:
    """Outcome of looking for one version of a conflicting package."""

    problem: Dependency
    resolution: Optional[str] = None
    resolution_type: ResolutionType = ResolutionType.INSTALL
    error: Optional[str] = None

    @property
    def has_solution(self) -> bool:
        return self.resolution is not None

    @property
    def install_spec(self) -> str:
        """name@version as understood by every supported package manager."""
        if self.resolution is None:
            raise ValueError(f"No resolution for {self.problem.name}")
        return f"{self.problem.name}@{self.resolution}"
