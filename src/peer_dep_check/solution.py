"""
Resolution engine: finds one version per conflicting package that satisfies
every peerDependency range declared for it anywhere in the project.

Each package is resolved on its own. Whether the chosen version brings new
peer requirements of its own is only discovered on the next check pass.
"""

from typing import List, Optional, Protocol, Sequence

from semantic_version import NpmSpec, Version

from .dependency import Dependency, Resolution, ResolutionType, normalize_range
from .error_handling import ErrorCategory, get_error_handler
from .registry_clients import RegistryError
from .structured_logging import log_resolution


class VersionSource(Protocol):
    """Anything that can list the published versions of a package."""

    async def get_available_versions(self, package_name: str) -> List[str]:
        ...


def conflicting_ranges(package_name: str, all_deps: Sequence[Dependency]) -> List[str]:
    """Distinct ranges declared for package_name, in first-seen order."""
    ranges: List[str] = []
    for dep in all_deps:
        if dep.name == package_name and dep.version not in ranges:
            ranges.append(dep.version)
    return ranges


def _parse_spec(version_range: str) -> Optional[NpmSpec]:
    try:
        return NpmSpec(normalize_range(version_range))
    except ValueError:
        return None


def _parse_versions(available_versions: Sequence[str]) -> List[Version]:
    parsed = []
    for raw in available_versions:
        try:
            parsed.append(Version(raw))
        except ValueError:
            continue
    return parsed


def select_highest_satisfying(
    available_versions: Sequence[str], ranges: Sequence[str]
) -> Optional[str]:
    """
    Pick the highest version matching every range.

    A range that does not parse can never be satisfied, so it makes the
    whole set unsatisfiable.
    """
    specs = [_parse_spec(version_range) for version_range in ranges]
    if any(spec is None for spec in specs):
        return None

    for version in sorted(_parse_versions(available_versions), reverse=True):
        if all(spec.match(version) for spec in specs):
            return str(version)
    return None


def _resolution_type(problem: Dependency) -> ResolutionType:
    if problem.installed_version:
        return ResolutionType.UPGRADE
    if problem.is_peer_dev_dependency:
        return ResolutionType.DEV_INSTALL
    return ResolutionType.INSTALL


def unique_problems(problems: Sequence[Dependency]) -> List[Dependency]:
    """First problem per package name, in input order."""
    seen = set()
    unique = []
    for problem in problems:
        if problem.name not in seen:
            seen.add(problem.name)
            unique.append(problem)
    return unique


async def find_possible_resolutions(
    problems: Sequence[Dependency],
    all_nested_peer_dependencies: Sequence[Dependency],
    version_source: VersionSource,
) -> List[Resolution]:
    """
    Produce one Resolution per distinct problem package name.

    The constraint set for a package is every range any depender in the
    project declares for it, not only the ranges of the failing edges.

    Args:
        problems: Unsatisfied, non-yalc records
        all_nested_peer_dependencies: Every gathered record of this pass
        version_source: Lists published versions (usually the registry client)

    Returns:
        List[Resolution]: In the order the package names first appear in problems
    """
    resolutions = []

    for problem in unique_problems(problems):
        ranges = conflicting_ranges(problem.name, all_nested_peer_dependencies)
        resolution_type = _resolution_type(problem)

        try:
            available_versions = await version_source.get_available_versions(problem.name)
        except RegistryError as e:
            get_error_handler().error(
                ErrorCategory.RESOLUTION,
                f"Could not list versions of {problem.name}",
                "solution",
                "find_possible_resolutions",
                exception=e,
                details={"package_name": problem.name},
            )
            resolutions.append(
                Resolution(problem=problem, resolution_type=resolution_type, error=str(e))
            )
            continue

        resolution = select_highest_satisfying(available_versions, ranges)
        log_resolution(problem.name, ranges, resolution)
        resolutions.append(
            Resolution(problem=problem, resolution=resolution, resolution_type=resolution_type)
        )

    return resolutions
