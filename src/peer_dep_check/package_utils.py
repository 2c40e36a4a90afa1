"""
Project inspection: gathers peer-dependency edges from an installed tree.

Walks the dependency graph starting at the project's package.json, resolving
every package through node_modules the way Node does, and records one
Dependency per declared peerDependency of each visited package.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from .dependency import Dependency, is_same_dep
from .error_handling import describe_path, log_parsing_error
from .structured_logging import get_gatherer_logger

PackageJson = Dict[str, Any]


@dataclass
class CheckOptions:
    """Options for one run of the check loop."""

    project_root: str = "."
    verbose: bool = False
    order_by: str = "depender"
    install: bool = False
    find_solutions: bool = False
    ignore: List[str] = field(default_factory=list)
    include_dev: bool = True
    run_only_on_root_dependencies: bool = False
    package_manager: Optional[str] = None


def read_package_json(path: Path) -> PackageJson:
    """
    Read and validate one package.json.

    Raises:
        ValueError: If the file cannot be read or is not a JSON object
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON format in {path}: {e}")
    except OSError as e:
        raise ValueError(f"Cannot read {path}: {e}")

    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object")
    return data


def _string_map(data: PackageJson, key: str) -> Dict[str, str]:
    """A name -> range section, dropping entries that are not strings."""
    section = data.get(key)
    if not isinstance(section, dict):
        return {}
    return {name: value for name, value in section.items() if isinstance(value, str)}


def _is_optional_peer(data: PackageJson, peer_name: str) -> bool:
    meta = data.get("peerDependenciesMeta")
    if not isinstance(meta, dict):
        return False
    entry = meta.get(peer_name)
    return isinstance(entry, dict) and bool(entry.get("optional"))


class ProjectInspector:
    """
    Reads an installed node_modules tree.

    Implements both collaborators the check loop needs: gathering the full
    list of peer-dependency edges, and looking up the installed version of a
    package as seen from the project root.
    """

    def __init__(self, options: CheckOptions):
        self.options = options
        self.project_root = Path(options.project_root).resolve()

    def root_package_json(self) -> PackageJson:
        path = self.project_root / "package.json"
        if not path.is_file():
            raise ValueError(f"No package.json found in {self.project_root}")
        return read_package_json(path)

    def resolve_package_dir(self, package_name: str, from_dir: Path) -> Optional[Path]:
        """Node module lookup: node_modules/<name> in from_dir, then each parent."""
        for directory in [from_dir, *from_dir.parents]:
            if directory.name == "node_modules":
                continue
            candidate = directory / "node_modules" / package_name
            if (candidate / "package.json").is_file():
                return candidate
        return None

    def get_installed_version(self, package_name: str) -> Optional[str]:
        """Version of package_name as resolved from the project root, if any."""
        package_dir = self.resolve_package_dir(package_name, self.project_root)
        if package_dir is None:
            return None
        try:
            version = read_package_json(package_dir / "package.json").get("version")
        except ValueError as e:
            log_parsing_error(
                f"Could not read installed version of {package_name}",
                "package_utils",
                "get_installed_version",
                file_path=describe_path(package_dir / "package.json"),
                exception=e,
            )
            return None
        return version if isinstance(version, str) else None

    def classify(self, dep: Dependency) -> Dependency:
        """Annotate a record with the installed version of its dependee."""
        return dep.with_installed_version(self.get_installed_version(dep.name))

    def _root_dependency_names(self, root: PackageJson) -> List[str]:
        sections = ["dependencies", "optionalDependencies"]
        if self.options.include_dev:
            sections.append("devDependencies")

        names: List[str] = []
        for section in sections:
            for name in _string_map(root, section):
                if name not in names:
                    names.append(name)
        return names

    def _walk_packages(self, root: PackageJson) -> Iterator[Tuple[Path, PackageJson]]:
        """Yield every installed package reachable from the root, once each."""
        visited: Set[Path] = set()
        queue: List[Tuple[str, Path]] = [
            (name, self.project_root) for name in self._root_dependency_names(root)
        ]

        while queue:
            name, from_dir = queue.pop(0)
            package_dir = self.resolve_package_dir(name, from_dir)
            if package_dir is None:
                continue

            real_dir = package_dir.resolve()
            if real_dir in visited:
                continue
            visited.add(real_dir)

            manifest_path = package_dir / "package.json"
            try:
                data = read_package_json(manifest_path)
            except ValueError as e:
                log_parsing_error(
                    "Skipping unreadable package manifest",
                    "package_utils",
                    "_walk_packages",
                    file_path=describe_path(manifest_path),
                    exception=e,
                )
                continue

            yield package_dir, data

            if self.options.run_only_on_root_dependencies:
                continue
            for child in list(_string_map(data, "dependencies")) + list(
                _string_map(data, "optionalDependencies")
            ):
                queue.append((child, real_dir))

    def _peer_edges(
        self, data: PackageJson, fallback_name: str, is_root: bool
    ) -> Iterator[Dependency]:
        depender = data.get("name") if isinstance(data.get("name"), str) else fallback_name
        depender_version = data.get("version") if isinstance(data.get("version"), str) else ""

        for peer_name, peer_range in _string_map(data, "peerDependencies").items():
            if peer_name in self.options.ignore:
                continue
            if _is_optional_peer(data, peer_name) and self.get_installed_version(peer_name) is None:
                continue
            yield Dependency(
                name=peer_name,
                version=peer_range,
                depender=depender or fallback_name,
                depender_version=depender_version,
                is_peer_dev_dependency=is_root,
            )

    def gather_peer_dependencies(self) -> List[Dependency]:
        """
        Collect every declared peer-dependency edge in the project.

        Edges are returned whether or not they are satisfied, deduplicated by
        (name, depender, version), in discovery order.

        Raises:
            ValueError: If the project root has no readable package.json
        """
        root = self.root_package_json()
        gathered: List[Dependency] = []

        def add(dep: Dependency) -> None:
            if not any(is_same_dep(existing, dep) for existing in gathered):
                gathered.append(dep)

        for dep in self._peer_edges(root, self.project_root.name, is_root=True):
            add(dep)

        for package_dir, data in self._walk_packages(root):
            for dep in self._peer_edges(data, package_dir.name, is_root=False):
                add(dep)

        get_gatherer_logger().debug(
            "peer_dependencies_gathered",
            total_edges=len(gathered),
            project_root=str(self.project_root),
        )
        return gathered

    def get_all_nested_peer_dependencies(self) -> List[Dependency]:
        """Gather and classify in one pass."""
        return [self.classify(dep) for dep in self.gather_peer_dependencies()]
