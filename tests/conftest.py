"""
Shared fixtures for peer-dep-check tests.
Builds throwaway node_modules trees and in-memory collaborators.
"""

import json
import os
from io import StringIO
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from rich.console import Console

from peer_dep_check.cache_manager import reset_cache_manager
from peer_dep_check.cli_config import reset_config
from peer_dep_check.registry_clients import RegistryError
from peer_dep_check.reporting import PeerDependencyReporter


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Fresh config, cache and environment for every test."""
    for key in list(os.environ):
        if key.startswith("PEER_DEP_CHECK_") or key in ("NPM_TOKEN", "NPM_AUTH_TOKEN"):
            monkeypatch.delenv(key, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))

    reset_config()
    reset_cache_manager()
    yield
    reset_config()
    reset_cache_manager()


def write_package(directory: Path, manifest: Dict) -> Path:
    """Write a package.json into directory, creating it if needed."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "package.json"
    path.write_text(json.dumps(manifest, indent=2))
    return path


@pytest.fixture
def project_dir(tmp_path):
    """
    A small installed project:

    app (peer: react ^18)
    ├── lib-a 1.2.0 (peers: react >=17, react-dom >=17) -> lib-b
    │   └── lib-b 0.3.0 (peers: react ^16, vue optional)
    ├── react 18.2.0
    └── tool 2.0.0 [dev] (peer: typescript >=4)
    """
    root = tmp_path / "app"
    write_package(
        root,
        {
            "name": "app",
            "version": "1.0.0",
            "dependencies": {"lib-a": "^1.0.0", "react": "^18.0.0"},
            "devDependencies": {"tool": "^2.0.0"},
            "peerDependencies": {"react": "^18.0.0"},
        },
    )
    modules = root / "node_modules"
    write_package(
        modules / "lib-a",
        {
            "name": "lib-a",
            "version": "1.2.0",
            "dependencies": {"lib-b": "^0.3.0"},
            "peerDependencies": {"react": ">=17", "react-dom": ">=17"},
        },
    )
    write_package(
        modules / "lib-b",
        {
            "name": "lib-b",
            "version": "0.3.0",
            "peerDependencies": {"react": "^16.0.0", "vue": "^3.0.0"},
            "peerDependenciesMeta": {"vue": {"optional": True}},
        },
    )
    write_package(modules / "react", {"name": "react", "version": "18.2.0"})
    write_package(
        modules / "tool",
        {"name": "tool", "version": "2.0.0", "peerDependencies": {"typescript": ">=4"}},
    )
    return root


class FakeRegistry:
    """Version source backed by a dict; records every lookup."""

    def __init__(self, versions: Dict[str, List[str]], failing: Optional[List[str]] = None):
        self.versions = versions
        self.failing = failing or []
        self.lookups: List[str] = []

    async def get_available_versions(self, package_name: str) -> List[str]:
        self.lookups.append(package_name)
        if package_name in self.failing:
            raise RegistryError(package_name, "Network error: connection refused")
        return list(self.versions.get(package_name, []))


@pytest.fixture
def fake_registry():
    return FakeRegistry


class CapturingReporter(PeerDependencyReporter):
    """Reporter writing to in-memory buffers."""

    def __init__(self):
        self.out = StringIO()
        self.err = StringIO()
        super().__init__(
            console=Console(file=self.out, width=200),
            err_console=Console(file=self.err, width=200),
        )

    @property
    def output(self) -> str:
        return self.out.getvalue()

    @property
    def errors(self) -> str:
        return self.err.getvalue()


@pytest.fixture
def reporter():
    return CapturingReporter()
