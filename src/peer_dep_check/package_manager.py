"""
Package-manager integration: turns resolutions into install commands and
runs them.
"""

import asyncio
import shlex
import time
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

from .dependency import Resolution, ResolutionType
from .error_handling import ErrorCategory, get_error_handler
from .structured_logging import log_install_command


class PackageManager(Enum):
    NPM = "npm"
    YARN = "yarn"
    PNPM = "pnpm"

    @classmethod
    def from_name(cls, name: str) -> "PackageManager":
        try:
            return cls(name.lower())
        except ValueError:
            choices = ", ".join(pm.value for pm in cls)
            raise ValueError(f"Unsupported package manager: {name} (expected one of: {choices})")


# (regular install prefix, dev install prefix)
INSTALL_PREFIXES = {
    PackageManager.NPM: ("npm install", "npm install --save-dev"),
    PackageManager.YARN: ("yarn add", "yarn add -D"),
    PackageManager.PNPM: ("pnpm add", "pnpm add -D"),
}

LOCKFILES = (
    ("yarn.lock", PackageManager.YARN),
    ("pnpm-lock.yaml", PackageManager.PNPM),
)


def detect_package_manager(project_root: str = ".") -> PackageManager:
    """Guess the package manager from the lockfile in the project root."""
    root = Path(project_root)
    for lockfile, package_manager in LOCKFILES:
        if (root / lockfile).is_file():
            return package_manager
    return PackageManager.NPM


def get_command_lines(package_manager: str, resolutions: Sequence[Resolution]) -> List[str]:
    """
    Build the install commands for every resolution that has a version.

    Upgrades and plain installs share one command; packages the project root
    itself requires go into a second, dev-dependency command.

    Raises:
        ValueError: If package_manager is not supported
    """
    regular_prefix, dev_prefix = INSTALL_PREFIXES[PackageManager.from_name(package_manager)]

    installs = [
        r.install_spec
        for r in resolutions
        if r.has_solution and r.resolution_type != ResolutionType.DEV_INSTALL
    ]
    dev_installs = [
        r.install_spec
        for r in resolutions
        if r.has_solution and r.resolution_type == ResolutionType.DEV_INSTALL
    ]

    commands = []
    if installs:
        commands.append(" ".join([regular_prefix, *map(shlex.quote, installs)]))
    if dev_installs:
        commands.append(" ".join([dev_prefix, *map(shlex.quote, dev_installs)]))
    return commands


async def run_command(command: str, cwd: Optional[str] = None) -> int:
    """
    Run one install command and wait for it to finish.

    Output goes straight to the terminal. A non-zero exit status is logged
    and returned, not raised: the next check pass sees whatever state the
    command left behind.
    """
    args = shlex.split(command)
    if not args:
        raise ValueError("Invalid command")

    start_time = time.time()
    process = await asyncio.create_subprocess_exec(*args, cwd=cwd)
    return_code = await process.wait()
    duration_ms = int((time.time() - start_time) * 1000)

    log_install_command(command, return_code, duration_ms)
    if return_code != 0:
        get_error_handler().warning(
            ErrorCategory.INSTALL,
            f"Install command exited with status {return_code}",
            "package_manager",
            "run_command",
            details={"command": args[0], "return_code": return_code},
        )
    return return_code
