"""
Console reporting for peer-dependency checks.

Provides color-coded output using the Rich library.
"""

from typing import List, Optional, Sequence

from rich.console import Console

from .dependency import Dependency, Resolution
from .solution import conflicting_ranges


def sort_by_depender(deps: Sequence[Dependency]) -> List[Dependency]:
    """Stable sort on depender + name."""
    return sorted(deps, key=lambda dep: f"{dep.depender}{dep.name}")


def sort_by_dependee(deps: Sequence[Dependency]) -> List[Dependency]:
    """Stable sort on name + depender."""
    return sorted(deps, key=lambda dep: f"{dep.name}{dep.depender}")


class PeerDependencyReporter:
    """Formats and displays check results."""

    def __init__(self, console: Optional[Console] = None, err_console: Optional[Console] = None):
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)

    def _print(self, text: str = "", style: Optional[str] = None, stderr: bool = False) -> None:
        target = self.err_console if stderr else self.console
        target.print(text, style=style, markup=False, highlight=False, soft_wrap=True)

    def _installed_note(self, dep: Dependency) -> str:
        if dep.semver_satisfies:
            return f"({dep.installed_version} is installed)"
        if dep.is_yalc:
            return f"({dep.installed_version} is installed via yalc)"
        if dep.installed_version:
            return f"({dep.installed_version} is installed)"
        return f"({dep.name} is not installed)"

    def _status(self, dep: Dependency, verbose: bool) -> Optional[tuple]:
        """Icon and style for one edge, or None when it is not printed."""
        if dep.semver_satisfies:
            return ("✅", "green") if verbose else None
        if dep.is_yalc:
            return ("☑️ ", "cyan")
        return ("❌", "red")

    def print_by_depender(self, dep: Dependency, verbose: bool) -> None:
        status = self._status(dep, verbose)
        if status is None:
            return
        icon, style = status
        self._print(
            f"  {icon}  {dep.depender}@{dep.depender_version} requires {dep.name} {dep.version} "
            f"{self._installed_note(dep)}",
            style=style,
        )

    def print_by_dependee(self, dep: Dependency, verbose: bool) -> None:
        status = self._status(dep, verbose)
        if status is None:
            return
        icon, style = status
        self._print(
            f"  {icon}  {dep.name} {dep.version} is required by {dep.depender}@{dep.depender_version} "
            f"{self._installed_note(dep)}",
            style=style,
        )

    def print_status(self, deps: Sequence[Dependency], order_by: str, verbose: bool) -> None:
        """Print every edge in the requested order; nothing for order_by='none'."""
        if order_by == "depender":
            for dep in sort_by_depender(deps):
                self.print_by_depender(dep, verbose)
        elif order_by == "dependee":
            for dep in sort_by_dependee(deps):
                self.print_by_dependee(dep, verbose)

    def print_blank(self) -> None:
        self._print()

    def print_all_met(self, indent: bool = True) -> None:
        prefix = "  ✅  " if indent else ""
        self._print(f"{prefix}All peer dependencies are met", style="green")

    def print_searching(self) -> None:
        self._print()
        self._print("Searching for solutions...", style="blue")
        self._print()

    def print_no_solutions(
        self, nosolution: Sequence[Resolution], all_deps: Sequence[Dependency]
    ) -> None:
        """One diagnostic per unsatisfiable package, listing its conflicting ranges."""
        for resolution in nosolution:
            name = resolution.problem.name
            if resolution.error:
                self._print(
                    f"  ❌  Unable to list the published versions of {name}: {resolution.error}",
                    style="red",
                    stderr=True,
                )
                continue
            ranges = " and ".join(conflicting_ranges(name, all_deps))
            self._print(
                f"  ❌  Unable to find a version of {name} that satisfies "
                f"the following peerDependencies: {ranges}",
                style="red",
                stderr=True,
            )
        if nosolution:
            self._print(stderr=True)

    def print_commands(self, command_lines: Sequence[str]) -> None:
        plural = "these commands" if len(command_lines) > 1 else "this command"
        self._print(f"Install peerDependencies using {plural}:", style="bold")
        self._print()
        for command in command_lines:
            self._print(command)
        self._print()

    def print_install_hint(self) -> None:
        self._print(
            'Install peerDependencies using "peer-dep-check check --install"', style="yellow"
        )

    def print_installing(self) -> None:
        self._print("Installing peerDependencies...", style="blue")
        self._print()

    def print_running(self, command: str) -> None:
        self._print(f"$ {command}", style="bold")

    def print_new_unmet(self, count: int) -> None:
        self._print(f"Found {count} new unmet peerDependencies...", style="yellow")

    def print_recursion_limit(self, limit: int) -> None:
        self._print(f"Recursion limit reached ({limit})", style="bold red", stderr=True)
