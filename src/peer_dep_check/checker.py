"""
Core check loop: report, resolve, install, re-verify.

Each pass gathers a fresh, classified list of peer-dependency edges. When
installing, the loop re-checks after running the install commands and
recurses on newly unmet edges, up to MAX_RECURSION_DEPTH install steps.
"""

from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from .dependency import Dependency, Resolution
from .package_manager import detect_package_manager, get_command_lines, run_command
from .package_utils import CheckOptions, ProjectInspector
from .reporting import PeerDependencyReporter
from .solution import VersionSource, find_possible_resolutions
from .structured_logging import log_check_pass_started, log_recursion_limit

MAX_RECURSION_DEPTH = 5

CommandRunner = Callable[[str], Awaitable[int]]


class CheckOutcome(Enum):
    """Terminal state of a check run; the value is the process exit code."""

    SATISFIED = 0
    PROBLEMS_FOUND = 1
    RECURSION_LIMIT_REACHED = 5

    @property
    def exit_code(self) -> int:
        return self.value


class PeerDependencyChecker:
    """
    Runs the check loop for one project.

    Collaborators are injected so the loop can run against a real
    node_modules tree and registry, or against fakes in tests.
    """

    def __init__(
        self,
        options: CheckOptions,
        version_source: VersionSource,
        inspector: Optional[ProjectInspector] = None,
        command_runner: Optional[CommandRunner] = None,
        reporter: Optional[PeerDependencyReporter] = None,
    ):
        self.options = options
        self.version_source = version_source
        self.inspector = inspector or ProjectInspector(options)
        self.command_runner = command_runner or self._run_in_project
        self.reporter = reporter or PeerDependencyReporter()
        self.package_manager = (
            options.package_manager or detect_package_manager(options.project_root).value
        )

    async def _run_in_project(self, command: str) -> int:
        return await run_command(command, cwd=self.options.project_root)

    def get_all_nested_peer_dependencies(self) -> List[Dependency]:
        return self.inspector.get_all_nested_peer_dependencies()

    async def find_solutions(
        self, problems: Sequence[Dependency], all_deps: Sequence[Dependency]
    ) -> Tuple[List[Resolution], List[Resolution]]:
        """Resolve problems and report the unsatisfiable ones."""
        self.reporter.print_searching()
        resolutions = await find_possible_resolutions(problems, all_deps, self.version_source)
        with_solutions = [r for r in resolutions if r.has_solution]
        nosolution = [r for r in resolutions if not r.has_solution]

        self.reporter.print_no_solutions(nosolution, all_deps)
        return with_solutions, nosolution

    async def check(self, depth: int = 0) -> CheckOutcome:
        """
        Run one reporting pass and, if asked, resolve and install.

        Args:
            depth: Install steps already taken in this run

        Returns:
            CheckOutcome: Terminal state; its value is the exit code
        """
        all_deps = self.get_all_nested_peer_dependencies()
        log_check_pass_started(str(self.inspector.project_root), depth, len(all_deps))

        self.reporter.print_status(all_deps, self.options.order_by, self.options.verbose)

        problems = [dep for dep in all_deps if dep.is_problem]
        if not problems:
            self.reporter.print_all_met()
            return CheckOutcome.SATISFIED

        if self.options.install:
            with_solutions, nosolution = await self.find_solutions(problems, all_deps)
            command_lines = get_command_lines(self.package_manager, with_solutions)
            if command_lines:
                return await self.install_peer_dependencies(command_lines, nosolution, depth)
        elif self.options.find_solutions:
            with_solutions, _ = await self.find_solutions(problems, all_deps)
            command_lines = get_command_lines(self.package_manager, with_solutions)
            if command_lines:
                self.reporter.print_commands(command_lines)
        else:
            self.reporter.print_install_hint()

        return CheckOutcome.PROBLEMS_FOUND

    async def install_peer_dependencies(
        self, command_lines: Sequence[str], nosolution: Sequence[Resolution], depth: int
    ) -> CheckOutcome:
        """Run the install commands, then re-verify."""
        self.reporter.print_installing()
        for command in command_lines:
            self.reporter.print_running(command)
            await self.command_runner(command)
            self.reporter.print_blank()

        unsolvable = {r.problem.name for r in nosolution}
        new_unsatisfied = [
            dep
            for dep in self.get_all_nested_peer_dependencies()
            if dep.is_problem and dep.name not in unsolvable
        ]

        if not new_unsatisfied:
            if nosolution:
                return CheckOutcome.PROBLEMS_FOUND
            self.reporter.print_all_met(indent=False)
            return CheckOutcome.SATISFIED

        self.reporter.print_new_unmet(len(new_unsatisfied))
        if depth + 1 < MAX_RECURSION_DEPTH:
            return await self.check(depth + 1)

        log_recursion_limit(depth + 1, len(new_unsatisfied))
        self.reporter.print_recursion_limit(MAX_RECURSION_DEPTH)
        return CheckOutcome.RECURSION_LIMIT_REACHED
