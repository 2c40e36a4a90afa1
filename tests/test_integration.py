"""
Integration tests for the peer-dep-check loop.
Runs full check passes against scripted trees, fake registries and
recording command runners.
"""

import json
import logging
import shlex
import sys
from pathlib import Path

import pytest

from conftest import write_package
from peer_dep_check.checker import CheckOutcome, PeerDependencyChecker
from peer_dep_check.dependency import Dependency
from peer_dep_check.error_handling import ErrorCategory, ErrorHandler, SecureLogger
from peer_dep_check.package_manager import run_command
from peer_dep_check.package_utils import CheckOptions
from peer_dep_check.structured_logging import StructuredFormatter


def dep(name, version, depender, installed=None, root=False):
    return Dependency(
        name=name,
        version=version,
        depender=depender,
        depender_version="1.0.0",
        installed_version=installed,
        is_peer_dev_dependency=root,
    )


class ScriptedInspector:
    """Returns script(n) on the n-th gather."""

    def __init__(self, script):
        self.script = script
        self.calls = 0
        self.project_root = Path("/work/app")

    def get_all_nested_peer_dependencies(self):
        deps = self.script(self.calls)
        self.calls += 1
        return deps


def passes(*lists):
    """Script that plays the given passes, repeating the last one."""
    return lambda n: lists[min(n, len(lists) - 1)]


class RecordingRunner:
    def __init__(self, on_command=None):
        self.commands = []
        self.on_command = on_command

    async def __call__(self, command):
        self.commands.append(command)
        if self.on_command:
            self.on_command(command)
        return 0


def make_checker(script, registry, reporter, runner=None, **options):
    options.setdefault("package_manager", "npm")
    return PeerDependencyChecker(
        CheckOptions(**options),
        version_source=registry,
        inspector=ScriptedInspector(script),
        command_runner=runner or RecordingRunner(),
        reporter=reporter,
    )


class TestReportOnly:
    """Test passes that only report."""

    @pytest.mark.asyncio
    async def test_all_met(self, fake_registry, reporter):
        checker = make_checker(
            passes([dep("react", "^18.0.0", "lib-a", installed="18.2.0")]),
            fake_registry({}),
            reporter,
        )

        outcome = await checker.check()

        assert outcome is CheckOutcome.SATISFIED
        assert outcome.exit_code == 0
        assert "All peer dependencies are met" in reporter.output
        assert "✅  lib-a" not in reporter.output

    @pytest.mark.asyncio
    async def test_verbose_lists_met_edges(self, fake_registry, reporter):
        checker = make_checker(
            passes([dep("react", "^18.0.0", "lib-a", installed="18.2.0")]),
            fake_registry({}),
            reporter,
            verbose=True,
        )

        await checker.check()

        assert "✅  lib-a@1.0.0 requires react ^18.0.0 (18.2.0 is installed)" in reporter.output

    @pytest.mark.asyncio
    async def test_problems_without_install(self, fake_registry, reporter):
        registry = fake_registry({"react-dom": ["18.2.0"]})
        checker = make_checker(passes([dep("react-dom", ">=17", "lib-a")]), registry, reporter)

        outcome = await checker.check()

        assert outcome is CheckOutcome.PROBLEMS_FOUND
        assert outcome.exit_code == 1
        assert "❌  lib-a@1.0.0 requires react-dom >=17 (react-dom is not installed)" in reporter.output
        assert "peer-dep-check check --install" in reporter.output
        assert registry.lookups == []

    @pytest.mark.asyncio
    async def test_order_by_dependee(self, fake_registry, reporter):
        checker = make_checker(
            passes([dep("react", "^16.0.0", "lib-b", installed="18.2.0")]),
            fake_registry({}),
            reporter,
            order_by="dependee",
        )

        await checker.check()

        assert "❌  react ^16.0.0 is required by lib-b@1.0.0 (18.2.0 is installed)" in reporter.output

    @pytest.mark.asyncio
    async def test_order_none_prints_no_edges(self, fake_registry, reporter):
        checker = make_checker(
            passes([dep("react", "^16.0.0", "lib-b", installed="18.2.0")]),
            fake_registry({}),
            reporter,
            order_by="none",
        )

        assert await checker.check() is CheckOutcome.PROBLEMS_FOUND
        assert "lib-b" not in reporter.output

    @pytest.mark.asyncio
    async def test_yalc_installs_are_reported_but_accepted(self, fake_registry, reporter):
        checker = make_checker(
            passes([dep("lib-x", "^2.0.0", "app", installed="1.0.0-0a1b2c-yalc")]),
            fake_registry({}),
            reporter,
        )

        assert await checker.check() is CheckOutcome.SATISFIED
        assert "(1.0.0-0a1b2c-yalc is installed via yalc)" in reporter.output

    @pytest.mark.asyncio
    async def test_find_solutions_prints_commands(self, fake_registry, reporter):
        runner = RecordingRunner()
        checker = make_checker(
            passes([dep("react-dom", ">=17", "lib-a"), dep("react", "^18.0.0", "app", root=True)]),
            fake_registry({"react-dom": ["17.0.2", "18.2.0"], "react": ["18.2.0"]}),
            reporter,
            runner=runner,
            find_solutions=True,
        )

        outcome = await checker.check()

        assert outcome is CheckOutcome.PROBLEMS_FOUND
        assert "Install peerDependencies using these commands:" in reporter.output
        assert "npm install react-dom@18.2.0" in reporter.output
        assert "npm install --save-dev react@18.2.0" in reporter.output
        assert runner.commands == []


class TestInstallLoop:
    """Test the install and re-verify loop."""

    @pytest.mark.asyncio
    async def test_single_install_step(self, fake_registry, reporter):
        runner = RecordingRunner()
        checker = make_checker(
            passes(
                [dep("react-dom", ">=17", "lib-a")],
                [dep("react-dom", ">=17", "lib-a", installed="18.2.0")],
            ),
            fake_registry({"react-dom": ["17.0.2", "18.2.0"]}),
            reporter,
            runner=runner,
            install=True,
        )

        outcome = await checker.check()

        assert outcome is CheckOutcome.SATISFIED
        assert runner.commands == ["npm install react-dom@18.2.0"]
        assert checker.inspector.calls == 2
        assert "$ npm install react-dom@18.2.0" in reporter.output

    @pytest.mark.asyncio
    async def test_yarn_commands(self, fake_registry, reporter):
        runner = RecordingRunner()
        checker = make_checker(
            passes([dep("react", "^18.0.0", "app", root=True)], []),
            fake_registry({"react": ["18.2.0"]}),
            reporter,
            runner=runner,
            install=True,
            package_manager="yarn",
        )

        await checker.check()

        assert runner.commands == ["yarn add -D react@18.2.0"]

    @pytest.mark.asyncio
    async def test_recursion_limit(self, fake_registry, reporter):
        """A new unmet peer on every pass stops after five install steps."""
        runner = RecordingRunner()
        checker = make_checker(
            lambda n: [dep(f"pkg-{n}", "^1.0.0", "lib-a")],
            fake_registry({f"pkg-{n}": ["1.0.0"] for n in range(20)}),
            reporter,
            runner=runner,
            install=True,
        )

        outcome = await checker.check()

        assert outcome is CheckOutcome.RECURSION_LIMIT_REACHED
        assert outcome.exit_code == 5
        assert len(runner.commands) == 5
        assert "Found 1 new unmet peerDependencies..." in reporter.output
        assert "Recursion limit reached (5)" in reporter.errors

    @pytest.mark.asyncio
    async def test_unsatisfiable_package_is_reported(self, fake_registry, reporter):
        runner = RecordingRunner()
        unsatisfiable = dep("x", ">=2.0.0", "a", installed="0.5.0")
        constraint = dep("x", "<1.0.0", "b", installed="0.5.0")
        checker = make_checker(
            passes(
                [unsatisfiable, constraint, dep("y", "^1.0.0", "a")],
                [unsatisfiable, constraint, dep("y", "^1.0.0", "a", installed="1.0.0")],
            ),
            fake_registry({"x": ["0.5.0", "2.0.0"], "y": ["1.0.0"]}),
            reporter,
            runner=runner,
            install=True,
        )

        outcome = await checker.check()

        assert outcome is CheckOutcome.PROBLEMS_FOUND
        assert runner.commands == ["npm install y@1.0.0"]
        assert (
            "Unable to find a version of x that satisfies the following "
            "peerDependencies: >=2.0.0 and <1.0.0"
        ) in reporter.errors

    @pytest.mark.asyncio
    async def test_every_edge_of_an_unsolvable_package_is_excluded(self, fake_registry, reporter):
        """No edge of x counts as new after the install, met or not."""
        runner = RecordingRunner()
        unsolvable = [dep("x", ">=2.0.0", "a"), dep("x", "<1.0.0", "b")]
        checker = make_checker(
            passes(
                unsolvable + [dep("y", "^1.0.0", "a")],
                unsolvable + [dep("y", "^1.0.0", "a", installed="1.0.0")],
            ),
            fake_registry({"x": ["0.5.0", "2.0.0"], "y": ["1.0.0"]}),
            reporter,
            runner=runner,
            install=True,
        )

        outcome = await checker.check()

        assert outcome is CheckOutcome.PROBLEMS_FOUND
        assert runner.commands == ["npm install y@1.0.0"]
        assert "new unmet" not in reporter.output
        assert checker.inspector.calls == 2

    @pytest.mark.asyncio
    async def test_nothing_installable(self, fake_registry, reporter):
        runner = RecordingRunner()
        checker = make_checker(
            passes([dep("ghost", "^1.0.0", "a")]),
            fake_registry({}),
            reporter,
            runner=runner,
            install=True,
        )

        assert await checker.check() is CheckOutcome.PROBLEMS_FOUND
        assert runner.commands == []
        assert "Unable to find a version of ghost" in reporter.errors

    @pytest.mark.asyncio
    async def test_registry_failure_is_reported(self, fake_registry, reporter):
        checker = make_checker(
            passes([dep("offline", "^1.0.0", "a")]),
            fake_registry({}, failing=["offline"]),
            reporter,
            install=True,
        )

        assert await checker.check() is CheckOutcome.PROBLEMS_FOUND
        assert "Unable to list the published versions of offline" in reporter.errors

    @pytest.mark.asyncio
    async def test_installs_into_a_real_tree(self, tmp_path, fake_registry, reporter):
        """Each install is re-verified; peers of the new package trigger another step."""
        root = tmp_path / "app"
        write_package(
            root,
            {"name": "app", "version": "1.0.0", "dependencies": {"lib-a": "^1.0.0"}},
        )
        write_package(
            root / "node_modules" / "lib-a",
            {"name": "lib-a", "version": "1.0.0", "peerDependencies": {"react-dom": ">=17 <19"}},
        )
        peers_of = {"react-dom": {"react": "^18.2.0"}, "react": {}}

        def fake_npm_install(command):
            manifest = json.loads((root / "package.json").read_text())
            for spec in shlex.split(command)[2:]:
                name, version = spec.rsplit("@", 1)
                manifest["dependencies"][name] = version
                write_package(
                    root / "node_modules" / name,
                    {"name": name, "version": version, "peerDependencies": peers_of[name]},
                )
            write_package(root, manifest)

        runner = RecordingRunner(fake_npm_install)
        checker = PeerDependencyChecker(
            CheckOptions(project_root=str(root), install=True, package_manager="npm"),
            version_source=fake_registry(
                {"react-dom": ["17.0.2", "18.2.0", "19.0.0"], "react": ["18.1.0", "18.2.0"]}
            ),
            command_runner=runner,
            reporter=reporter,
        )

        outcome = await checker.check()

        assert outcome is CheckOutcome.SATISFIED
        assert runner.commands == ["npm install react-dom@18.2.0", "npm install react@18.2.0"]
        assert "Found 1 new unmet peerDependencies..." in reporter.output
        assert reporter.output.rstrip().endswith("All peer dependencies are met")


class TestCommandExecution:
    """Test running install commands as subprocesses."""

    @pytest.mark.asyncio
    async def test_exit_status_is_returned(self, tmp_path):
        command = f"{shlex.quote(sys.executable)} -c 'import sys; sys.exit(3)'"
        assert await run_command(command, cwd=str(tmp_path)) == 3

    @pytest.mark.asyncio
    async def test_success(self, tmp_path):
        command = f"{shlex.quote(sys.executable)} -c 'pass'"
        assert await run_command(command, cwd=str(tmp_path)) == 0

    @pytest.mark.asyncio
    async def test_empty_command(self):
        with pytest.raises(ValueError):
            await run_command("   ")


class TestDiagnostics:
    """Test structured logs and sanitized error reports."""

    def test_structured_formatter_emits_json(self):
        record = logging.LogRecord(
            "peer_dep_check.resolver", logging.INFO, __file__, 1, "resolution_computed", None, None
        )
        record.package_name = "react"
        record.resolution = "18.2.0"

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["level"] == "INFO"
        assert entry["component"] == "peer_dep_check.resolver"
        assert entry["package_name"] == "react"
        assert entry["resolution"] == "18.2.0"

    def test_registry_tokens_are_redacted(self):
        logger = SecureLogger("peer_dep_check.test")
        message = logger._sanitize_message(
            "//registry.example.com/:_authToken=npm_abcdef123456 failed"
        )
        assert "npm_abcdef123456" not in message
        assert logger._sanitize_dict({"auth_header": "Bearer x"}) == {"auth_header": "[REDACTED]"}

    def test_error_handler_counts_by_category_and_level(self):
        handler = ErrorHandler(logger_name="peer_dep_check.test")

        handler.warning(ErrorCategory.INSTALL, "npm exited with 1", "test", "test")
        handler.error(ErrorCategory.NETWORK, "registry down", "test", "test")
        handler.error(ErrorCategory.NETWORK, "registry still down", "test", "test")

        assert handler.get_error_stats() == {"INSTALL_WARNING": 1, "NETWORK_ERROR": 2}

    def test_traceback_logged_only_at_debug(self, caplog):
        def fail_and_report(handler):
            try:
                raise ValueError("bad manifest")
            except ValueError as e:
                handler.warning(
                    ErrorCategory.PARSING, "Unreadable package.json", "test", "test", exception=e
                )

        fail_and_report(ErrorHandler(logger_name="peer_dep_check.test.quiet"))
        assert "Unreadable package.json" in caplog.text
        assert "Traceback" not in caplog.text

        caplog.clear()
        fail_and_report(
            ErrorHandler(logger_name="peer_dep_check.test.debug", log_level=logging.DEBUG)
        )
        assert "Traceback" in caplog.text
        assert "ValueError: bad manifest" in caplog.text
