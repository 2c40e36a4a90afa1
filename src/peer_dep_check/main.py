import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel

from .cache_manager import get_cache_manager
from .checker import CheckOutcome, PeerDependencyChecker
from .cli_config import (
    ORDER_BY_CHOICES,
    ComprehensiveConfig,
    apply_config_data,
    create_sample_config,
    get_config,
    load_config,
    load_config_file,
    validate_config_values,
)
from .error_handling import get_error_handler, setup_error_handling
from .package_utils import CheckOptions
from .registry_clients import NpmRegistryClient
from .structured_logging import clear_context, configure_logging, log_run_summary

__version__ = "1.0.0"

console = Console()


async def async_check_peer_dependencies(options: CheckOptions) -> CheckOutcome:
    """Run the check loop with a registry client open for the whole run."""
    async with NpmRegistryClient() as registry_client:
        checker = PeerDependencyChecker(options, version_source=registry_client)
        try:
            return await checker.check()
        finally:
            log_run_summary(get_cache_manager().get_stats(), get_error_handler().get_error_stats())
            clear_context()


def build_options(
    project_root: str,
    package_manager: Optional[str],
    order_by: Optional[str],
    verbose: bool,
    install: bool,
    find_solutions: bool,
    ignore: Tuple[str, ...],
    include_dev: Optional[bool],
    run_only_on_root_dependencies: bool,
) -> CheckOptions:
    """Merge CLI flags over the loaded configuration."""
    check_config = get_config().check
    return CheckOptions(
        project_root=project_root,
        verbose=verbose or check_config.verbose,
        order_by=order_by or check_config.order_by,
        install=install,
        find_solutions=find_solutions,
        ignore=list(check_config.ignore) + [name for name in ignore if name not in check_config.ignore],
        include_dev=check_config.include_dev if include_dev is None else include_dev,
        run_only_on_root_dependencies=(
            run_only_on_root_dependencies or check_config.run_only_on_root_dependencies
        ),
        package_manager=package_manager or check_config.package_manager,
    )


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.pass_context
def cli(ctx, version):
    """
    Peer-dep-check: audits installed packages against their peerDependencies.

    Reports unmet peer dependencies and can find and install versions that
    satisfy every package requiring them.
    """
    if version:
        console.print(f"peer-dep-check version {__version__}", style="bold blue")
        ctx.exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@cli.command()
@click.argument(
    "project_root",
    default=".",
    type=click.Path(exists=True, file_okay=False, dir_okay=True),
)
@click.option("--npm", "package_manager", flag_value="npm", help="Use npm package manager")
@click.option("--yarn", "package_manager", flag_value="yarn", help="Use yarn package manager")
@click.option("--pnpm", "package_manager", flag_value="pnpm", help="Use pnpm package manager")
@click.option(
    "--order-by",
    type=click.Choice(list(ORDER_BY_CHOICES), case_sensitive=False),
    help="Group the report by depender or dependee (default from config or depender)",
)
@click.option(
    "--verbose", "-v", is_flag=True, help="Print every peer dependency, even those that are met"
)
@click.option("--install", is_flag=True, help="Install missing or incorrect peerDependencies")
@click.option(
    "--find-solutions",
    is_flag=True,
    help="Search for solutions and print package installation commands",
)
@click.option(
    "--ignore", multiple=True, help="Package name to ignore (may be given multiple times)"
)
@click.option(
    "--include-dev/--no-include-dev",
    default=None,
    help="Also walk the project's devDependencies (default from config or on)",
)
@click.option(
    "--run-only-on-root-dependencies",
    is_flag=True,
    help="Only check packages the project depends on directly",
)
@click.option("--debug", is_flag=True, help="Print debugging information")
def check(
    project_root: str,
    package_manager: Optional[str],
    order_by: Optional[str],
    verbose: bool,
    install: bool,
    find_solutions: bool,
    ignore: Tuple[str, ...],
    include_dev: Optional[bool],
    run_only_on_root_dependencies: bool,
    debug: bool,
) -> None:
    """
    Check installed packages against their peerDependencies.

    Examples:

      peer-dep-check check

      peer-dep-check check ./my-app --order-by dependee --verbose

      peer-dep-check check --find-solutions

      peer-dep-check check --install --yarn
    """
    try:
        loaded_config = load_config(Path(project_root))
        log_level = "DEBUG" if debug else loaded_config.logging.log_level
        configure_logging(log_level)
        setup_error_handling(getattr(logging, log_level.upper(), logging.WARNING))

        options = build_options(
            project_root,
            package_manager,
            order_by.lower() if order_by else None,
            verbose,
            install,
            find_solutions,
            ignore,
            include_dev,
            run_only_on_root_dependencies,
        )
        outcome = asyncio.run(async_check_peer_dependencies(options))
    except KeyboardInterrupt:
        Console(stderr=True).print("\n⚠️  Check interrupted by user", style="yellow")
        sys.exit(130)
    except Exception as e:
        Console(stderr=True).print(f"❌ Error: {str(e)}", style="red")
        if debug:
            raise
        sys.exit(1)

    sys.exit(outcome.exit_code)


@cli.command()
def info():
    """Show exit codes, configuration sources and usage examples."""
    info_text = """
[bold blue]🚦 Exit Codes:[/bold blue]

• [green]0[/green] - All peer dependencies are met
• [yellow]1[/yellow] - Unmet peer dependencies remain, or no version satisfies some package
• [red]5[/red] - Still finding new unmet peer dependencies after 5 install rounds

[bold blue]📦 Package Managers:[/bold blue]

• Detected from [green]yarn.lock[/green] / [green]pnpm-lock.yaml[/green], npm otherwise
• Override with [cyan]--npm[/cyan], [cyan]--yarn[/cyan] or [cyan]--pnpm[/cyan]

[bold blue]🌍 Environment Variables:[/bold blue]

• [cyan]PEER_DEP_CHECK_REGISTRY_URL[/cyan] - npm registry to query
• [cyan]PEER_DEP_CHECK_NPM_TOKEN[/cyan] / [cyan]NPM_TOKEN[/cyan] - Registry bearer token
• [cyan]PEER_DEP_CHECK_ORDER_BY[/cyan] - depender, dependee or none
• [cyan]PEER_DEP_CHECK_IGNORE[/cyan] - Comma-separated package names to ignore
• [cyan]PEER_DEP_CHECK_LOG_LEVEL[/cyan] - Structured log level (stderr)

[bold blue]📄 Configuration Files:[/bold blue]

• [green].peer-dep-check.json[/green] / [green].peer-dep-check.yaml[/green] - Project-level config
• [green]~/.config/peer-dep-check/config.json[/green] - User-level config

[bold blue]💡 Usage Examples:[/bold blue]

  # Report unmet peer dependencies
  peer-dep-check check

  # Print the install commands that would fix them
  peer-dep-check check --find-solutions

  # Install and re-verify
  peer-dep-check check --install
"""
    console.print(
        Panel(info_text, title="[bold]peer-dep-check Information[/bold]", border_style="blue")
    )


@cli.group()
def config():
    """Configuration management commands."""
    pass


@config.command("init")
@click.option(
    "--path",
    type=click.Path(),
    default=".peer-dep-check.json",
    help="Path where to create the config file",
    show_default=True,
)
@click.option("--force", is_flag=True, help="Overwrite existing config file")
def config_init(path: str, force: bool):
    """Create a sample configuration file."""
    config_path = Path(path)

    if config_path.exists() and not force:
        console.print(f"⚠️  Config file already exists at {config_path}", style="yellow")
        console.print("Use --force to overwrite", style="dim")
        return

    try:
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_sample_config())
        console.print(f"✅ Created configuration file at {config_path}", style="green")
    except OSError as e:
        console.print(f"❌ Failed to create config file: {e}", style="red")
        sys.exit(1)


@config.command("show")
def config_show():
    """Show the effective configuration."""
    current_config = get_config()

    console.print(Panel("[bold blue]🔧 Configuration[/bold blue]", border_style="blue"))

    console.print("\n[bold cyan]🔍 Check Settings:[/bold cyan]")
    console.print(f"  Order By: {current_config.check.order_by}")
    console.print(f"  Verbose: {current_config.check.verbose}")
    console.print(f"  Include Dev: {current_config.check.include_dev}")
    console.print(
        f"  Root Dependencies Only: {current_config.check.run_only_on_root_dependencies}"
    )
    console.print(f"  Ignore: {', '.join(current_config.check.ignore) or '-'}")
    console.print(f"  Package Manager: {current_config.check.package_manager or 'auto'}")

    console.print("\n[bold cyan]🌐 Network Settings:[/bold cyan]")
    console.print(f"  Registry: {current_config.network.registry_url}")
    console.print(f"  Timeout: {current_config.network.timeout_seconds}s")
    console.print(f"  User Agent: {current_config.network.user_agent}")

    console.print("\n[bold cyan]📝 Logging Settings:[/bold cyan]")
    console.print(f"  Log Level: {current_config.logging.log_level}")

    console.print("\n[bold cyan]⚡ Performance Settings:[/bold cyan]")
    console.print(f"  Caching Enabled: {current_config.performance.enable_caching}")
    console.print(f"  Cache TTL: {current_config.performance.cache_ttl_seconds}s")
    console.print(f"  Max Cache Size: {current_config.performance.max_cache_size}")


@config.command("validate")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
def config_validate(config_file: str):
    """Validate a configuration file."""
    config_data = load_config_file(Path(config_file))

    if not isinstance(config_data, dict):
        console.print(f"❌ Could not load config from {config_file}", style="red")
        sys.exit(1)

    candidate = ComprehensiveConfig()
    apply_config_data(candidate, config_data)
    errors = validate_config_values(candidate)

    if errors:
        console.print(f"❌ Configuration file {config_file} is invalid:", style="red")
        for error in errors:
            console.print(f"  • {error}", style="red")
        sys.exit(1)

    console.print(f"✅ Configuration file {config_file} is valid", style="green")


if __name__ == "__main__":
    cli()
