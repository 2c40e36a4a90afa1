"""
Configuration management for peer-dep-check.

Settings come from defaults, an optional project or user config file
(JSON or YAML), PEER_DEP_CHECK_* environment variables and finally CLI flags.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

console = Console(stderr=True)

ORDER_BY_CHOICES = ("depender", "dependee", "none")
PACKAGE_MANAGER_CHOICES = ("npm", "yarn", "pnpm")


@dataclass
class CheckConfig:
    """How a check pass gathers and reports peer dependencies."""

    order_by: str = "depender"
    verbose: bool = False
    include_dev: bool = True
    run_only_on_root_dependencies: bool = False
    ignore: List[str] = field(default_factory=list)
    package_manager: Optional[str] = None  # None means detect from lockfile


@dataclass
class NetworkConfig:
    """npm registry access."""

    registry_url: str = "https://registry.npmjs.org"
    user_agent: str = "peer-dep-check/1.0.0"
    timeout_seconds: float = 30.0


@dataclass
class LoggingConfig:
    log_level: str = "WARNING"


@dataclass
class PerformanceConfig:
    """Registry version-list caching."""

    enable_caching: bool = True
    cache_ttl_seconds: int = 3600
    max_cache_size: int = 1000


@dataclass
class ComprehensiveConfig:
    """Main configuration containing all subsections."""

    check: CheckConfig = field(default_factory=CheckConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)


_global_config: Optional[ComprehensiveConfig] = None

CONFIG_SECTIONS = ("check", "network", "logging", "performance")


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# (section, field, check, message); values loaded from files may have any type
FIELD_CHECKS = [
    (
        "check",
        "order_by",
        lambda v: v in ORDER_BY_CHOICES,
        f"check.order_by must be one of: {', '.join(ORDER_BY_CHOICES)}",
    ),
    (
        "check",
        "package_manager",
        lambda v: v is None or v in PACKAGE_MANAGER_CHOICES,
        f"check.package_manager must be one of: {', '.join(PACKAGE_MANAGER_CHOICES)}",
    ),
    (
        "check",
        "ignore",
        lambda v: isinstance(v, list) and all(isinstance(name, str) for name in v),
        "check.ignore must be a list of package names",
    ),
    (
        "network",
        "registry_url",
        lambda v: isinstance(v, str) and v.startswith(("http://", "https://")),
        "network.registry_url must be an http(s) URL",
    ),
    (
        "network",
        "timeout_seconds",
        lambda v: _is_number(v) and v > 0,
        "network.timeout_seconds must be a positive number",
    ),
    (
        "performance",
        "cache_ttl_seconds",
        lambda v: _is_number(v) and v >= 0,
        "performance.cache_ttl_seconds must be a non-negative number",
    ),
    (
        "performance",
        "max_cache_size",
        lambda v: isinstance(v, int) and not isinstance(v, bool) and v > 0,
        "performance.max_cache_size must be a positive integer",
    ),
    (
        "logging",
        "log_level",
        lambda v: isinstance(v, str) and v.upper() in LOG_LEVELS,
        "logging.log_level must be a standard logging level name",
    ),
]


def validate_config_values(config: ComprehensiveConfig) -> List[str]:
    """
    Validate configuration values and return any errors.

    Returns:
        List[str]: List of validation errors (empty if valid)
    """
    errors = []
    for section_name, field_name, check, message in FIELD_CHECKS:
        if not check(getattr(getattr(config, section_name), field_name)):
            errors.append(message)
    return errors


def load_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """Load config from a JSON or YAML file."""
    if not config_path.exists():
        return None

    try:
        with open(config_path, encoding="utf-8") as f:
            if config_path.suffix.lower() in [".yaml", ".yml"]:
                return yaml.safe_load(f)
            elif config_path.suffix.lower() == ".json":
                return json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"⚠️  Error loading config from {config_path}: {e}", style="yellow")

    return None


def find_config_file(project_root: Optional[Path] = None) -> Optional[Path]:
    """Find config file in standard locations."""
    base = project_root or Path.cwd()
    locations = [
        base / ".peer-dep-check.json",
        base / ".peer-dep-check.yaml",
        base / ".peer-dep-check.yml",
        Path.home() / ".config" / "peer-dep-check" / "config.json",
        Path.home() / ".config" / "peer-dep-check" / "config.yaml",
    ]

    for location in locations:
        if location.exists():
            return location

    return None


def load_environment_overrides(config: ComprehensiveConfig) -> None:
    """Apply PEER_DEP_CHECK_* environment variables."""

    def get_env_bool(key: str, default: bool) -> bool:
        value = os.environ.get(key, "").lower()
        return value in ["true", "1", "yes", "on"] if value else default

    def get_env_float(key: str) -> Optional[float]:
        try:
            return float(os.environ[key]) if key in os.environ else None
        except ValueError:
            console.print(f"⚠️  Invalid number for {key}, using default", style="yellow")
            return None

    if order_by := os.environ.get("PEER_DEP_CHECK_ORDER_BY"):
        config.check.order_by = order_by.lower()
    if package_manager := os.environ.get("PEER_DEP_CHECK_PACKAGE_MANAGER"):
        config.check.package_manager = package_manager.lower()
    if ignore := os.environ.get("PEER_DEP_CHECK_IGNORE"):
        config.check.ignore = [name.strip() for name in ignore.split(",") if name.strip()]

    config.check.verbose = get_env_bool("PEER_DEP_CHECK_VERBOSE", config.check.verbose)
    config.check.include_dev = get_env_bool(
        "PEER_DEP_CHECK_INCLUDE_DEV", config.check.include_dev
    )

    if registry_url := os.environ.get("PEER_DEP_CHECK_REGISTRY_URL"):
        config.network.registry_url = registry_url.rstrip("/")
    if timeout := get_env_float("PEER_DEP_CHECK_TIMEOUT"):
        config.network.timeout_seconds = timeout

    if log_level := os.environ.get("PEER_DEP_CHECK_LOG_LEVEL"):
        config.logging.log_level = log_level.upper()

    config.performance.enable_caching = get_env_bool(
        "PEER_DEP_CHECK_ENABLE_CACHING", config.performance.enable_caching
    )
    if cache_ttl := get_env_float("PEER_DEP_CHECK_CACHE_TTL_SECONDS"):
        config.performance.cache_ttl_seconds = int(cache_ttl)


def apply_config_section(config: Any, section_data: Dict[str, Any], section_name: str) -> None:
    """Apply configuration from dictionary to config section."""
    for key, value in section_data.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            console.print(f"⚠️  Unknown config key in {section_name}: {key}", style="yellow")


def apply_config_data(config: ComprehensiveConfig, file_config: Dict[str, Any]) -> None:
    for section_name in CONFIG_SECTIONS:
        section_data = file_config.get(section_name)
        if isinstance(section_data, dict):
            apply_config_section(getattr(config, section_name), section_data, section_name)


def load_config(project_root: Optional[Path] = None) -> ComprehensiveConfig:
    """Load configuration from file and environment."""
    global _global_config

    if _global_config is not None:
        return _global_config

    config = ComprehensiveConfig()

    config_file = find_config_file(project_root)
    if config_file:
        file_config = load_config_file(config_file)
        if isinstance(file_config, dict):
            apply_config_data(config, file_config)

    load_environment_overrides(config)

    validation_errors = validate_config_values(config)
    if validation_errors:
        console.print("⚠️  Configuration validation errors:", style="red")
        for error in validation_errors:
            console.print(f"  • {error}", style="red")
        console.print("Using default values for invalid settings.", style="yellow")
        _restore_invalid_defaults(config)

    _global_config = config
    return config


def _restore_invalid_defaults(config: ComprehensiveConfig) -> None:
    defaults = ComprehensiveConfig()
    for section_name, field_name, check, _ in FIELD_CHECKS:
        section = getattr(config, section_name)
        if not check(getattr(section, field_name)):
            setattr(section, field_name, getattr(getattr(defaults, section_name), field_name))


def get_config() -> ComprehensiveConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _global_config
    _global_config = None


def create_sample_config() -> str:
    """Generate a sample configuration file."""
    sample_config = {
        "check": {
            "order_by": "depender",
            "verbose": False,
            "include_dev": True,
            "run_only_on_root_dependencies": False,
            "ignore": [],
            "package_manager": None,
        },
        "network": {
            "registry_url": "https://registry.npmjs.org",
            "user_agent": "peer-dep-check/1.0.0",
            "timeout_seconds": 30.0,
        },
        "logging": {"log_level": "WARNING"},
        "performance": {
            "enable_caching": True,
            "cache_ttl_seconds": 3600,
            "max_cache_size": 1000,
        },
    }

    return json.dumps(sample_config, indent=2)
