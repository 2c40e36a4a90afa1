"""
Structured logging for peer-dep-check.

Emits one JSON object per event so a CI job can follow each check pass,
resolution and install command. Events go to stderr and never mix with the
human-readable report on stdout.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# LogRecord attributes that are not event payload
_RESERVED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "getMessage",
    "exc_info",
    "exc_text",
    "stack_info",
}


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class EventLogger:
    """Structured logger for one component of the check loop."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(f"peer_dep_check.{name}")
        self._setup_logger()
        self.context: Dict[str, Any] = {}

    def _setup_logger(self) -> None:
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.propagate = False
            self.logger.setLevel(logging.WARNING)

    def set_context(self, **context: Any) -> None:
        self.context = {key: value for key, value in context.items() if value is not None}

    def clear_context(self) -> None:
        self.context.clear()

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        log_data = {"event_type": event_type, **self.context, **kwargs}
        self.logger.log(level, event_type, extra=log_data)

    def info(self, event_type: str, **kwargs) -> None:
        self._log(logging.INFO, event_type, **kwargs)

    def warning(self, event_type: str, **kwargs) -> None:
        self._log(logging.WARNING, event_type, **kwargs)

    def error(self, event_type: str, **kwargs) -> None:
        self._log(logging.ERROR, event_type, **kwargs)

    def debug(self, event_type: str, **kwargs) -> None:
        self._log(logging.DEBUG, event_type, **kwargs)


_gatherer_logger = EventLogger("gatherer")
_resolver_logger = EventLogger("resolver")
_installer_logger = EventLogger("installer")
_registry_logger = EventLogger("registry")

_ALL_LOGGERS = [_gatherer_logger, _resolver_logger, _installer_logger, _registry_logger]


def get_gatherer_logger() -> EventLogger:
    return _gatherer_logger


def log_check_pass_started(project_root: str, depth: int, total_edges: int) -> None:
    """Log the start of one gather/classify pass."""
    for logger in _ALL_LOGGERS:
        logger.set_context(project_root=project_root, depth=depth)
    _gatherer_logger.info("check_pass_started", total_edges=total_edges)


def log_resolution(package_name: str, ranges: List[str], resolution: Optional[str]) -> None:
    """Log what the resolution engine decided for one package."""
    if resolution is None:
        _resolver_logger.warning(
            "no_resolution_found", package_name=package_name, ranges=ranges
        )
    else:
        _resolver_logger.info(
            "resolution_computed",
            package_name=package_name,
            ranges=ranges,
            resolution=resolution,
        )


def log_install_command(command: str, return_code: int, duration_ms: int) -> None:
    """Log one executed install command."""
    log_data = {"command": command, "return_code": return_code, "duration_ms": duration_ms}
    if return_code != 0:
        _installer_logger.warning("install_command_failed", **log_data)
    else:
        _installer_logger.info("install_command", **log_data)


def log_recursion_limit(depth: int, unmet_count: int) -> None:
    _installer_logger.error("recursion_limit_reached", depth=depth, unmet_count=unmet_count)


def log_registry_lookup(
    package_name: str, version_count: int, cached: bool, response_time_ms: Optional[int] = None
) -> None:
    """Log a registry version listing."""
    log_data = {
        "package_name": package_name,
        "version_count": version_count,
        "cached": cached,
    }
    if response_time_ms is not None:
        log_data["response_time_ms"] = response_time_ms

    if version_count == 0:
        _registry_logger.warning("package_has_no_versions", **log_data)
    else:
        _registry_logger.debug("registry_lookup_completed", **log_data)


def log_run_summary(cache_stats: Dict[str, int], error_stats: Dict[str, int]) -> None:
    """Log cache effectiveness and error counts once a run ends."""
    _installer_logger.info("check_run_completed", cache=cache_stats, errors=error_stats)


def clear_context() -> None:
    for logger in _ALL_LOGGERS:
        logger.clear_context()


def configure_logging(log_level: str = "WARNING") -> None:
    """Set the level of every component logger."""
    level = getattr(logging, log_level.upper(), logging.WARNING)
    for logger in _ALL_LOGGERS:
        logger.logger.setLevel(level)
