"""
npm registry client for listing published package versions.

The resolution engine only needs the version list of a package. The
client supports private registries through a bearer token taken from the
environment, and caches listings for the rest of the run.
"""

import os
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from httpx import HTTPStatusError, RequestError

from .cache_manager import get_cache_manager
from .cli_config import get_config
from .error_handling import log_credential_error, log_network_error
from .structured_logging import log_registry_lookup

CREDENTIAL_PATTERN = re.compile(r"^[a-zA-Z0-9_\-+=/.:]+$")
MIN_TOKEN_LENGTH = 8
MAX_TOKEN_LENGTH = 500

TOKEN_ENV_VARS = ("PEER_DEP_CHECK_NPM_TOKEN", "NPM_TOKEN", "NPM_AUTH_TOKEN")

# Abbreviated metadata; enough for the versions map and much smaller
NPM_INSTALL_ACCEPT = "application/vnd.npm.install-v1+json; q=1.0, application/json; q=0.8"


class RegistryError(Exception):
    """Raised when a registry cannot list the versions of a package."""

    def __init__(self, package_name: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{package_name}: {message}")
        self.package_name = package_name
        self.status_code = status_code


def _validate_credential(credential: str, credential_type: str = "token") -> str:
    """
    Validate a registry token.

    Raises:
        ValueError: If the token is empty, too short/long or has unsafe characters
    """
    if not credential or not isinstance(credential, str):
        raise ValueError(f"Invalid {credential_type}: must be a non-empty string")

    credential = credential.strip()

    if len(credential) > MAX_TOKEN_LENGTH:
        raise ValueError(f"{credential_type} too long: {len(credential)} chars")
    if len(credential) < MIN_TOKEN_LENGTH:
        raise ValueError(f"{credential_type} too short (minimum {MIN_TOKEN_LENGTH} characters)")
    if not CREDENTIAL_PATTERN.match(credential):
        raise ValueError(f"Invalid {credential_type}: contains unsafe characters")

    return credential


def _load_token_from_env() -> Optional[str]:
    for env_var in TOKEN_ENV_VARS:
        value = os.getenv(env_var)
        if not value:
            continue
        try:
            return _validate_credential(value, f"environment variable {env_var}")
        except ValueError as e:
            log_credential_error(
                "Invalid registry token in environment variable",
                "registry_clients",
                "_load_token_from_env",
                credential_type=env_var,
                exception=e,
            )
    return None


@dataclass(frozen=True)
class RegistryConfig:
    """Where and how to reach the registry."""

    base_url: str
    token: Optional[str] = None
    user_agent: str = "peer-dep-check/1.0.0"
    timeout: float = 30.0

    def __post_init__(self):
        if not self.base_url or not isinstance(self.base_url, str):
            raise ValueError("base_url must be a non-empty string")
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))
        if self.token:
            object.__setattr__(self, "token", _validate_credential(self.token))

    def get_headers(self) -> Dict[str, str]:
        headers = {"User-Agent": self.user_agent, "Accept": NPM_INSTALL_ACCEPT}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @classmethod
    def from_config(cls) -> "RegistryConfig":
        network = get_config().network
        return cls(
            base_url=network.registry_url,
            token=_load_token_from_env(),
            user_agent=network.user_agent,
            timeout=network.timeout_seconds,
        )


def package_url(base_url: str, package_name: str) -> str:
    """Registry document URL; scoped names keep '@' and escape the slash."""
    return f"{base_url}/{quote(package_name.strip(), safe='@')}"


def _version_keys(document: Any) -> List[str]:
    """Keys of the packument's versions map; ValueError if the shape is wrong."""
    if not isinstance(document, dict):
        raise ValueError(f"expected a JSON object, got {type(document).__name__}")
    versions = document.get("versions") or {}
    if not isinstance(versions, dict):
        raise ValueError("'versions' is not an object")
    return list(versions.keys())


class NpmRegistryClient:
    """
    Lists published versions from an npm-compatible registry.

    Uses the async context manager pattern for httpx.AsyncClient resource
    management: the HTTP client exists only inside ``async with``.
    """

    def __init__(
        self,
        registry_config: Optional[RegistryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        use_cache: Optional[bool] = None,
    ):
        self.registry_config = registry_config or RegistryConfig.from_config()
        self._transport = transport
        self.use_cache = (
            get_config().performance.enable_caching if use_cache is None else use_cache
        )
        self.client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self.client = httpx.AsyncClient(
            timeout=self.registry_config.timeout,
            headers=self.registry_config.get_headers(),
            transport=self._transport,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client:
            await self.client.aclose()
            self.client = None

    async def get_available_versions(self, package_name: str) -> List[str]:
        """
        List every published version of a package.

        Returns:
            Version strings in registry order; empty if the package does not exist.

        Raises:
            RegistryError: On network failures and non-404 HTTP errors
        """
        if not package_name or not isinstance(package_name, str):
            raise RegistryError(str(package_name), "Invalid package name")

        base_url = self.registry_config.base_url
        cache_manager = get_cache_manager()
        if self.use_cache:
            cached = cache_manager.get(package_name, base_url)
            if cached is not None:
                log_registry_lookup(package_name, len(cached), cached=True)
                return list(cached)

        if self.client is None:
            raise RegistryError(
                package_name, "HTTP client not initialized - use within async context manager"
            )

        url = package_url(base_url, package_name)
        start_time = time.time()

        try:
            response = await self.client.get(url)
            if response.status_code == 404:
                versions: List[str] = []
            else:
                response.raise_for_status()
                versions = _version_keys(response.json())
        except HTTPStatusError as e:
            log_network_error(
                f"Registry returned an error for {package_name}",
                "registry_clients",
                "get_available_versions",
                url=url,
                status_code=e.response.status_code,
                exception=e,
            )
            raise RegistryError(
                package_name, f"HTTP {e.response.status_code}", e.response.status_code
            ) from e
        except RequestError as e:
            log_network_error(
                f"Network error while listing versions of {package_name}",
                "registry_clients",
                "get_available_versions",
                url=url,
                exception=e,
            )
            raise RegistryError(package_name, f"Network error: {e}") from e
        except ValueError as e:
            raise RegistryError(package_name, f"Invalid registry response: {e}") from e

        duration_ms = int((time.time() - start_time) * 1000)
        log_registry_lookup(package_name, len(versions), cached=False, response_time_ms=duration_ms)

        if self.use_cache:
            cache_manager.put(package_name, base_url, tuple(versions))
        return versions
