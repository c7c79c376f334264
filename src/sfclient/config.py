from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .env_loader import load_env_files
from .exceptions import ConfigurationError

_logger = logging.getLogger(__name__)

MODES = ("canvas", "rest", "auto")
ERROR_MODES = ("throw", "return")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


# ----------------------------------------------------------------------
# Auto-auth options (REST mode)
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class AuthOptions:
    """How the REST transport authenticates when no token is available yet."""

    user_id: Optional[str] = None
    source_id: Optional[str] = None
    immediate: bool = True
    poll_interval_ms: int = 500
    timeout_ms: int = 15000

    @classmethod
    def from_env(cls) -> AuthOptions:
        return cls(
            user_id=os.getenv("SF_AUTH_USER_ID"),
            source_id=os.getenv("SF_AUTH_SOURCE_ID"),
            poll_interval_ms=_env_int("SF_AUTH_POLL_INTERVAL_MS", 500),
            timeout_ms=_env_int("SF_AUTH_TIMEOUT_MS", 15000),
        )


# ----------------------------------------------------------------------
# Client configuration
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class ClientConfig:
    """Construction-time configuration for :class:`sfclient.client.SalesforceClient`."""

    # "canvas" | "rest" | "auto"
    mode: str = "auto"

    # Canvas: object exposing client(), context() and ajax(url, settings)
    canvas_host: Any = None

    # REST: proxy exposing settings, ajax_request(...) and auth(...)
    rest_proxy: Any = None

    # Optional explicit REST credentials (used when no proxy settings exist)
    rest_url: Optional[str] = None
    access_token: Optional[str] = None

    # Optional: override API version (e.g. "v61.0")
    api_version: Optional[str] = None

    # "throw" raises SfError, "return" yields ok=False envelopes
    error_mode: str = "throw"

    auth: AuthOptions = field(default_factory=AuthOptions)

    # Callable returning an AuthContext; defaults to one built from `auth`
    auth_context_provider: Optional[Callable[[], Any]] = None

    # Seconds per transport call; None leaves timing to the primitive
    request_timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if self.mode not in MODES:
            raise ConfigurationError(f"Unsupported client mode: {self.mode!r} (expected one of {MODES})")
        if self.error_mode not in ERROR_MODES:
            raise ConfigurationError(
                f"Unsupported error mode: {self.error_mode!r} (expected one of {ERROR_MODES})"
            )
        if self.auth.poll_interval_ms <= 0 or self.auth.timeout_ms <= 0:
            raise ConfigurationError("Auth poll interval and timeout must be positive.")
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive when set.")

    @classmethod
    def from_env(cls, **overrides: Any) -> ClientConfig:
        """Load configuration from environment variables (and a .env file if present)."""
        load_env_files(quiet=True)
        values: dict[str, Any] = {
            "mode": os.getenv("SF_CLIENT_MODE", "auto"),
            "rest_url": os.getenv("SF_INSTANCE_URL"),
            "access_token": os.getenv("SF_ACCESS_TOKEN"),
            "api_version": os.getenv("SF_API_VERSION"),
            "error_mode": os.getenv("SF_ERROR_MODE", "throw"),
            "auth": AuthOptions.from_env(),
            "request_timeout": _env_float("SF_REQUEST_TIMEOUT"),
        }
        values.update(overrides)
        _logger.debug("Client configuration loaded from environment (mode=%s)", values["mode"])
        return cls(**values)
