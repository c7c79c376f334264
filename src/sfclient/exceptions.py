from __future__ import annotations

from typing import Any, Iterable, Optional


class ConfigurationError(RuntimeError):
    """Raised when the client cannot be built or a request is incomplete.

    Never retried and never converted into an envelope, whatever the error mode.
    """


class MissingCredentialsError(ConfigurationError):
    """Raised when the required Salesforce env vars are not present."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__("Missing required environment variables: " + ", ".join(missing))


class RequestValidationError(ConfigurationError):
    """Raised before any network call when an operation lacks required fields."""

    def __init__(self, operation: str, missing: Iterable[str], *, reason: str = "missing required field(s)"):
        self.operation = operation
        self.missing = list(missing)
        super().__init__(f"{operation}() {reason}: " + ", ".join(self.missing))


class SfError(Exception):
    """A failed Salesforce call, whichever transport served it."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        http_status: int = 0,
        code: Optional[str] = None,
        payload: Any = None,
        method: Optional[str] = None,
        url: Optional[str] = None,
        source: Optional[str] = None,
    ) -> None:
        self.message = message or "Salesforce Error"
        self.http_status = http_status or 0
        self.code = code
        self.payload = payload
        self.method = method
        self.url = url
        self.source = source
        super().__init__(self.message)

    def __repr__(self) -> str:
        return (
            f"SfError(http_status={self.http_status!r}, code={self.code!r}, "
            f"message={self.message!r}, method={self.method!r}, url={self.url!r})"
        )


class AuthTimeoutError(SfError):
    """Raised when REST auto-authentication does not produce credentials in time."""

    def __init__(self, timeout_ms: int, *, source: str = "rest") -> None:
        super().__init__(
            f"Salesforce auto-auth timed out after {timeout_ms} ms.",
            http_status=0,
            code="AUTH_TIMEOUT",
            source=source,
        )
        self.timeout_ms = timeout_ms
