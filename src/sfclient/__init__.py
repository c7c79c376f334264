"""sfclient: one async Salesforce client for Canvas and REST-proxy hosts."""

from importlib.metadata import PackageNotFoundError, version

from .client import BulkQuery, SalesforceClient
from .config import AuthOptions, ClientConfig
from .envelope import ErrorInfo, QueryMeta, ResponseEnvelope
from .exceptions import (
    AuthTimeoutError,
    ConfigurationError,
    MissingCredentialsError,
    RequestValidationError,
    SfError,
)
from .presentation import show_error
from .soql import escape_soql, format_datetime, quote

try:
    __version__ = version("sfclient")
except PackageNotFoundError:  # running from a source checkout
    __version__ = "0.0.0"

__all__ = [
    "AuthOptions",
    "AuthTimeoutError",
    "BulkQuery",
    "ClientConfig",
    "ConfigurationError",
    "ErrorInfo",
    "MissingCredentialsError",
    "QueryMeta",
    "RequestValidationError",
    "ResponseEnvelope",
    "SalesforceClient",
    "SfError",
    "__version__",
    "escape_soql",
    "format_datetime",
    "quote",
    "show_error",
]
