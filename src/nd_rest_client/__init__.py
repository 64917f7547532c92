"""Nexus Dashboard REST client.

HTTP client for the Nexus Dashboard management API with lazy token-based
authentication, retries with jittered exponential backoff, and readable
errors for HTML pages served by the front-end proxy.

Exports:
    NexusDashboardClient: Client facade used by resource logic.
    ClientConfig: Connection, credential and retry settings.
    Diagnostics: Collector for errors reported by ``call``.
    Parsed, Empty: Response outcomes.
"""

from .client import NexusDashboardClient
from .config import ClientConfig, configure_logging, load_config
from .diagnostics import Diagnostics, DiagnosticsSink
from .errors import (
    AuthenticationError,
    BackendError,
    ConnectivityError,
    MalformedResponseError,
    NdClientError,
    RequestBuildError,
    ResourceNotFound,
)
from .types import Empty, Outcome, Parsed

__version__ = "0.1.0"

__all__ = [
    "AuthenticationError",
    "BackendError",
    "ClientConfig",
    "ConnectivityError",
    "Diagnostics",
    "DiagnosticsSink",
    "Empty",
    "MalformedResponseError",
    "NdClientError",
    "NexusDashboardClient",
    "Outcome",
    "Parsed",
    "RequestBuildError",
    "ResourceNotFound",
    "configure_logging",
    "load_config",
]
