"""Exception hierarchy for the Nexus Dashboard REST client.

Everything raised by the client derives from :class:`NdClientError`, so the
facade can turn any failure into a single diagnostic without catching
unrelated exceptions.
"""

from typing import Any


class NdClientError(Exception):
    """Base class for all client errors."""


class RequestBuildError(NdClientError):
    """Raised when a request URL cannot be constructed."""


class ConnectivityError(NdClientError):
    """Raised when the backend stays unreachable after all retries."""


class AuthenticationError(NdClientError):
    """Raised when the login endpoint does not hand out a usable token."""


class MalformedResponseError(NdClientError):
    """Raised when a successful response carries a body that is not JSON."""


class BackendError(NdClientError):
    """Raised when the backend answers with an error status.

    Attributes:
        method: HTTP method of the failed request.
        url: Fully resolved request URL.
        status_code: HTTP status of the final attempt.
        payload: Parsed JSON error body, or None when the body was not JSON.
    """

    def __init__(
        self,
        message: str,
        *,
        method: str,
        url: str,
        status_code: int,
        payload: Any = None,
    ):
        super().__init__(message)
        self.method = method
        self.url = url
        self.status_code = status_code
        self.payload = payload

    @property
    def errors(self) -> Any:
        """The ``errors`` field of the parsed error body, if there is one."""
        if isinstance(self.payload, dict):
            return self.payload.get("errors")
        return None


class ResourceNotFound(BackendError):  # noqa: N818
    """Signals a 404: the requested object does not exist."""
