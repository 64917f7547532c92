"""Nexus Dashboard REST API client.

Provides the client that resource and data-source logic talks to: it
logs in lazily, keeps the bearer token fresh, builds requests and hands
them to the retrying transport. Errors either propagate as typed
exceptions (:meth:`NexusDashboardClient.request`) or are reported into a
diagnostics sink (:meth:`NexusDashboardClient.call`).
"""

from typing import Any

import httpx
import pydantic
import structlog

from .auth import Credential
from .builder import build_request, normalize_base_url
from .config import ClientConfig
from .diagnostics import DiagnosticsSink
from .errors import (
    AuthenticationError,
    BackendError,
    NdClientError,
    RequestBuildError,
    ResourceNotFound,
)
from .transport import RetryingTransport
from .types import Empty, LoginPayload, Outcome, RequestDescriptor

logger = structlog.get_logger(__name__)

LOGIN_PATH = "/login"

# Tokens are refreshed after this many seconds.
TOKEN_REFRESH_SECONDS = 1200

_REJECTED_LOGIN_STATUSES = frozenset({401, 403})


class NexusDashboardClient:
    """HTTP client for the Nexus Dashboard REST API.

    A single instance is meant to be shared by every caller in the process.
    The credential is guarded by a lock and HTTP connections are
    thread-local, so concurrent calls from worker threads are safe. Can be
    used as a context manager for automatic cleanup.
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            config: Connection, credential and retry settings.
            transport: Optional httpx transport replacing the network layer.

        Raises:
            RequestBuildError: If the base URL cannot be parsed.
        """
        self.config = config
        self.base_url = normalize_base_url(config.base_url)
        self.credential = Credential()
        self._transport = RetryingTransport(config, transport=transport)

    def __enter__(self):
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager and cleanup resources."""
        self.close()

    def close(self):
        """Close the HTTP connections of the calling thread."""
        self._transport.close()

    def authenticate(self) -> str:
        """Log in and store a fresh token.

        Returns:
            The new bearer token.

        Raises:
            AuthenticationError: If the login response has no usable token
                or login fails with an error status, 404 included.
            ConnectivityError: If the dashboard cannot be reached.
        """
        payload = LoginPayload(
            user_name=self.config.username,
            user_passwd=self.config.password,
            domain=self.config.login_domain or None,
        )
        # Never log the login body, it carries the password.
        descriptor = RequestDescriptor(
            method="POST",
            path=LOGIN_PATH,
            body=payload.to_json(),
            authenticated=False,
            skip_logging_payload=True,
        )
        request = build_request(self.base_url, descriptor)
        logger.info("Authenticating", base_url=str(self.base_url), username=self.config.username)

        try:
            outcome = self._transport.send(request, skip_logging_payload=True)
        except BackendError as exc:
            # A 404 here must not reach callers as the resource-absent signal.
            if exc.status_code in _REJECTED_LOGIN_STATUSES:
                msg = f"Login rejected with HTTP status {exc.status_code}: {exc}"
            else:
                msg = f"Login failed with HTTP status {exc.status_code}: {exc}"
            raise AuthenticationError(msg) from exc

        if isinstance(outcome, Empty):
            msg = "Empty response"
            raise AuthenticationError(msg)

        token = outcome.get("token")
        if not isinstance(token, str) or token in ("", "{}"):
            msg = "Invalid username or password"
            raise AuthenticationError(msg)

        self.credential.set_token(token, TOKEN_REFRESH_SECONDS)
        logger.info("Authenticated", expires_in_seconds=TOKEN_REFRESH_SECONDS)
        return token

    def ensure_session(self) -> str:
        """Return a valid bearer token, logging in first if needed."""
        token = self.credential.valid_token()
        if token is None:
            logger.debug("Auth token missing or expired")
            token = self.authenticate()
        return token

    def request(
        self,
        method: str,
        path: str,
        payload: Any = None,
        authenticated: bool = True,
    ) -> Outcome:
        """Make a REST call and return its outcome.

        Args:
            method: HTTP method.
            path: API path (e.g., "/nexus/api/sitemanagement/v4/sites").
            payload: JSON-serializable body; ignored for GET and DELETE.
            authenticated: Attach the bearer token, logging in if needed.

        Returns:
            Parsed or Empty outcome.

        Raises:
            NdClientError: Any client error, see :mod:`nd_rest_client.errors`.
        """
        try:
            descriptor = RequestDescriptor(
                method=method,
                path=path,
                body=payload,
                authenticated=authenticated,
                skip_logging_payload=self.config.skip_logging_payload,
            )
        except pydantic.ValidationError as exc:
            msg = f"Payload for {method} {path} is not valid JSON: {exc}"
            raise RequestBuildError(msg) from exc
        token = self.ensure_session() if descriptor.authenticated else None
        request = build_request(self.base_url, descriptor, token=token)
        return self._transport.send(request, skip_logging_payload=descriptor.skip_logging_payload)

    def call(
        self,
        method: str,
        path: str,
        payload: Any = None,
        *,
        diagnostics: DiagnosticsSink,
        authenticated: bool = True,
    ) -> Outcome | None:
        """Make a REST call, reporting failures instead of raising them.

        A 404 returns None without reporting anything, so callers can drop
        objects that no longer exist. Every other failure adds exactly one
        error to ``diagnostics`` and returns None.

        Args:
            method: HTTP method.
            path: API path.
            payload: JSON-serializable body.
            diagnostics: Sink receiving the error, if any.
            authenticated: Attach the bearer token, logging in if needed.

        Returns:
            Parsed or Empty outcome, or None on absence or failure.
        """
        method = method.upper()
        path = "/" + path.lstrip("/")
        try:
            return self.request(method, path, payload, authenticated=authenticated)
        except ResourceNotFound:
            logger.debug("Object not found", method=method, path=path)
            return None
        except (RequestBuildError, AuthenticationError) as exc:
            diagnostics.add_error(
                "Creation of rest request failed",
                f"err: {exc}. Please report this issue to the provider developers.",
            )
        except BackendError as exc:
            if exc.payload is not None:
                logger.debug("Error response body", errors=exc.errors)
            diagnostics.add_error(
                f"The {method} {path} rest request failed.",
                f"Code: {exc.status_code} Response: {exc.errors}, err: {exc}. "
                "Please report this issue to the provider developers.",
            )
        except NdClientError as exc:
            diagnostics.add_error(
                f"The {method} {path} rest request failed.",
                f"Err: {exc}. Please report this issue to the provider developers.",
            )
        logger.error("REST request failed", method=method, path=path)
        return None

