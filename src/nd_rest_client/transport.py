"""Retrying HTTP transport for the Nexus Dashboard REST API.

Sends built requests, classifies responses into outcomes and retries
failed attempts with jittered exponential backoff. The HTTP layer is a
thread-local ``httpx.Client`` configured with the dashboard's fixed TLS
policy and optional proxy.
"""

import itertools
import json
import random
import ssl
import threading
import time

import httpx
import structlog

from .config import ClientConfig
from .errors import (
    BackendError,
    ConnectivityError,
    MalformedResponseError,
    ResourceNotFound,
)
from .html_errors import extract_message
from .types import Empty, Outcome, Parsed

logger = structlog.get_logger(__name__)

CIPHER_SUITES = ":".join(
    [
        "ECDHE-RSA-AES128-SHA",
        "ECDHE-RSA-AES256-SHA",
        "ECDHE-RSA-AES128-SHA256",
        "ECDHE-RSA-AES128-GCM-SHA256",
        "ECDHE-RSA-AES256-GCM-SHA384",
    ]
)

HTTP_OK = 200
HTTP_NO_CONTENT = 204
HTTP_NOT_FOUND = 404


class BackoffPolicy:
    """Bounded exponential backoff with jitter above the floor.

    The delay for attempt ``n`` grows as ``min_delay * factor**n`` up to
    ``max_delay``; only the part above ``min_delay`` is jittered, so a
    delay is never shorter than the floor.
    """

    def __init__(
        self,
        max_retries: int,
        min_delay: float,
        max_delay: float,
        factor: float,
    ):
        self.max_retries = max_retries
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.factor = factor

    @classmethod
    def from_config(cls, config: ClientConfig) -> "BackoffPolicy":
        return cls(
            max_retries=config.max_retries,
            min_delay=config.backoff_min_delay,
            max_delay=config.backoff_max_delay,
            factor=config.backoff_delay_factor,
        )

    def delay(self, attempt: int) -> float:
        """Jittered delay in seconds before retrying after ``attempt``."""
        backoff = min(self.max_delay, self.min_delay * self.factor**attempt)
        return random.uniform(0.5, 1.0) * (backoff - self.min_delay) + self.min_delay

    def backoff(self, attempt: int) -> bool:
        """Sleep before the next attempt if one is allowed.

        Args:
            attempt: Zero-based number of the attempt that just failed.

        Returns:
            True after sleeping if another attempt may be made, False once
            retries are exhausted.
        """
        if attempt >= self.max_retries:
            logger.debug("Retries exhausted", attempt=attempt, max_retries=self.max_retries)
            return False

        delay = self.delay(attempt)
        logger.debug("Backing off", attempt=attempt, delay_seconds=round(delay, 2))
        time.sleep(delay)
        return True


def create_ssl_context(insecure: bool) -> ssl.SSLContext:
    """TLS 1.1 to 1.3 with the ECDHE-RSA cipher suites the dashboard accepts."""
    context = ssl.create_default_context()
    context.minimum_version = ssl.TLSVersion.TLSv1_1
    context.maximum_version = ssl.TLSVersion.TLSv1_3
    context.set_ciphers(CIPHER_SUITES)
    if insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def create_proxy(proxy_url: str, proxy_creds: str | None = None) -> httpx.Proxy:
    """Proxy definition with optional ``username:password`` basic credentials."""
    logger.debug("Using proxy server", proxy_url=proxy_url)
    if not proxy_creds:
        return httpx.Proxy(proxy_url)
    username, _, password = proxy_creds.partition(":")
    return httpx.Proxy(proxy_url, auth=(username, password))


def create_http_client(
    config: ClientConfig,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Create an ``httpx.Client`` following the client configuration.

    Args:
        config: Client configuration (TLS, proxy and timeout settings).
        transport: Optional transport replacing the network layer.
    """
    proxy = None
    if config.proxy_url:
        proxy = create_proxy(config.proxy_url, config.proxy_creds)
    return httpx.Client(
        verify=create_ssl_context(config.insecure),
        proxy=proxy,
        timeout=config.timeout,
        transport=transport,
    )


class RetryingTransport:
    """Sends requests and retries transient failures.

    Thread-safe through thread-local storage of httpx.Client instances.
    Can be used as a context manager for automatic cleanup.
    """

    def __init__(
        self,
        config: ClientConfig,
        policy: BackoffPolicy | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the transport.

        Args:
            config: Client configuration.
            policy: Backoff policy (default: derived from config).
            transport: Optional httpx transport, mainly for tests.
        """
        self._config = config
        self._transport = transport
        self.policy = policy or BackoffPolicy.from_config(config)
        self._local = threading.local()

    @property
    def client(self) -> httpx.Client:
        """Get or create the thread-local httpx client."""
        if not hasattr(self._local, "client") or self._local.client.is_closed:
            self._local.client = create_http_client(self._config, self._transport)
        return self._local.client

    def __enter__(self):
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager and cleanup resources."""
        self.close()

    def close(self):
        """Close the thread-local HTTP client if open."""
        if hasattr(self._local, "client") and not self._local.client.is_closed:
            self._local.client.close()

    def send(self, request: httpx.Request, skip_logging_payload: bool = False) -> Outcome:
        """Send a request, retrying transient failures.

        Transport errors and unexpected statuses are retried with backoff
        until ``max_retries`` is used up. Successful responses, 404,
        undecodable bodies and non-JSON success bodies end the loop
        immediately.

        Args:
            request: Request to send.
            skip_logging_payload: Keep bodies out of the debug log.

        Returns:
            Parsed or Empty outcome.

        Raises:
            ConnectivityError: If the backend stays unreachable or the
                request fails outside the network layer.
            MalformedResponseError: If a response body cannot be decoded or
                a successful response is not JSON.
            ResourceNotFound: If the backend answers 404.
            BackendError: If an error status persists after all retries.
        """
        method = request.method
        url = str(request.url)
        # Bodies are buffered once so every attempt sends a fresh copy.
        replay = self.policy.max_retries != 0
        content = (request.read() or None) if replay else None

        for attempt in itertools.count():
            if replay:
                request = httpx.Request(
                    method, request.url, headers=request.headers, content=content
                )
            if not skip_logging_payload:
                logger.debug("Sending request", method=method, url=url, body=request.content)

            start_time = time.time()
            try:
                response = self.client.send(request)
            except httpx.TransportError as exc:
                if self.policy.backoff(attempt):
                    logger.error("HTTP connection failed", error=str(exc), attempt=attempt)
                    continue
                logger.error("HTTP connection error", error=str(exc), attempt=attempt)
                msg = (
                    "Failed to connect to Nexus Dashboard. Verify that you are "
                    f"connecting to a Nexus Dashboard.\nError message: {exc}"
                )
                raise ConnectivityError(msg) from exc
            except httpx.DecodingError as exc:
                logger.error("Failed to decode response", method=method, url=url, error=str(exc))
                msg = f"Failed to decode response from: {url}. Error: {exc}"
                raise MalformedResponseError(msg) from exc
            except httpx.RequestError as exc:
                logger.error("HTTP request error", method=method, url=url, error=str(exc))
                msg = f"Request to {url} failed.\nError message: {exc}"
                raise ConnectivityError(msg) from exc

            status = response.status_code
            body = response.content
            logger.debug(
                "HTTP response",
                method=method,
                url=url,
                status=status,
                duration_seconds=round(time.time() - start_time, 3),
            )
            if not skip_logging_payload:
                logger.debug("HTTP response body", body=response.text)

            outcome = self._classify(method, url, status, body)
            if outcome is not None:
                return outcome

            if self.policy.backoff(attempt):
                logger.error("HTTP request failed", status=status, attempt=attempt)
                continue
            raise self._backend_error(method, url, response, body)

    def _classify(self, method: str, url: str, status: int, body: bytes) -> Outcome | None:
        """Outcome for a terminal response, or None if it should be retried."""
        if method == "POST" and status == HTTP_OK and not body:
            return Empty(status_code=status)
        if status == HTTP_NO_CONTENT:
            return Empty(status_code=status)
        if status == HTTP_NOT_FOUND:
            payload = None
            try:
                payload = json.loads(body)
            except ValueError:
                pass
            msg = f"{method} {url} returned 404 Not Found"
            raise ResourceNotFound(msg, method=method, url=url, status_code=status, payload=payload)
        if not httpx.codes.is_success(status):
            return None

        if method == "DELETE" and not body.strip():
            return Empty(status_code=status)
        try:
            document = json.loads(body)
        except (ValueError, RecursionError) as exc:
            logger.error("Failed to parse JSON response", method=method, url=url, error=str(exc))
            msg = f"Failed to parse JSON response from: {url}. Error: {exc}"
            raise MalformedResponseError(msg) from exc
        # json.loads only yields JSON values, so the tree is not re-validated.
        return Parsed.model_construct(status_code=status, document=document)

    def _backend_error(
        self,
        method: str,
        url: str,
        response: httpx.Response,
        body: bytes,
    ) -> BackendError:
        """Error for a failing status that survived every retry."""
        status = response.status_code
        try:
            payload = json.loads(body)
        except ValueError:
            # nginx answers with an HTML page when it is overloaded.
            message = extract_message(response.text)
            logger.error("Non-JSON error response", method=method, url=url, message=message)
            msg = (
                f"Failed to parse JSON response from: {url}. Verify that you are "
                f"connecting to a Nexus Dashboard.\nHTTP response status: {status} "
                f"{response.reason_phrase}\nMessage: {message}"
            )
            return BackendError(msg, method=method, url=url, status_code=status)

        msg = f"{method} {url} failed with HTTP status {status}"
        return BackendError(msg, method=method, url=url, status_code=status, payload=payload)
