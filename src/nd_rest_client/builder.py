"""Request construction for the Nexus Dashboard REST API.

Turns a :class:`~nd_rest_client.types.RequestDescriptor` into an
``httpx.Request``. Building is pure: the caller supplies the bearer token,
and obtaining one is the client's job.
"""

import json
from urllib.parse import urljoin

import httpx
import structlog

from .errors import RequestBuildError
from .types import RequestDescriptor

logger = structlog.get_logger(__name__)

BODYLESS_METHODS = frozenset({"GET", "DELETE"})


def normalize_base_url(base_url: str | httpx.URL) -> httpx.URL:
    """Collapse trailing slashes of the base URL path into exactly one.

    The trailing slash makes the base path a directory for reference
    resolution, so it is kept as a prefix of every request path.
    """
    try:
        url = httpx.URL(base_url)
    except httpx.InvalidURL as exc:
        msg = f"Invalid base URL {base_url!r}: {exc}"
        raise RequestBuildError(msg) from exc
    return url.copy_with(path=url.path.rstrip("/") + "/")


def resolve_url(base_url: str | httpx.URL, method: str, path: str) -> httpx.URL:
    """Resolve a request path against the base URL.

    Args:
        base_url: Dashboard base URL, optionally with a path prefix.
        method: HTTP method; PATCH requests get ``validate=false``.
        path: Request path, leading slashes optional.

    Returns:
        Absolute request URL.

    Raises:
        RequestBuildError: If either URL cannot be parsed.
    """
    base = normalize_base_url(base_url)
    try:
        url = httpx.URL(urljoin(str(base), "./" + path.lstrip("/")))
    except httpx.InvalidURL as exc:
        msg = f"Invalid request path {path!r}: {exc}"
        raise RequestBuildError(msg) from exc

    # The backend validates the whole object on PATCH unless told not to.
    if method.upper() == "PATCH":
        url = url.copy_set_param("validate", "false")
    return url


def build_request(
    base_url: str | httpx.URL,
    descriptor: RequestDescriptor,
    token: str | None = None,
) -> httpx.Request:
    """Build the HTTP request for a descriptor.

    Args:
        base_url: Dashboard base URL.
        descriptor: Method, path, body and logging flags of the call.
        token: Bearer token to attach, or None for an anonymous request.

    Returns:
        Request ready to be sent.

    Raises:
        RequestBuildError: If the URL cannot be built.
    """
    url = resolve_url(base_url, descriptor.method, descriptor.path)

    headers = {"Content-Type": "application/json"}
    if token is not None:
        headers["Authorization"] = f"Bearer {token}"
        # Dashboard 2.3 and later only look at the cookie.
        headers["Cookie"] = f"AuthCookie={token}"

    content = None
    if descriptor.method not in BODYLESS_METHODS and descriptor.body is not None:
        content = json.dumps(descriptor.body).encode()

    if descriptor.skip_logging_payload:
        logger.debug("Built request", method=descriptor.method, path=descriptor.path)
    else:
        logger.debug(
            "Built request",
            method=descriptor.method,
            url=str(url),
            authenticated=token is not None,
            body=descriptor.body,
        )

    return httpx.Request(descriptor.method, url, headers=headers, content=content)
