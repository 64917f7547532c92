"""Tests for NexusDashboardClient wired to a mocked dashboard.

A small fake dashboard answers ``/login`` and records every request, so
these tests cover login, lazy re-authentication, header injection and the
diagnostics reported by ``call`` through the public API only.
"""

import json
from collections.abc import Callable
from unittest.mock import patch

import httpx
import pytest

from nd_rest_client import client
from nd_rest_client.config import ClientConfig
from nd_rest_client.diagnostics import Diagnostics
from nd_rest_client.errors import AuthenticationError, ConnectivityError, ResourceNotFound
from nd_rest_client.types import Empty, Parsed

BASE_URL = "https://nd.example.com"
SITES_PATH = "/nexus/api/sitemanagement/v4/sites"


def _fresh(response: httpx.Response) -> httpx.Response:
    """Copy of a canned response, so it can be served more than once."""
    return httpx.Response(response.status_code, headers=response.headers, content=response.content)


class FakeDashboard:
    """MockTransport handler emulating the login endpoint plus one API route."""

    def __init__(
        self,
        api: Callable[[httpx.Request], httpx.Response] | None = None,
        login: httpx.Response | None = None,
    ):
        self.api = api or (lambda request: httpx.Response(200, json={"items": []}))
        self.login = login or httpx.Response(200, json={"token": "tok-1"})
        self.requests: list[httpx.Request] = []

    @property
    def logins(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/login"]

    @property
    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path != "/login"]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/login":
            return _fresh(self.login)
        return self.api(request)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def mock_sleep():
    """Backoff never sleeps in these tests."""
    with patch("nd_rest_client.transport.time.sleep") as sleep:
        yield sleep


def _client(dashboard: FakeDashboard, **overrides) -> client.NexusDashboardClient:
    values = {
        "base_url": BASE_URL,
        "username": "admin",
        "password": "secret",
        "max_retries": 2,
    }
    values.update(overrides)
    return client.NexusDashboardClient(
        ClientConfig(**values),
        transport=httpx.MockTransport(dashboard),
    )


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


def test_authenticate_posts_credentials_with_domain():
    """Login sends userName, userPasswd and domain as JSON."""
    dashboard = FakeDashboard()
    nd = _client(dashboard, login_domain="local")

    nd.authenticate()

    login = dashboard.logins[0]
    assert login.method == "POST"
    assert json.loads(login.read()) == {
        "userName": "admin",
        "userPasswd": "secret",
        "domain": "local",
    }
    assert "Authorization" not in login.headers
    assert nd.credential.valid_token() == "tok-1"


def test_authenticate_omits_empty_domain():
    """No domain field is sent when the login domain is empty."""
    dashboard = FakeDashboard()
    nd = _client(dashboard, login_domain="")

    nd.authenticate()

    assert "domain" not in json.loads(dashboard.logins[0].read())


@patch("nd_rest_client.auth.time")
def test_authenticate_sets_refresh_interval(mock_time):
    """The token expires TOKEN_REFRESH_SECONDS after login."""
    mock_time.time.return_value = 1000.0
    nd = _client(FakeDashboard())

    nd.authenticate()

    assert nd.credential.expires_at == 1000.0 + client.TOKEN_REFRESH_SECONDS


@pytest.mark.parametrize(
    "login",
    [
        httpx.Response(200, json={}),
        httpx.Response(200, json={"token": ""}),
        httpx.Response(200, json={"token": "{}"}),
        httpx.Response(200, json={"token": {}}),
        httpx.Response(200),
    ],
)
def test_authenticate_rejects_unusable_tokens(login):
    """Missing, empty or placeholder tokens are credential errors."""
    dashboard = FakeDashboard(login=login)
    nd = _client(dashboard)

    with pytest.raises(AuthenticationError):
        nd.authenticate()
    assert not nd.credential.is_valid()
    # semantic failures are not retried
    assert len(dashboard.logins) == 1


def test_authenticate_maps_unauthorized_status():
    """A persistent 401 at login is reported as an authentication error."""
    dashboard = FakeDashboard(login=httpx.Response(401, json={"errors": ["bad password"]}))
    nd = _client(dashboard)

    with pytest.raises(AuthenticationError, match="401"):
        nd.authenticate()


def test_authenticate_maps_missing_login_route():
    """A 404 at login is an authentication error, not a missing resource."""
    dashboard = FakeDashboard(login=httpx.Response(404, text="<html><body>Not Found</body></html>"))
    nd = _client(dashboard)

    with pytest.raises(AuthenticationError, match="404"):
        nd.authenticate()


# ---------------------------------------------------------------------------
# request
# ---------------------------------------------------------------------------


def test_request_logs_in_lazily_and_injects_headers():
    """The first authenticated request logs in and carries the token."""
    dashboard = FakeDashboard()
    nd = _client(dashboard)

    outcome = nd.request("GET", SITES_PATH)

    assert outcome == Parsed(status_code=200, document={"items": []})
    assert len(dashboard.logins) == 1
    api = dashboard.api_requests[0]
    assert api.headers["Authorization"] == "Bearer tok-1"
    assert api.headers["Cookie"] == "AuthCookie=tok-1"


def test_request_reuses_valid_token():
    """A valid token is reused without logging in again."""
    dashboard = FakeDashboard()
    nd = _client(dashboard)

    nd.request("GET", SITES_PATH)
    nd.request("GET", SITES_PATH)

    assert len(dashboard.logins) == 1
    assert len(dashboard.api_requests) == 2


@patch("nd_rest_client.auth.time")
def test_request_reauthenticates_after_expiry(mock_time):
    """An expired token triggers a new login before the next request."""
    mock_time.time.return_value = 1000.0
    dashboard = FakeDashboard()
    nd = _client(dashboard)
    nd.request("GET", SITES_PATH)

    mock_time.time.return_value = 1000.0 + client.TOKEN_REFRESH_SECONDS
    nd.request("GET", SITES_PATH)

    assert len(dashboard.logins) == 2


def test_unauthenticated_request_skips_login():
    """authenticated=False sends the request without a token."""
    dashboard = FakeDashboard()
    nd = _client(dashboard)

    nd.request("GET", "/version.json", authenticated=False)

    assert dashboard.logins == []
    assert "Authorization" not in dashboard.api_requests[0].headers


def test_request_patch_sends_validate_false():
    """PATCH requests reach the dashboard with validate=false."""
    dashboard = FakeDashboard(api=lambda request: httpx.Response(200, json={}))
    nd = _client(dashboard)

    nd.request("PATCH", SITES_PATH, [{"op": "replace", "path": "/name", "value": "x"}])

    assert dashboard.api_requests[0].url.params["validate"] == "false"


def test_request_raises_not_found():
    """request() surfaces a 404 as ResourceNotFound."""
    dashboard = FakeDashboard(api=lambda request: httpx.Response(404, json={}))
    nd = _client(dashboard)

    with pytest.raises(ResourceNotFound):
        nd.request("GET", SITES_PATH + "/missing")


def test_context_manager_closes_client():
    """Leaving the context closes the HTTP connections."""
    dashboard = FakeDashboard()
    with _client(dashboard) as nd:
        nd.request("GET", SITES_PATH)
        http_client = nd._transport.client
    assert http_client.is_closed


# ---------------------------------------------------------------------------
# call
# ---------------------------------------------------------------------------


def test_call_returns_parsed_document():
    """A successful call returns the outcome without diagnostics."""
    dashboard = FakeDashboard(api=lambda request: httpx.Response(200, json={"name": "site-1"}))
    diagnostics = Diagnostics()

    outcome = _client(dashboard).call("get", "nexus/api/sites/1", diagnostics=diagnostics)

    assert outcome.get("name") == "site-1"
    assert not diagnostics.has_error()


def test_call_returns_empty_for_delete():
    """DELETE answered with 204 returns Empty."""
    dashboard = FakeDashboard(api=lambda request: httpx.Response(204))
    diagnostics = Diagnostics()

    outcome = _client(dashboard).call("DELETE", SITES_PATH + "/1", diagnostics=diagnostics)

    assert isinstance(outcome, Empty)
    assert not diagnostics.has_error()


def test_call_not_found_returns_none_silently():
    """404 yields None and records nothing."""
    dashboard = FakeDashboard(api=lambda request: httpx.Response(404, json={"errors": ["gone"]}))
    diagnostics = Diagnostics()

    outcome = _client(dashboard).call("GET", SITES_PATH + "/1", diagnostics=diagnostics)

    assert outcome is None
    assert diagnostics.errors == []


def test_call_backend_error_records_one_diagnostic():
    """A failing status adds exactly one diagnostic with code and errors."""
    dashboard = FakeDashboard(
        api=lambda request: httpx.Response(500, json={"errors": ["internal failure"]})
    )
    diagnostics = Diagnostics()

    outcome = _client(dashboard).call("POST", SITES_PATH, {"name": "x"}, diagnostics=diagnostics)

    assert outcome is None
    assert len(diagnostics.errors) == 1
    diagnostic = diagnostics.errors[0]
    assert diagnostic.summary == f"The POST {SITES_PATH} rest request failed."
    assert "Code: 500" in diagnostic.detail
    assert "internal failure" in diagnostic.detail
    # initial attempt plus two retries
    assert len(dashboard.api_requests) == 3


def test_call_html_error_records_extracted_message():
    """An HTML error page is summarized in the diagnostic."""
    page = "<html><body><p>Service temporarily unavailable</p></body></html>"
    dashboard = FakeDashboard(api=lambda request: httpx.Response(503, text=page))
    diagnostics = Diagnostics()

    _client(dashboard, max_retries=0).call("GET", SITES_PATH, diagnostics=diagnostics)

    assert "Service temporarily unavailable" in diagnostics.errors[0].detail


def test_call_login_failure_records_request_creation_error():
    """A failed login is reported once, as a request creation failure."""
    dashboard = FakeDashboard(login=httpx.Response(200, json={"token": ""}))
    diagnostics = Diagnostics()

    outcome = _client(dashboard).call("GET", SITES_PATH, diagnostics=diagnostics)

    assert outcome is None
    assert [d.summary for d in diagnostics.errors] == ["Creation of rest request failed"]
    assert dashboard.api_requests == []


def test_call_login_not_found_records_diagnostic():
    """A 404 from the login route is reported, not treated as an absent resource."""
    dashboard = FakeDashboard(login=httpx.Response(404, text="<html><body>Not Found</body></html>"))
    diagnostics = Diagnostics()

    outcome = _client(dashboard).call("GET", SITES_PATH, diagnostics=diagnostics)

    assert outcome is None
    assert [d.summary for d in diagnostics.errors] == ["Creation of rest request failed"]
    assert dashboard.api_requests == []


def test_call_undecodable_body_records_diagnostic():
    """A response body that cannot be decoded is reported, never raised."""
    dashboard = FakeDashboard(
        api=lambda request: httpx.Response(
            200, headers={"Content-Encoding": "gzip"}, content=b"not gzip"
        )
    )
    diagnostics = Diagnostics()

    outcome = _client(dashboard).call("GET", SITES_PATH, diagnostics=diagnostics)

    assert outcome is None
    assert len(diagnostics.errors) == 1
    assert diagnostics.errors[0].summary == f"The GET {SITES_PATH} rest request failed."
    assert "Failed to decode response" in diagnostics.errors[0].detail


def test_call_connectivity_error_records_diagnostic():
    """An unreachable dashboard is reported, never raised."""

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    nd = client.NexusDashboardClient(
        ClientConfig(base_url=BASE_URL, username="a", password="b", max_retries=1),
        transport=httpx.MockTransport(unreachable),
    )
    nd.credential.set_token("tok-1", 1200)
    diagnostics = Diagnostics()

    outcome = nd.call("GET", SITES_PATH, diagnostics=diagnostics)

    assert outcome is None
    assert len(diagnostics.errors) == 1
    assert diagnostics.errors[0].summary == f"The GET {SITES_PATH} rest request failed."
    assert "connection refused" in diagnostics.errors[0].detail


def test_call_invalid_payload_records_diagnostic():
    """A payload that cannot be serialized is reported, not raised."""
    diagnostics = Diagnostics()

    _client(FakeDashboard()).call("POST", SITES_PATH, {"bad": object()}, diagnostics=diagnostics)

    assert [d.summary for d in diagnostics.errors] == ["Creation of rest request failed"]


def test_connectivity_error_raised_by_request():
    """request() propagates connectivity failures as typed errors."""

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("no route to host")

    nd = client.NexusDashboardClient(
        ClientConfig(base_url=BASE_URL, username="a", password="b", max_retries=0),
        transport=httpx.MockTransport(unreachable),
    )
    with pytest.raises(ConnectivityError, match="no route to host"):
        nd.request("GET", SITES_PATH)
