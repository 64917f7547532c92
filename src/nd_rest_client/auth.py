"""Bearer token holder with expiry tracking.

The dashboard does not advertise token lifetimes, so the client assumes a
fixed refresh interval after each login and treats the token as stale a
few seconds before that interval runs out.
"""

import time
from threading import Lock

import structlog

logger = structlog.get_logger(__name__)

# Seconds subtracted from the expiry so a token never lapses mid-request.
EXPIRY_SAFETY_MARGIN = 3


class Credential:
    """Thread-safe bearer token cache.

    Token and expiry are always read and written together under a lock so
    concurrent callers never see a token paired with another token's
    expiry. Concurrent logins are not prevented; the last one wins.
    """

    def __init__(self):
        self._lock = Lock()
        self._token = ""
        self._expires_at = 0.0

    @property
    def expires_at(self) -> float:
        """Absolute expiry as a Unix timestamp (0 when never authenticated)."""
        with self._lock:
            return self._expires_at

    def _valid_locked(self) -> bool:
        return bool(self._token) and self._expires_at > time.time() + EXPIRY_SAFETY_MARGIN

    def is_valid(self) -> bool:
        """Return True if a token is held and has not (nearly) expired."""
        with self._lock:
            return self._valid_locked()

    def valid_token(self) -> str | None:
        """Return the token if it is still valid, otherwise None."""
        with self._lock:
            return self._token if self._valid_locked() else None

    def set_token(self, token: str, ttl_seconds: float) -> None:
        """Store a new token expiring ``ttl_seconds`` from now.

        Args:
            token: Bearer token returned by the login endpoint.
            ttl_seconds: Seconds until the token should be refreshed.
        """
        with self._lock:
            self._token = token
            self._expires_at = time.time() + ttl_seconds
        logger.debug("Stored auth token", expires_in_seconds=ttl_seconds)
