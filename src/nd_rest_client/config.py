"""Client configuration and logging setup."""

import json
import logging
import os
import pathlib
from typing import Any

import pydantic
import structlog

DEFAULT_LOGIN_DOMAIN = "DefaultAuth"
DEFAULT_MAX_RETRIES = 2
DEFAULT_BACKOFF_MIN_DELAY = 4.0
DEFAULT_BACKOFF_MAX_DELAY = 60.0
DEFAULT_BACKOFF_DELAY_FACTOR = 3.0

# nginx on the dashboard gives up after 90 seconds; wait a little longer.
DEFAULT_TIMEOUT = 100.0

# Provider attribute -> environment variable consulted when it is not given.
ENV_VARS = {
    "base_url": "ND_URL",
    "username": "ND_USERNAME",
    "password": "ND_PASSWORD",
    "login_domain": "ND_LOGIN_DOMAIN",
    "insecure": "ND_INSECURE",
    "proxy_url": "ND_PROXY_URL",
    "proxy_creds": "ND_PROXY_CREDS",
    "max_retries": "ND_RETRIES",
}


class ClientConfig(pydantic.BaseModel):
    """Configuration for the Nexus Dashboard REST client."""

    model_config = pydantic.ConfigDict(frozen=True)

    base_url: str = pydantic.Field(
        description="URL of the Nexus Dashboard web interface",
        min_length=1,
    )
    username: str = pydantic.Field(description="Dashboard account name")
    password: str = pydantic.Field(description="Dashboard account password", repr=False)
    login_domain: str | None = pydantic.Field(
        DEFAULT_LOGIN_DOMAIN,
        description="Login domain; empty or None omits it from the login body",
    )
    insecure: bool = pydantic.Field(True, description="Skip TLS certificate checks")
    proxy_url: str | None = pydantic.Field(None, description="Proxy URL with port")
    proxy_creds: str | None = pydantic.Field(
        None,
        description="Proxy credentials as username:password",
        repr=False,
    )
    max_retries: int = pydantic.Field(
        DEFAULT_MAX_RETRIES,
        description="Retries for failed REST calls",
        ge=0,
        le=10,
    )
    backoff_min_delay: float = pydantic.Field(
        DEFAULT_BACKOFF_MIN_DELAY,
        description="Backoff floor in seconds",
        ge=0,
    )
    backoff_max_delay: float = pydantic.Field(
        DEFAULT_BACKOFF_MAX_DELAY,
        description="Backoff ceiling in seconds",
        ge=0,
    )
    backoff_delay_factor: float = pydantic.Field(
        DEFAULT_BACKOFF_DELAY_FACTOR,
        description="Backoff growth factor per attempt",
        ge=1,
    )
    timeout: float = pydantic.Field(
        DEFAULT_TIMEOUT,
        description="Per-request timeout in seconds",
        gt=0,
    )
    skip_logging_payload: bool = pydantic.Field(
        False,
        description="Keep request and response bodies out of debug logs",
    )

    @pydantic.model_validator(mode="after")
    def _check_backoff_bounds(self) -> "ClientConfig":
        if self.backoff_max_delay < self.backoff_min_delay:
            msg = "backoff_max_delay must not be smaller than backoff_min_delay"
            raise ValueError(msg)
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> "ClientConfig":
        """Build a config from keyword overrides, falling back to ND_* variables.

        Overrides that are None are treated as not given, matching how unset
        provider attributes fall back to the environment.
        """
        values = {key: value for key, value in overrides.items() if value is not None}
        for field, env_var in ENV_VARS.items():
            if field in values:
                continue
            env_value = os.environ.get(env_var)
            if env_value:
                values[field] = env_value
        return cls(**values)


def load_config(config_path: str) -> ClientConfig:
    """Load configuration from JSON file."""
    path = pathlib.Path(config_path)
    if not path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        data = json.load(f)

    return ClientConfig(**data)


def configure_logging(log_level_name: str) -> None:
    """Configure structlog for logfmt output."""
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "msg"),
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
