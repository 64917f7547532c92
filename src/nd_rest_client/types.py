"""Request and response types for the Nexus Dashboard REST API.

Pydantic models describing what the client sends and the tagged outcome
it hands back. JSON documents are kept as plain ``JsonValue`` trees and
read through explicit accessors rather than mapped onto fixed schemas.
"""

from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator

from .errors import MalformedResponseError

_MISSING = object()


class RequestDescriptor(BaseModel):
    """A single logical REST call, before it is resolved against a base URL."""

    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    body: JsonValue = None
    authenticated: bool = True
    skip_logging_payload: bool = False

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        # "///foo" and "foo" both become "/foo"
        return "/" + value.lstrip("/")


class LoginPayload(BaseModel):
    """Body of ``POST /login``."""

    model_config = ConfigDict(populate_by_name=True)

    user_name: str = Field(alias="userName")
    user_passwd: str = Field(alias="userPasswd")
    domain: str | None = None

    def to_json(self) -> dict[str, Any]:
        """Wire representation; the domain is omitted when unset."""
        return self.model_dump(by_alias=True, exclude_none=True)


def _walk(document: Any, path: tuple[str | int, ...]) -> Any:
    node = document
    for key in path:
        if isinstance(node, dict) and isinstance(key, str) and key in node:
            node = node[key]
        elif isinstance(node, list) and isinstance(key, int) and -len(node) <= key < len(node):
            node = node[key]
        else:
            return _MISSING
    return node


class Parsed(BaseModel):
    """Successful response with a JSON body."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    document: JsonValue

    def get(self, *path: str | int, default: Any = None) -> Any:
        """Look up a nested value, returning ``default`` if any step is missing.

        Args:
            *path: Object keys and/or list indexes to follow from the root.
            default: Value returned when the path does not exist.
        """
        value = _walk(self.document, path)
        return default if value is _MISSING else value

    def require(self, *path: str | int) -> Any:
        """Look up a nested value that must be present.

        Raises:
            MalformedResponseError: If any step of the path is missing.
        """
        value = _walk(self.document, path)
        if value is _MISSING:
            msg = f"Response is missing {'.'.join(str(p) for p in path)!r}"
            raise MalformedResponseError(msg)
        return value


class Empty(BaseModel):
    """Successful response without a meaningful body (e.g. 204)."""

    model_config = ConfigDict(frozen=True)

    status_code: int


Outcome: TypeAlias = Parsed | Empty
