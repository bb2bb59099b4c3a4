"""Transport-neutral call and response models.

ServiceCall is what a verb handler receives: method, resource path,
URI parameters extracted from the route, multi-valued query parameters,
headers and the decoded request entity. ServiceResponse is what it
returns. The FastAPI adapter in resthandlers.api translates both ways.
"""

from __future__ import annotations

import itertools
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from resthandlers.errors.registry import format_error_message, get_error

_call_ids = itertools.count(1)


def _next_call_id() -> int:
    return next(_call_ids)


class Actor(BaseModel):
    """The authenticated party making the call."""

    id: str | int = Field(..., description="Stable actor identifier.")


class ServiceCall(BaseModel):
    """A single inbound call to a resource endpoint."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: int = Field(default_factory=_next_call_id, description="Call number for log correlation.")
    method: str = Field(..., description="HTTP method, upper case.")
    path: str = Field(default="/", description="Request URL path.")
    uri_params: list[str] = Field(
        default_factory=list,
        description="Route parameters in the order they appear in the path.",
    )
    query: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Query parameters; every value is a list to keep repetitions.",
    )
    headers: dict[str, str] = Field(
        default_factory=dict, description="Request headers keyed by lower-case name."
    )
    entity: Any = Field(default=None, description="Decoded request body.")
    entity_content_type: str | None = Field(
        default=None, description="Request body media type without parameters."
    )
    actor: Actor | None = Field(default=None, description="Authenticated actor, if any.")

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @field_validator("headers")
    @classmethod
    def _lower_header_names(cls, value: dict[str, str]) -> dict[str, str]:
        return {name.lower(): header for name, header in value.items()}

    def header(self, name: str) -> str | None:
        """Return a request header value by case-insensitive name."""
        return self.headers.get(name.lower())

    @property
    def actor_id(self) -> str:
        """Actor id as used in entity tags; ``-`` for anonymous calls."""
        return str(self.actor.id) if self.actor is not None else "-"


class ServiceResponse(BaseModel):
    """Response produced by a verb handler."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status_code: int = Field(..., description="HTTP status code.")
    headers: dict[str, str] = Field(default_factory=dict)
    entity: Any = Field(default=None, description="Response body, JSON-serializable or bytes.")
    content_type: str | None = Field(default=None)

    def set_header(self, name: str, value: str) -> ServiceResponse:
        """Set a header, replacing any existing one of the same name."""
        for existing in list(self.headers):
            if existing.lower() == name.lower():
                del self.headers[existing]
        self.headers[name] = value
        return self

    def get_header(self, name: str) -> str | None:
        """Return a response header value by case-insensitive name."""
        for existing, value in self.headers.items():
            if existing.lower() == name.lower():
                return value
        return None

    def set_entity(self, entity: Any, content_type: str | None = None) -> ServiceResponse:
        """Set the response body and, optionally, its media type."""
        self.entity = entity
        if content_type is not None:
            self.content_type = content_type
        return self


def create_response(status_code: int) -> ServiceResponse:
    """Create an empty response with the given status code."""
    return ServiceResponse(status_code=status_code)


def error_response(code: str, **context: Any) -> ServiceResponse:
    """Create an error response for a registered RSRC error code.

    Keys of ``context`` that are not consumed by the message template are
    added to the entity as-is (for example ``validationErrors``).

    Args:
        code: Registered error code, e.g. ``"RSRC-404-1"``.
        **context: Template values and extra entity members.

    Returns:
        ServiceResponse with ``{errorCode, errorMessage, ...}`` entity.

    Raises:
        KeyError: If the code is not registered.
    """
    error_def = get_error(code)
    if error_def is None:
        raise KeyError(f"Unknown response error code {code!r}")
    template_keys = {"detail", "method"}
    entity: dict[str, Any] = {
        "errorCode": code,
        "errorMessage": format_error_message(
            code, **{k: v for k, v in context.items() if k in template_keys}
        ),
    }
    entity.update({k: v for k, v in context.items() if k not in template_keys})
    return create_response(error_def.status).set_entity(entity)
