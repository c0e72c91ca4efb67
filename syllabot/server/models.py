"""Pydantic request/response models for the HTTP endpoints.

WHY: Zapier posts the note-created callback as loosely typed JSON (ids
may be numbers or strings, fields may be missing). A model gives the
endpoint one validated shape and documents it in /docs.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- HubSpot ids are normalized to str
- Origin ids are optional here; the endpoint answers 400 when absent
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class HubnoteCallback(BaseModel):
    """Body Zapier sends once it has tried to create the HubSpot note."""

    status: str = Field(default="", description='"success" when the note exists.')
    correlation_id: Optional[str] = Field(
        default=None, description="Id SyllaBot sent with the original submission."
    )
    hubspot_note_id: Optional[str] = Field(default=None, description="Id of the created note.")
    hubspot_object_type: Optional[str] = Field(
        default=None, description='"ticket" or "deal".'
    )
    hubspot_object_id: Optional[str] = Field(
        default=None, description="Id of the ticket or deal the note is attached to."
    )
    origin_channel_id: Optional[str] = Field(
        default=None, description="Slack channel the /hubnote command ran in."
    )
    origin_user_id: Optional[str] = Field(
        default=None, description="Slack user who ran /hubnote."
    )

    @field_validator(
        "correlation_id",
        "hubspot_note_id",
        "hubspot_object_id",
        mode="before",
    )
    @classmethod
    def _ids_as_str(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value))
        return value


class CallbackResponse(BaseModel):
    ok: bool = Field(description="Always true when the callback was handled.")
    session_id: Optional[str] = Field(
        default=None, description="Attachment session for a successful or repeated note."
    )
    handled: Optional[str] = Field(
        default=None,
        description='"failure" for a failed note, "duplicate" for a repeated callback.',
    )


class ErrorResponse(BaseModel):
    """Standard error response body.

    RULES:
    - ok is always false
    - error is a short machine-readable reason
    """

    ok: bool = Field(default=False, description="Always false.")
    error: str = Field(description="Short error reason.")


class HealthResponse(BaseModel):
    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="Service version string.", json_schema_extra={"example": "0.1.0"})
