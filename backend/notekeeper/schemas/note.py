"""
NoteKeeper Backend — Note Request/Response Schemas
===================================================

What:  Pydantic models defining the notes API contract.
How:   FastAPI validates request bodies against these, serializes responses
       through them, and the notes cache stores NoteResponse lists as JSON.

Request bodies carry only title and body. Any client-supplied `user_id`,
`id` or timestamp is ignored: the owner always comes from the token.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, TypeAdapter, field_validator


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class NotePayload(BaseModel):
    """Body of POST /notes and PUT /notes/{id}. Both fields required and non-blank."""

    title: str = Field(min_length=1, max_length=255, description="Note title")
    body: str = Field(min_length=1, description="Note body")

    @field_validator("title", "body")
    @classmethod
    def reject_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class NoteResponse(BaseModel):
    """A note as returned to its owner and as stored in the notes cache."""

    id: int = Field(description="Note identifier")
    user_id: int = Field(description="Owning user")
    title: str
    body: str
    created_at: datetime = Field(description="Creation timestamp (UTC)")
    updated_at: datetime = Field(description="Last modification timestamp (UTC)")
    deleted_at: Optional[datetime] = Field(
        default=None,
        description="Always null for notes returned by the API",
    )

    model_config = {"from_attributes": True}


# Serializer for cache snapshots (list of notes ⇄ JSON text)
NoteListAdapter = TypeAdapter(List[NoteResponse])


class ErrorResponse(BaseModel):
    """
    Standardized error body for all API errors.

    Example:
        {
            "error": "not_found",
            "message": "note with ID '42' was not found",
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Field-level validation errors")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    cache_entries: int = Field(description="Users currently held in the in-process notes cache")
    uptime_seconds: float = Field(description="Seconds since service started")
