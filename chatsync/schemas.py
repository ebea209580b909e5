"""
Pydantic schemas for engine values and the HTTP surface.

This module contains:
- Immutable message values that make up a snapshot
- The draft a caller hands to the message log on append
- Request/response models for the API
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Engine Values
# =============================================================================

class MessageDraft(BaseModel):
    """
    A message as submitted for append.

    Carries no id and no ordering key: both are assigned by the message log.
    """
    text: str = Field(..., min_length=1, description="Message content")
    sender_id: str = Field(..., min_length=1, description="Author identity")
    sender_name: Optional[str] = Field(None, description="Author display name")
    receiver_id: str = Field(..., min_length=1, description="Counterpart identity")

    model_config = {"frozen": True}

    @field_validator("text")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject whitespace-only text."""
        if not v.strip():
            raise ValueError("text must not be blank")
        return v


class ChatMessage(BaseModel):
    """
    A message as reported by the message log.

    created_at is the log's ordering key; timestamp is informational only.
    """
    id: str = Field(..., description="Log-assigned identifier")
    text: str = Field(..., description="Message content")
    sender_id: str = Field(..., description="Author identity")
    sender_name: Optional[str] = Field(None, description="Author display name")
    receiver_id: str = Field(..., description="Counterpart identity")
    created_at: int = Field(..., ge=1, description="Server-assigned ordering key")
    timestamp: Optional[str] = Field(None, description="Server time of append (ISO-8601 UTC)")

    model_config = {
        "frozen": True,
        "from_attributes": True,  # Allow creating from ORM objects
    }


class Peer(BaseModel):
    """An entry of the peer directory."""
    id: str = Field(..., description="Peer identity")
    name: str = Field(..., description="Display name")
    avatar: Optional[str] = Field(None, description="Avatar URL")


# =============================================================================
# Pydantic Request Models
# =============================================================================

class SendRequest(BaseModel):
    """
    Body of POST /conversations/{peer_id}/messages.

    Blank text is accepted here and dropped by the orchestrator, so a blank
    send behaves the same whichever surface it comes from.
    """
    text: str = Field(..., max_length=4096, description="Message content")

    model_config = {
        "json_schema_extra": {
            "examples": [{"text": "Hello"}]
        }
    }


# =============================================================================
# Pydantic Response Models
# =============================================================================

class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Why the service is not ready")


class SessionResponse(BaseModel):
    """Current session state and local identity."""
    state: str = Field(..., description="Session lifecycle state")
    identity: Optional[str] = Field(None, description="Local subject id when ready")
    attached: bool = Field(..., description="Whether the log subscription is active")


class PeersResponse(BaseModel):
    """Response model for GET /peers."""
    data: list[Peer] = Field(default_factory=list, description="Selectable peers")
    default_peer_id: str = Field(..., description="Peer selected by default")


class ConversationResponse(BaseModel):
    """
    Response model for GET /conversations/{peer_id}/messages.

    data is ordered exactly as the message log orders it.
    """
    peer_id: str = Field(..., description="Selected peer")
    data: list[ChatMessage] = Field(default_factory=list, description="Conversation messages")
    total: int = Field(..., ge=0, description="Number of messages in the conversation")


class SendOutcome(BaseModel):
    """Result of one send; also the response of POST /conversations/{peer_id}/messages."""
    status: str = Field(..., description="sent, dropped or failed")
    message: Optional[ChatMessage] = Field(None, description="The appended prompt")
    reply: Optional[ChatMessage] = Field(None, description="The appended responder reply")


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")
