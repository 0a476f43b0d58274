"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from concierge.models import (
    AgentConfig,
    Message,
    ReplyTo,
    Session,
    SessionSummary,
    TokenUsage,
    VerificationStatus,
)


class StartSessionRequest(BaseModel):
    """Identity collected by the chat widget before the first message."""

    name: str = Field(..., max_length=200, description="Participant's name")
    phone: str = Field(..., max_length=40, description="Participant's phone number")
    email: str | None = Field(None, max_length=320)
    business_id: str | None = Field(
        None, max_length=255, description="Business to chat with; omit for the global assistant",
    )


class StartSessionResponse(BaseModel):
    session: Session
    history: list[Message]
    is_resumed: bool


class PostMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000, description="The user's message")
    business_id: str | None = Field(None, max_length=255)


class PostMessageResponse(BaseModel):
    reply: Message
    user_message: Message
    usage: TokenUsage | None = None
    cost: float | None = None
    agent_unavailable: bool = False


class OperatorMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    author_name: str = Field(..., min_length=1, max_length=200)
    business_id: str | None = Field(None, max_length=255)
    reply_to: ReplyTo | None = None


class SessionDetailsResponse(BaseModel):
    session: Session
    messages: list[Message]


class SessionListResponse(BaseModel):
    sessions: list[SessionSummary]


class CreateBusinessRequest(BaseModel):
    id: str = Field(..., min_length=1, max_length=255, description="Provider place id")
    category: str = Field(..., min_length=1, max_length=100)
    display_name: str | None = Field(None, max_length=300)
    owner_id: str | None = Field(None, max_length=128)
    verification_status: VerificationStatus = VerificationStatus.UNCLAIMED
    agent_enabled: bool = False


class UpdateBusinessRequest(BaseModel):
    """Fields left as ``None`` are not touched."""

    verification_status: VerificationStatus | None = None
    owner_id: str | None = Field(None, max_length=128)
    agent_enabled: bool | None = None


class AgentConfigRequest(AgentConfig):
    """Model id plus system prompt template (``{{currentDate}}`` allowed)."""


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "concierge-chat-engine"
