"""Domain models shared by the stores, the orchestrator and the API layer.

All models are Pydantic so that the API schemas can embed them directly and
the stores can validate what comes back from the database.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    HUMAN_OPERATOR = "human_operator"


class VerificationStatus(StrEnum):
    UNCLAIMED = "unclaimed"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ── Usage & configuration ────────────────────────────────────────────


class TokenUsage(BaseModel):
    input_tokens: int = Field(0, ge=0)
    output_tokens: int = Field(0, ge=0)
    total_tokens: int = Field(0, ge=0)

    @classmethod
    def from_counts(cls, input_tokens: int, output_tokens: int) -> TokenUsage:
        return cls(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
        )


class AgentConfig(BaseModel):
    """The (model id, system prompt) pair driving one completion."""

    model: str = Field(..., min_length=1)
    system_prompt: str = Field(..., min_length=1)


# ── Messages ─────────────────────────────────────────────────────────


class ReplyTo(BaseModel):
    message_id: str
    text: str
    author: str


class MessageDraft(BaseModel):
    """A message before the store has assigned its id and timestamp."""

    session_id: str
    business_id: str | None = None
    role: MessageRole
    text: str
    usage: TokenUsage | None = None
    cost: float | None = Field(None, ge=0)
    author_name: str | None = None
    reply_to: ReplyTo | None = None


class Message(MessageDraft):
    id: str
    timestamp: datetime


# ── Sessions ─────────────────────────────────────────────────────────


class SessionDraft(BaseModel):
    business_id: str | None = None
    participant_name: str
    participant_phone: str
    participant_email: str | None = None


class Session(SessionDraft):
    id: str
    created_at: datetime
    updated_at: datetime
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0

    @property
    def is_global(self) -> bool:
        return self.business_id is None


class SessionSummary(Session):
    message_count: int = 0


# ── Directory ────────────────────────────────────────────────────────


class BusinessRecord(BaseModel):
    """Internally curated, authoritative data about a business."""

    id: str
    display_name: str | None = None
    category: str
    owner_id: str | None = None
    verification_status: VerificationStatus = VerificationStatus.UNCLAIMED
    agent_enabled: bool = False
    agent_config: AgentConfig | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BusinessDetails(BusinessRecord):
    """A BusinessRecord merged on top of the provider's volatile details."""

    model_config = ConfigDict(extra="ignore")

    formatted_address: str | None = None
    international_phone_number: str | None = None
    website: str | None = None
    url: str | None = None
    rating: float | None = None
    user_ratings_total: int | None = None
    opening_hours: list[str] = Field(default_factory=list)
    is_open_now: bool | None = None
    photos: list[dict[str, Any]] = Field(default_factory=list)
    reviews: list[dict[str, Any]] = Field(default_factory=list)
    geometry: dict[str, Any] | None = None
    price_level: int | None = None
    editorial_summary: str | None = None


class CacheEntry(BaseModel):
    business_id: str
    data: dict[str, Any]
    cached_at: datetime


# ── Orchestrator results ─────────────────────────────────────────────


class StartResult(BaseModel):
    session: Session
    history: list[Message]
    is_resumed: bool


class PostMessageResult(BaseModel):
    user_message: Message
    reply: Message
    usage: TokenUsage | None = None
    cost: float | None = None
    # True when the completion failed and ``reply`` is the local apology
    agent_unavailable: bool = False


class SessionDetails(BaseModel):
    session: Session
    messages: list[Message]
