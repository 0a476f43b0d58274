"""SQLAlchemy schema and connection management.

Layout of the persisted state:

* ``businesses`` / ``owner_agent_configs`` / ``global_agent_config``:
  the Directory Store.
* ``business_detail_cache``: provider payloads owned by the cache, one row
  per business id.
* ``chat_sessions`` partitioned by ``business_id`` (NULL = the global
  collection) and ``chat_messages`` owned by their session.  Every session
  query filters on the same partition key the session was created under.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything we write is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


# ── Directory ────────────────────────────────────────────────────────


class BusinessRow(Base):
    __tablename__ = "businesses"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    owner_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    verification_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="unclaimed",
    )
    agent_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    agent_config: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class OwnerAgentConfigRow(Base):
    __tablename__ = "owner_agent_configs"

    owner_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    system_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class GlobalAgentConfigRow(Base):
    __tablename__ = "global_agent_config"

    id: Mapped[str] = mapped_column(String(20), primary_key=True, default="main")
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    system_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ── Cache ────────────────────────────────────────────────────────────


class BusinessCacheRow(Base):
    __tablename__ = "business_detail_cache"

    business_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    cached_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ── Chat ─────────────────────────────────────────────────────────────


class ChatSessionRow(Base):
    __tablename__ = "chat_sessions"
    __table_args__ = (
        Index("ix_chat_sessions_scope_phone", "business_id", "participant_phone", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    business_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    participant_name: Mapped[str] = mapped_column(String(200), nullable=False)
    participant_phone: Mapped[str] = mapped_column(String(40), nullable=False)
    participant_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)


class ChatMessageRow(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_session_ts", "session_id", "timestamp", "seq"),
    )

    # seq breaks timestamp ties so history order is insertion order
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    session_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("chat_sessions.id"), nullable=False,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    input_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    output_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    author_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    reply_to: Mapped[dict | None] = mapped_column(JSON, nullable=True)


# ── Connection management ────────────────────────────────────────────


class Database:
    """Owns the engine and hands out transactional sessions."""

    def __init__(self, url: str):
        self._url = url
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    def initialize(self) -> None:
        """Create the engine and any missing tables."""
        url = make_url(self._url)
        kwargs: dict[str, Any] = {}
        if url.get_backend_name() == "sqlite":
            kwargs["connect_args"] = {"check_same_thread": False}
            if url.database in (None, "", ":memory:"):
                # One shared connection, otherwise every checkout gets an empty DB
                kwargs["poolclass"] = StaticPool
            else:
                Path(url.database).parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_engine(url, **kwargs)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False)
        logger.info("Database initialised (%s)", url.render_as_string(hide_password=True))

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._engine

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Yield a session whose work commits on exit or rolls back on error."""
        if self._session_factory is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        with self._session_factory.begin() as session:
            yield session

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database closed")
