"""Session Store: chat sessions, their messages and running totals.

Sessions live in one partition per scope: ``business_id IS NULL`` for the
global assistant, ``business_id = <id>`` for a business.  Every query here
filters on the partition key, so a session is only visible from the scope
it was created in.

The two write paths are single transactions:

* ``create_with_welcome_message`` inserts the session and its first message.
* ``save_message`` inserts a message and bumps the session counters with an
  ``UPDATE ... SET total = total + :delta`` so concurrent appends for the
  same session never lose an increment.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy import func, select, update

from concierge.errors import NotFoundError, ValidationError
from concierge.models import (
    Message,
    MessageDraft,
    MessageRole,
    ReplyTo,
    Session,
    SessionDraft,
    SessionSummary,
    TokenUsage,
)
from concierge.services.database import ChatMessageRow, ChatSessionRow, Database, as_utc

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid.uuid4().hex


def _in_scope(business_id: str | None):
    if business_id is None:
        return ChatSessionRow.business_id.is_(None)
    return ChatSessionRow.business_id == business_id


def _to_session(row: ChatSessionRow) -> Session:
    return Session(
        id=row.id,
        business_id=row.business_id,
        participant_name=row.participant_name,
        participant_phone=row.participant_phone,
        participant_email=row.participant_email,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        total_input_tokens=row.total_input_tokens,
        total_output_tokens=row.total_output_tokens,
        total_tokens=row.total_tokens,
        total_cost=row.total_cost,
    )


def _to_message(row: ChatMessageRow, business_id: str | None) -> Message:
    usage = None
    if row.total_tokens is not None:
        usage = TokenUsage(
            input_tokens=row.input_tokens or 0,
            output_tokens=row.output_tokens or 0,
            total_tokens=row.total_tokens,
        )
    return Message(
        id=row.id,
        session_id=row.session_id,
        business_id=business_id,
        role=MessageRole(row.role),
        text=row.text,
        timestamp=as_utc(row.timestamp),
        usage=usage,
        cost=row.cost,
        author_name=row.author_name,
        reply_to=ReplyTo(**row.reply_to) if row.reply_to else None,
    )


class SessionStore:
    def __init__(self, db: Database, *, clock: Callable[[], datetime] = _utcnow):
        self._db = db
        self._clock = clock

    # ── Writes ───────────────────────────────────────────────────────

    def create_with_welcome_message(
        self, draft: SessionDraft, welcome_text: str,
    ) -> tuple[Session, Message]:
        """Create a session together with its first (assistant) message.

        Both rows commit in one transaction: a session never exists
        without a message.
        """
        now = self._clock()
        session_row = ChatSessionRow(
            id=_new_id(),
            business_id=draft.business_id,
            participant_name=draft.participant_name,
            participant_phone=draft.participant_phone,
            participant_email=draft.participant_email,
            created_at=now,
            updated_at=now,
            total_input_tokens=0,
            total_output_tokens=0,
            total_tokens=0,
            total_cost=0.0,
        )
        message_row = ChatMessageRow(
            id=_new_id(),
            session_id=session_row.id,
            role=MessageRole.ASSISTANT.value,
            text=welcome_text,
            timestamp=now,
        )
        with self._db.transaction() as s:
            s.add(session_row)
            s.flush()
            s.add(message_row)
            s.flush()
            session = _to_session(session_row)
            message = _to_message(message_row, draft.business_id)

        logger.info(
            "Created session %s (scope=%s)", session.id, draft.business_id or "global",
        )
        return session, message

    def save_message(self, draft: MessageDraft) -> Message:
        """Append *draft* and apply its usage/cost to the session totals.

        Raises ``NotFoundError`` (and writes nothing) when the session does
        not exist in the draft's scope.
        """
        if draft.role is not MessageRole.ASSISTANT and (
            draft.usage is not None or draft.cost is not None
        ):
            raise ValidationError("Only assistant messages may carry usage or cost")

        usage = draft.usage
        now = self._clock()
        values: dict = {"updated_at": now}
        if usage is not None:
            values["total_input_tokens"] = (
                ChatSessionRow.total_input_tokens + usage.input_tokens
            )
            values["total_output_tokens"] = (
                ChatSessionRow.total_output_tokens + usage.output_tokens
            )
            values["total_tokens"] = ChatSessionRow.total_tokens + usage.total_tokens
        if draft.cost is not None:
            values["total_cost"] = ChatSessionRow.total_cost + draft.cost

        row = ChatMessageRow(
            id=_new_id(),
            session_id=draft.session_id,
            role=draft.role.value,
            text=draft.text,
            timestamp=now,
            input_tokens=usage.input_tokens if usage else None,
            output_tokens=usage.output_tokens if usage else None,
            total_tokens=usage.total_tokens if usage else None,
            cost=draft.cost,
            author_name=draft.author_name,
            reply_to=draft.reply_to.model_dump() if draft.reply_to else None,
        )

        with self._db.transaction() as s:
            result = s.execute(
                update(ChatSessionRow)
                .where(ChatSessionRow.id == draft.session_id, _in_scope(draft.business_id))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise NotFoundError(f"Session {draft.session_id!r} not found")
            s.add(row)
            s.flush()
            message = _to_message(row, draft.business_id)

        logger.debug(
            "Saved %s message %s in session %s", draft.role, message.id, draft.session_id,
        )
        return message

    # ── Reads ────────────────────────────────────────────────────────

    def find_by_id(self, session_id: str, business_id: str | None = None) -> Session | None:
        with self._db.transaction() as s:
            row = s.scalars(
                select(ChatSessionRow).where(
                    ChatSessionRow.id == session_id, _in_scope(business_id),
                )
            ).first()
            return _to_session(row) if row else None

    def find_by_phone(self, phone: str, business_id: str | None = None) -> Session | None:
        """Most recently created session for *phone* in the given scope."""
        with self._db.transaction() as s:
            row = s.scalars(
                select(ChatSessionRow)
                .where(ChatSessionRow.participant_phone == phone, _in_scope(business_id))
                .order_by(ChatSessionRow.created_at.desc())
                .limit(1)
            ).first()
            return _to_session(row) if row else None

    def get_history(self, session_id: str, business_id: str | None = None) -> list[Message]:
        """Messages of the session ordered by timestamp; empty if out of scope."""
        with self._db.transaction() as s:
            rows = s.scalars(
                select(ChatMessageRow)
                .join(ChatSessionRow, ChatSessionRow.id == ChatMessageRow.session_id)
                .where(ChatMessageRow.session_id == session_id, _in_scope(business_id))
                .order_by(ChatMessageRow.timestamp, ChatMessageRow.seq)
            ).all()
            return [_to_message(row, business_id) for row in rows]

    def list_sessions(self, business_id: str | None = None) -> list[SessionSummary]:
        """Sessions of one partition, newest first, with message counts."""
        counts = (
            select(ChatMessageRow.session_id, func.count().label("message_count"))
            .group_by(ChatMessageRow.session_id)
            .subquery()
        )
        stmt = (
            select(ChatSessionRow, func.coalesce(counts.c.message_count, 0))
            .outerjoin(counts, counts.c.session_id == ChatSessionRow.id)
            .where(_in_scope(business_id))
            .order_by(ChatSessionRow.created_at.desc())
        )
        with self._db.transaction() as s:
            return [
                SessionSummary(**_to_session(row).model_dump(), message_count=count)
                for row, count in s.execute(stmt).all()
            ]
