"""Session Orchestrator: the use cases behind the chat widget and dashboards.

Flow of ``post_message``:

  persist user message → resolve agent config → business context
  (cache-aside lookup) → completion → cost → persist reply + totals

The user message is committed on its own before the completion runs, so it
survives any later failure.  A failed completion is answered with a local
apology (no usage, no cost) and reported as ``agent_unavailable``.
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta

from concierge.config import (
    BUSINESS_CACHE_TTL_HOURS,
    DATABASE_URL,
    DEFAULT_MODEL_NAME,
    PRICING_TABLE_PATH,
)
from concierge.errors import NotFoundError, ValidationError
from concierge.models import (
    Message,
    MessageDraft,
    MessageRole,
    PostMessageResult,
    ReplyTo,
    SessionDetails,
    SessionDraft,
    SessionSummary,
    StartResult,
)
from concierge.prompts import APOLOGY_TEXT, format_business_context, welcome_text
from concierge.services.agent_config import AgentConfigResolver
from concierge.services.business_details import BusinessDetailsService, BusinessLookup
from concierge.services.cache import BusinessDetailCache
from concierge.services.completion import (
    AnthropicCompletionClient,
    CompletionClient,
    CompletionRequest,
)
from concierge.services.costs import CostLedger, load_pricing_table
from concierge.services.database import Database
from concierge.services.directory import DirectoryStore
from concierge.services.metrics import metrics
from concierge.services.places_client import get_places_client
from concierge.services.session_store import SessionStore

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 2
MIN_PHONE_LENGTH = 7

# RFC 5322-ish pattern, good enough for contact details typed in a widget
_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)


def _validate_email(email: str) -> str | None:
    """Return an error message if *email* looks invalid, else ``None``."""
    if not email or not email.strip():
        return "Email must not be blank when provided."
    if not _EMAIL_RE.match(email.strip()):
        return f'"{email.strip()}" does not look like a valid email address.'
    return None


def _require_text(value: str | None, field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field} must not be empty")
    return value


class SessionOrchestrator:
    def __init__(
        self,
        *,
        sessions: SessionStore,
        directory: DirectoryStore,
        resolver: AgentConfigResolver,
        business_details: BusinessDetailsService,
        completion: CompletionClient,
        ledger: CostLedger,
        database: Database | None = None,
    ) -> None:
        self.sessions = sessions
        self.directory = directory
        self.resolver = resolver
        self.business_details = business_details
        self.completion = completion
        self.ledger = ledger
        self._database = database

    # ── Start or resume ──────────────────────────────────────────────

    def start_or_resume(
        self,
        name: str,
        phone: str,
        email: str | None = None,
        business_id: str | None = None,
    ) -> StartResult:
        """Resume the newest session for (phone, scope) or open a new one.

        Lookup and creation are two separate steps: two simultaneous first
        contacts from one phone can both create a session.
        """
        name = (name or "").strip()
        phone = (phone or "").strip()
        email = (email or "").strip() or None
        if len(name) < MIN_NAME_LENGTH:
            raise ValidationError(f"Name must be at least {MIN_NAME_LENGTH} characters")
        if len(phone) < MIN_PHONE_LENGTH:
            raise ValidationError(f"Phone must be at least {MIN_PHONE_LENGTH} characters")
        if email is not None:
            error = _validate_email(email)
            if error:
                raise ValidationError(error)

        business_name = None
        if business_id is not None:
            record = self.directory.get_business(business_id)
            if record is None:
                raise ValidationError(f"Unknown business {business_id!r}")
            if not record.agent_enabled:
                raise ValidationError(f"Business {business_id!r} has no assistant enabled")
            business_name = record.display_name or record.id

        existing = self.sessions.find_by_phone(phone, business_id)
        if existing is not None:
            history = self.sessions.get_history(existing.id, business_id)
            logger.info(
                "Resumed session %s (scope=%s, %d messages)",
                existing.id, business_id or "global", len(history),
            )
            return StartResult(session=existing, history=history, is_resumed=True)

        session, welcome = self.sessions.create_with_welcome_message(
            SessionDraft(
                business_id=business_id,
                participant_name=name,
                participant_phone=phone,
                participant_email=email,
            ),
            welcome_text(name, business_name),
        )
        return StartResult(session=session, history=[welcome], is_resumed=False)

    # ── Messages ─────────────────────────────────────────────────────

    def post_message(
        self,
        session_id: str,
        text: str,
        *,
        business_id: str | None = None,
        history: list[Message] | None = None,
    ) -> PostMessageResult:
        text = _require_text(text, "Message")
        if self.sessions.find_by_id(session_id, business_id) is None:
            raise NotFoundError(f"Session {session_id!r} not found")
        if history is None:
            history = self.sessions.get_history(session_id, business_id)

        user_message = self.sessions.save_message(
            MessageDraft(
                session_id=session_id,
                business_id=business_id,
                role=MessageRole.USER,
                text=text,
            )
        )

        config = self.resolver.resolve(business_id)
        business_context = None
        if business_id is not None:
            # LookupUnavailable propagates: the request fails, the user message stays
            details = self.business_details.get(business_id)
            if details is not None:
                business_context = format_business_context(details)

        try:
            result = self.completion.complete(
                CompletionRequest(
                    model=config.model,
                    system_prompt=config.system_prompt,
                    history=history,
                    current_message=text,
                    business_context=business_context,
                )
            )
        except Exception:
            logger.exception("Completion failed for session %s", session_id)
            reply = self.sessions.save_message(
                MessageDraft(
                    session_id=session_id,
                    business_id=business_id,
                    role=MessageRole.ASSISTANT,
                    text=APOLOGY_TEXT,
                )
            )
            return PostMessageResult(
                user_message=user_message, reply=reply, agent_unavailable=True,
            )

        usage = result.usage
        cost = self.ledger.cost(config.model, usage.input_tokens, usage.output_tokens)
        reply = self.sessions.save_message(
            MessageDraft(
                session_id=session_id,
                business_id=business_id,
                role=MessageRole.ASSISTANT,
                text=result.text,
                usage=usage,
                cost=cost,
            )
        )
        metrics.record_llm_usage(config.model, usage.input_tokens, usage.output_tokens, cost)
        return PostMessageResult(user_message=user_message, reply=reply, usage=usage, cost=cost)

    def post_human_operator_message(
        self,
        session_id: str,
        text: str,
        author_name: str,
        *,
        business_id: str | None = None,
        reply_to: ReplyTo | None = None,
    ) -> Message:
        """Append a message written by a person on the business side.

        No completion is triggered and the session totals are untouched.
        """
        message = self.sessions.save_message(
            MessageDraft(
                session_id=session_id,
                business_id=business_id,
                role=MessageRole.HUMAN_OPERATOR,
                text=_require_text(text, "Message"),
                author_name=_require_text(author_name, "Author name"),
                reply_to=reply_to,
            )
        )
        logger.info("Operator %s replied in session %s", author_name, session_id)
        return message

    # ── Reads ────────────────────────────────────────────────────────

    def get_history(self, session_id: str, business_id: str | None = None) -> list[Message]:
        return self.sessions.get_history(session_id, business_id)

    def get_session_details(
        self, session_id: str, business_id: str | None = None,
    ) -> SessionDetails | None:
        session = self.sessions.find_by_id(session_id, business_id)
        if session is None:
            return None
        return SessionDetails(
            session=session,
            messages=self.sessions.get_history(session_id, business_id),
        )

    def list_sessions(self, business_id: str | None = None) -> list[SessionSummary]:
        return self.sessions.list_sessions(business_id)

    def close(self) -> None:
        if self._database is not None:
            self._database.close()


def create_session_orchestrator(
    database_url: str | None = None,
    *,
    completion: CompletionClient | None = None,
    lookup: BusinessLookup | None = None,
) -> SessionOrchestrator:
    """Wire the orchestrator from configuration."""
    db = Database(database_url or DATABASE_URL)
    db.initialize()

    directory = DirectoryStore(db)
    cache = BusinessDetailCache(db, ttl=timedelta(hours=BUSINESS_CACHE_TTL_HOURS))
    pricing = load_pricing_table(PRICING_TABLE_PATH) if PRICING_TABLE_PATH else None

    return SessionOrchestrator(
        sessions=SessionStore(db),
        directory=directory,
        resolver=AgentConfigResolver(directory, default_model=DEFAULT_MODEL_NAME),
        business_details=BusinessDetailsService(
            directory, cache, lookup or get_places_client(),
        ),
        completion=completion or AnthropicCompletionClient(),
        ledger=CostLedger(pricing),
        database=db,
    )
