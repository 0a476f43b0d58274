"""FastAPI route definitions for the chat engine API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Header, HTTPException, Request

from concierge.api.schemas import (
    AgentConfigRequest,
    CreateBusinessRequest,
    HealthResponse,
    OperatorMessageRequest,
    PostMessageRequest,
    PostMessageResponse,
    SessionDetailsResponse,
    SessionListResponse,
    StartSessionRequest,
    StartSessionResponse,
    UpdateBusinessRequest,
)
from concierge.errors import (
    ConciergeError,
    LookupUnavailable,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from concierge.models import AgentConfig, BusinessDetails, BusinessRecord, Message
from concierge.orchestrator import SessionOrchestrator
from concierge.policy import Action, Actor, ActorRole, Resource, require

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_STATUS: tuple[tuple[type[ConciergeError], int], ...] = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (PermissionDenied, 403),
    (LookupUnavailable, 503),
)


def _get_orchestrator(request: Request) -> SessionOrchestrator:
    """Retrieve the orchestrator built during the FastAPI lifespan."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=503,
            detail="The service is still starting up. Please try again in a moment.",
        )
    return orchestrator


def _get_actor(x_actor_id: str | None, x_actor_role: str | None) -> Actor:
    """Build the caller identity from headers set by the auth proxy."""
    try:
        role = ActorRole((x_actor_role or "guest").lower())
    except ValueError:
        role = ActorRole.GUEST
    return Actor(id=x_actor_id or None, role=role)


async def _run(http_request: Request, fn: Callable[..., Any], *args, **kwargs) -> Any:
    """Run a blocking orchestrator call off the event loop and map its errors.

    Domain errors become their HTTP status with the error message as
    detail.  Anything else is logged and reported as a generic 500.
    """
    request_id = getattr(http_request.state, "request_id", "?")
    try:
        return await asyncio.to_thread(fn, *args, **kwargs)
    except HTTPException:
        raise
    except ConciergeError as exc:
        for error_cls, status in _ERROR_STATUS:
            if isinstance(exc, error_cls):
                logger.info("[%s] %s: %s", request_id, type(exc).__name__, exc)
                raise HTTPException(status_code=status, detail=str(exc)) from exc
        logger.exception("[%s] Unhandled engine error", request_id)
        raise HTTPException(
            status_code=500, detail="An internal error occurred. Please try again.",
        ) from exc
    except Exception as e:
        logger.exception("[%s] Error processing request", request_id)
        raise HTTPException(
            status_code=500, detail="An internal error occurred. Please try again.",
        ) from e


def _business_resource(orchestrator: SessionOrchestrator, business_id: str | None) -> Resource:
    if business_id is None:
        return Resource()
    record = orchestrator.directory.get_business(business_id)
    if record is None:
        raise NotFoundError(f"Business {business_id!r} not found")
    return Resource(business=record)


# ── Health ───────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


# ── Sessions ─────────────────────────────────────────────────────────


@router.post("/sessions", response_model=StartSessionResponse)
async def start_session(body: StartSessionRequest, http_request: Request):
    """Start a new chat session or resume the latest one for this phone."""
    orchestrator = _get_orchestrator(http_request)
    result = await _run(
        http_request,
        orchestrator.start_or_resume,
        body.name,
        body.phone,
        body.email,
        body.business_id,
    )
    return StartSessionResponse(**result.model_dump())


@router.post("/sessions/{session_id}/messages", response_model=PostMessageResponse)
async def post_message(session_id: str, body: PostMessageRequest, http_request: Request):
    """Send a user message and get the assistant's reply.

    A failed completion still answers (with an apology) and sets
    ``agent_unavailable``.
    """
    orchestrator = _get_orchestrator(http_request)
    result = await _run(
        http_request,
        orchestrator.post_message,
        session_id,
        body.message,
        business_id=body.business_id,
    )
    return PostMessageResponse(**result.model_dump())


@router.post(
    "/sessions/{session_id}/operator-messages",
    response_model=Message,
    status_code=201,
)
async def post_operator_message(
    session_id: str,
    body: OperatorMessageRequest,
    http_request: Request,
    x_actor_id: str | None = Header(None),
    x_actor_role: str | None = Header(None),
):
    """Reply in a session as a person from the business (or admin) side."""
    orchestrator = _get_orchestrator(http_request)
    actor = _get_actor(x_actor_id, x_actor_role)

    def _post() -> Message:
        resource = _business_resource(orchestrator, body.business_id)
        require(actor, resource, Action.POST_OPERATOR_MESSAGE)
        return orchestrator.post_human_operator_message(
            session_id,
            body.message,
            body.author_name,
            business_id=body.business_id,
            reply_to=body.reply_to,
        )

    return await _run(http_request, _post)


@router.get("/sessions/{session_id}", response_model=SessionDetailsResponse)
async def get_session(
    session_id: str,
    http_request: Request,
    business_id: str | None = None,
    x_actor_id: str | None = Header(None),
    x_actor_role: str | None = Header(None),
):
    """Session metadata plus its full message history."""
    orchestrator = _get_orchestrator(http_request)
    actor = _get_actor(x_actor_id, x_actor_role)

    def _details():
        require(actor, _business_resource(orchestrator, business_id), Action.VIEW_SESSION)
        details = orchestrator.get_session_details(session_id, business_id)
        if details is None:
            raise NotFoundError(f"Session {session_id!r} not found")
        return details

    details = await _run(http_request, _details)
    return SessionDetailsResponse(session=details.session, messages=details.messages)


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    http_request: Request,
    business_id: str | None = None,
    x_actor_id: str | None = Header(None),
    x_actor_role: str | None = Header(None),
):
    """Sessions of the global assistant or of one business, newest first."""
    orchestrator = _get_orchestrator(http_request)
    actor = _get_actor(x_actor_id, x_actor_role)

    def _list():
        require(actor, _business_resource(orchestrator, business_id), Action.LIST_SESSIONS)
        return orchestrator.list_sessions(business_id)

    return SessionListResponse(sessions=await _run(http_request, _list))


# ── Businesses ───────────────────────────────────────────────────────


@router.get("/businesses/{business_id}", response_model=BusinessDetails)
async def get_business(business_id: str, http_request: Request):
    """Public business details: provider data with the directory record on top."""
    orchestrator = _get_orchestrator(http_request)

    def _get() -> BusinessDetails:
        details = orchestrator.business_details.get(business_id)
        if details is None:
            raise NotFoundError(f"Business {business_id!r} not found")
        return details

    return await _run(http_request, _get)


@router.post("/businesses", response_model=BusinessRecord, status_code=201)
async def create_business(
    body: CreateBusinessRequest,
    http_request: Request,
    x_actor_id: str | None = Header(None),
    x_actor_role: str | None = Header(None),
):
    """Register a business in the directory (admin only)."""
    orchestrator = _get_orchestrator(http_request)
    actor = _get_actor(x_actor_id, x_actor_role)

    def _create() -> BusinessRecord:
        require(actor, Resource(), Action.MANAGE_BUSINESS)
        return orchestrator.directory.add_business(BusinessRecord(**body.model_dump()))

    return await _run(http_request, _create)


@router.patch("/businesses/{business_id}", response_model=BusinessRecord)
async def update_business(
    business_id: str,
    body: UpdateBusinessRequest,
    http_request: Request,
    x_actor_id: str | None = Header(None),
    x_actor_role: str | None = Header(None),
):
    """Moderate a claim and/or switch the assistant on or off (admin only)."""
    orchestrator = _get_orchestrator(http_request)
    actor = _get_actor(x_actor_id, x_actor_role)

    def _update() -> BusinessRecord:
        require(actor, _business_resource(orchestrator, business_id), Action.MANAGE_BUSINESS)
        return orchestrator.directory.update_business(business_id, **body.model_dump())

    return await _run(http_request, _update)


# ── Agent configuration ──────────────────────────────────────────────


@router.put("/agent-config", response_model=AgentConfig)
async def put_global_agent_config(
    body: AgentConfigRequest,
    http_request: Request,
    x_actor_id: str | None = Header(None),
    x_actor_role: str | None = Header(None),
):
    """Replace the global assistant's config (admin only)."""
    orchestrator = _get_orchestrator(http_request)
    actor = _get_actor(x_actor_id, x_actor_role)

    def _save() -> AgentConfig:
        require(actor, Resource(), Action.MANAGE_AGENT_CONFIG)
        return orchestrator.directory.save_global_agent_config(
            AgentConfig(model=body.model, system_prompt=body.system_prompt),
        )

    return await _run(http_request, _save)


@router.put("/businesses/{business_id}/agent-config", response_model=AgentConfig)
async def put_business_agent_config(
    business_id: str,
    body: AgentConfigRequest,
    http_request: Request,
    x_actor_id: str | None = Header(None),
    x_actor_role: str | None = Header(None),
):
    """Replace a business assistant's config.

    Claimed businesses store it under the owner; unclaimed ones on the
    record itself.
    """
    orchestrator = _get_orchestrator(http_request)
    actor = _get_actor(x_actor_id, x_actor_role)

    def _save() -> AgentConfig:
        resource = _business_resource(orchestrator, business_id)
        require(actor, resource, Action.MANAGE_AGENT_CONFIG)
        config = AgentConfig(model=body.model, system_prompt=body.system_prompt)
        if resource.business.owner_id:
            return orchestrator.directory.save_owner_agent_config(
                resource.business.owner_id, config,
            )
        orchestrator.directory.set_business_agent_config(business_id, config)
        return config

    return await _run(http_request, _save)
