"""Access policy: one place that answers "may this actor do this here?".

Rules:

* ``admin`` may do everything.
* ``owner`` may act on a business only while the directory names them as its
  owner and the claim is ``approved``.  Global resources are out of reach.
* ``guest`` is never granted a guarded action.  Starting a session, posting
  a message and reading public business details are not guarded at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from concierge.errors import PermissionDenied
from concierge.models import BusinessRecord, VerificationStatus

logger = logging.getLogger(__name__)


class ActorRole(StrEnum):
    ADMIN = "admin"
    OWNER = "owner"
    GUEST = "guest"


class Action(StrEnum):
    VIEW_SESSION = "view_session"
    LIST_SESSIONS = "list_sessions"
    POST_OPERATOR_MESSAGE = "post_operator_message"
    MANAGE_AGENT_CONFIG = "manage_agent_config"
    MANAGE_BUSINESS = "manage_business"


@dataclass(frozen=True)
class Actor:
    id: str | None
    role: ActorRole = ActorRole.GUEST

    @classmethod
    def guest(cls) -> Actor:
        return cls(id=None, role=ActorRole.GUEST)


@dataclass(frozen=True)
class Resource:
    """What is being acted on: a business (with its record) or the global scope."""

    business: BusinessRecord | None = None

    @property
    def is_global(self) -> bool:
        return self.business is None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.allowed


def authorize(actor: Actor, resource: Resource, action: Action) -> Decision:
    if actor.role is ActorRole.ADMIN:
        return Decision(True, "admin")

    if actor.role is not ActorRole.OWNER or not actor.id:
        return Decision(False, "authentication required")

    if resource.is_global or action is Action.MANAGE_BUSINESS:
        return Decision(False, "admin only")

    business = resource.business
    if business.owner_id != actor.id:
        return Decision(False, "not the owner of this business")
    if business.verification_status is not VerificationStatus.APPROVED:
        return Decision(False, "ownership not verified")
    return Decision(True, "verified owner")


def require(actor: Actor, resource: Resource, action: Action) -> None:
    """Raise ``PermissionDenied`` unless *actor* may perform *action*."""
    decision = authorize(actor, resource, action)
    if not decision:
        scope = "global" if resource.is_global else resource.business.id
        logger.info(
            "Denied %s on %s for %s:%s (%s)",
            action, scope, actor.role, actor.id, decision.reason,
        )
        raise PermissionDenied(f"Not allowed: {decision.reason}", action=action.value)
