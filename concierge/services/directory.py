"""Directory Store: internally curated business records and agent configs.

The records here are the source of truth for who may use a business agent
and with what personality.  They are never written to the detail cache.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from concierge.errors import NotFoundError, ValidationError
from concierge.models import AgentConfig, BusinessRecord, VerificationStatus
from concierge.services.database import (
    BusinessRow,
    Database,
    GlobalAgentConfigRow,
    OwnerAgentConfigRow,
    as_utc,
)

logger = logging.getLogger(__name__)

_GLOBAL_CONFIG_ID = "main"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _to_record(row: BusinessRow) -> BusinessRecord:
    return BusinessRecord(
        id=row.id,
        display_name=row.display_name,
        category=row.category,
        owner_id=row.owner_id,
        verification_status=VerificationStatus(row.verification_status),
        agent_enabled=row.agent_enabled,
        agent_config=AgentConfig(**row.agent_config) if row.agent_config else None,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


class DirectoryStore:
    """SQL-backed store of BusinessRecords plus owner and global agent configs."""

    def __init__(self, db: Database, *, clock: Callable[[], datetime] = _utcnow):
        self._db = db
        self._clock = clock

    # ── Business records ─────────────────────────────────────────────

    def get_business(self, business_id: str) -> BusinessRecord | None:
        with self._db.transaction() as s:
            row = s.get(BusinessRow, business_id)
            return _to_record(row) if row else None

    def add_business(self, record: BusinessRecord) -> BusinessRecord:
        """Insert a new record; raises ``ValidationError`` if the id is taken."""
        now = self._clock()
        row = BusinessRow(
            id=record.id,
            display_name=record.display_name,
            category=record.category,
            owner_id=record.owner_id,
            verification_status=record.verification_status.value,
            agent_enabled=record.agent_enabled,
            agent_config=record.agent_config.model_dump() if record.agent_config else None,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._db.transaction() as s:
                s.add(row)
                s.flush()
                result = _to_record(row)
        except IntegrityError as exc:
            raise ValidationError(f"Business {record.id!r} already exists") from exc

        logger.info("Business %s added (category=%s)", record.id, record.category)
        return result

    def list_businesses(self, *, only_approved: bool = False) -> list[BusinessRecord]:
        stmt = select(BusinessRow).order_by(BusinessRow.id)
        if only_approved:
            stmt = stmt.where(
                BusinessRow.verification_status == VerificationStatus.APPROVED.value,
            )
        with self._db.transaction() as s:
            return [_to_record(row) for row in s.scalars(stmt)]

    def set_verification(
        self,
        business_id: str,
        status: VerificationStatus,
        *,
        owner_id: str | None = None,
    ) -> BusinessRecord:
        """Move a claim through the verification workflow.

        Rejecting a claim unlinks the claimant and puts the business back to
        ``unclaimed`` so it can be claimed again.
        """
        return self.update_business(business_id, verification_status=status, owner_id=owner_id)

    def set_agent_enabled(self, business_id: str, enabled: bool) -> BusinessRecord:
        return self.update_business(business_id, agent_enabled=enabled)

    def update_business(
        self,
        business_id: str,
        *,
        verification_status: VerificationStatus | None = None,
        owner_id: str | None = None,
        agent_enabled: bool | None = None,
    ) -> BusinessRecord:
        """Apply a moderation change in one transaction.

        ``owner_id`` is only meaningful together with a verification status.
        """
        if owner_id is not None and verification_status is None:
            raise ValidationError("owner_id requires a verification_status")

        with self._db.transaction() as s:
            row = s.get(BusinessRow, business_id)
            if row is None:
                raise NotFoundError(f"Business {business_id!r} not found")

            if verification_status is VerificationStatus.REJECTED:
                row.owner_id = None
                row.verification_status = VerificationStatus.UNCLAIMED.value
            elif verification_status is not None:
                if owner_id is not None:
                    row.owner_id = owner_id
                row.verification_status = verification_status.value
            if agent_enabled is not None:
                row.agent_enabled = agent_enabled
            row.updated_at = self._clock()
            s.flush()
            result = _to_record(row)

        logger.info(
            "Business %s updated: verification=%s owner=%s agent_enabled=%s",
            business_id, result.verification_status, result.owner_id, result.agent_enabled,
        )
        return result

    def set_business_agent_config(
        self, business_id: str, config: AgentConfig | None,
    ) -> BusinessRecord:
        """Store a config on the record itself (used for unclaimed businesses)."""
        with self._db.transaction() as s:
            row = s.get(BusinessRow, business_id)
            if row is None:
                raise NotFoundError(f"Business {business_id!r} not found")
            row.agent_config = config.model_dump() if config else None
            row.updated_at = self._clock()
            s.flush()
            return _to_record(row)

    # ── Agent configs ────────────────────────────────────────────────

    def get_owner_agent_config(self, owner_id: str) -> AgentConfig | None:
        with self._db.transaction() as s:
            row = s.get(OwnerAgentConfigRow, owner_id)
            if row is None:
                return None
            return AgentConfig(model=row.model, system_prompt=row.system_prompt)

    def save_owner_agent_config(self, owner_id: str, config: AgentConfig) -> AgentConfig:
        with self._db.transaction() as s:
            row = s.get(OwnerAgentConfigRow, owner_id)
            if row is None:
                row = OwnerAgentConfigRow(owner_id=owner_id)
                s.add(row)
            row.model = config.model
            row.system_prompt = config.system_prompt
            row.updated_at = self._clock()
        logger.info("Agent config saved for owner %s (model=%s)", owner_id, config.model)
        return config

    def get_global_agent_config(self) -> AgentConfig | None:
        with self._db.transaction() as s:
            row = s.get(GlobalAgentConfigRow, _GLOBAL_CONFIG_ID)
            if row is None:
                return None
            return AgentConfig(model=row.model, system_prompt=row.system_prompt)

    def save_global_agent_config(self, config: AgentConfig) -> AgentConfig:
        with self._db.transaction() as s:
            row = s.get(GlobalAgentConfigRow, _GLOBAL_CONFIG_ID)
            if row is None:
                row = GlobalAgentConfigRow(id=_GLOBAL_CONFIG_ID)
                s.add(row)
            row.model = config.model
            row.system_prompt = config.system_prompt
            row.updated_at = self._clock()
        logger.info("Global agent config saved (model=%s)", config.model)
        return config
