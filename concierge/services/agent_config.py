"""Two-level agent config resolution: tenant override, else default."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from concierge.models import AgentConfig
from concierge.prompts import (
    DEFAULT_BUSINESS_PROMPT,
    DEFAULT_GLOBAL_PROMPT,
    render_system_prompt,
)
from concierge.services.directory import DirectoryStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AgentConfigResolver:
    """Pick the (model, system prompt) pair for a session.

    Business scope: the owner's stored config, then the config stored on the
    record, then the default business config.  Global scope: the stored
    global config, then the default global config.  Never fails.
    """

    def __init__(
        self,
        directory: DirectoryStore,
        *,
        default_model: str,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._directory = directory
        self._default_model = default_model
        self._clock = clock

    def default_config(self, business_id: str | None = None) -> AgentConfig:
        prompt = DEFAULT_BUSINESS_PROMPT if business_id else DEFAULT_GLOBAL_PROMPT
        return AgentConfig(model=self._default_model, system_prompt=prompt)

    def resolve(self, business_id: str | None = None) -> AgentConfig:
        config = self._lookup(business_id) or self.default_config(business_id)
        return AgentConfig(
            model=config.model,
            system_prompt=render_system_prompt(
                config.system_prompt, self._clock().isoformat(),
            ),
        )

    def _lookup(self, business_id: str | None) -> AgentConfig | None:
        if business_id is None:
            return self._directory.get_global_agent_config()

        record = self._directory.get_business(business_id)
        if record is None:
            return None
        if record.owner_id:
            owner_config = self._directory.get_owner_agent_config(record.owner_id)
            if owner_config is not None:
                logger.debug("Using owner %s config for %s", record.owner_id, business_id)
                return owner_config
        return record.agent_config
