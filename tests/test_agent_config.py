"""Tests for agent config resolution."""

from __future__ import annotations

import pytest

from concierge.models import AgentConfig
from concierge.prompts import DEFAULT_BUSINESS_PROMPT, DEFAULT_GLOBAL_PROMPT
from concierge.services.agent_config import AgentConfigResolver


@pytest.fixture
def resolver(directory, clock):
    return AgentConfigResolver(directory, default_model="claude-haiku-4-5", clock=clock)


class TestBusinessScope:
    def test_owner_config_is_used_verbatim(self, resolver, directory, add_business):
        add_business("biz-1", owner_id="owner-1")
        directory.save_owner_agent_config(
            "owner-1", AgentConfig(model="claude-sonnet-4-5", system_prompt="Be brief."),
        )

        config = resolver.resolve("biz-1")

        assert config == AgentConfig(model="claude-sonnet-4-5", system_prompt="Be brief.")

    def test_record_config_when_owner_has_none(self, resolver, add_business):
        add_business(
            "biz-1",
            owner_id=None,
            agent_config=AgentConfig(model="claude-opus-4-6", system_prompt="Record prompt"),
        )

        assert resolver.resolve("biz-1").model == "claude-opus-4-6"

    def test_owner_config_beats_record_config(self, resolver, directory, add_business):
        add_business(
            "biz-1",
            agent_config=AgentConfig(model="claude-opus-4-6", system_prompt="Record prompt"),
        )
        directory.save_owner_agent_config(
            "owner-1", AgentConfig(model="claude-sonnet-4-5", system_prompt="Owner prompt"),
        )

        assert resolver.resolve("biz-1").system_prompt == "Owner prompt"

    def test_default_business_config(self, resolver, clock, add_business):
        add_business("biz-1")

        config = resolver.resolve("biz-1")

        assert config.model == "claude-haiku-4-5"
        assert config.system_prompt == DEFAULT_BUSINESS_PROMPT.replace(
            "{{currentDate}}", clock.now.isoformat(),
        )

    def test_unknown_business_still_resolves(self, resolver):
        assert resolver.resolve("ghost").model == "claude-haiku-4-5"


class TestGlobalScope:
    def test_default_global_config(self, resolver):
        config = resolver.resolve()
        assert config.model == "claude-haiku-4-5"
        assert "{{currentDate}}" not in config.system_prompt
        assert config.system_prompt.startswith(DEFAULT_GLOBAL_PROMPT.split("\n")[0])

    def test_stored_global_config(self, resolver, directory):
        directory.save_global_agent_config(
            AgentConfig(model="claude-sonnet-4-5", system_prompt="Global v2"),
        )
        assert resolver.resolve().system_prompt == "Global v2"

    def test_owner_config_never_leaks_into_global(self, resolver, directory, add_business):
        add_business("biz-1")
        directory.save_owner_agent_config(
            "owner-1", AgentConfig(model="claude-sonnet-4-5", system_prompt="Owner prompt"),
        )
        assert resolver.resolve().system_prompt != "Owner prompt"


class TestDateSubstitution:
    def test_substitutes_every_placeholder(self, resolver, directory, clock):
        directory.save_global_agent_config(
            AgentConfig(model="m", system_prompt="{{currentDate}} / {{currentDate}}"),
        )
        now = clock.now.isoformat()
        assert resolver.resolve().system_prompt == f"{now} / {now}"

    def test_other_placeholders_are_left_alone(self, resolver, directory):
        directory.save_global_agent_config(
            AgentConfig(model="m", system_prompt="Hi {{name}} {currentDate}"),
        )
        assert resolver.resolve().system_prompt == "Hi {{name}} {currentDate}"

    def test_uses_current_time_on_each_call(self, resolver, clock):
        first = resolver.resolve().system_prompt
        clock.advance(days=1)
        assert resolver.resolve().system_prompt != first
