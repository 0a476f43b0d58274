"""AI-completion capability backed by Anthropic through LangChain.

One call per user message, no tools: the system prompt (plus the business
information block, when there is one) goes in a ``SystemMessage`` and the
conversation so far is rendered as a transcript in front of the new message
inside a single ``HumanMessage``.  The transcript form keeps the request
valid whatever the stored role sequence looks like (welcome messages start
with the assistant, failed replies leave two user turns in a row).
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from typing import Any, Protocol

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel

from concierge.config import ANTHROPIC_API_KEY, LLM_MAX_TOKENS, LLM_TEMPERATURE
from concierge.errors import AgentUnavailable
from concierge.models import Message, MessageRole, TokenUsage
from concierge.prompts import OPERATOR_MARKER
from concierge.services.metrics import metrics

logger = logging.getLogger(__name__)

_SPEAKER = {
    MessageRole.USER: "User",
    MessageRole.ASSISTANT: "Assistant",
    MessageRole.HUMAN_OPERATOR: "Assistant",
}


class CompletionRequest(BaseModel):
    model: str
    system_prompt: str
    history: list[Message] = []
    current_message: str
    business_context: str | None = None


class CompletionResult(BaseModel):
    text: str
    usage: TokenUsage


class CompletionClient(Protocol):
    def complete(self, request: CompletionRequest) -> CompletionResult: ...


def _build_llm(model: str) -> ChatAnthropic:
    return ChatAnthropic(
        model=model,
        api_key=ANTHROPIC_API_KEY,
        temperature=LLM_TEMPERATURE,
        max_tokens=LLM_MAX_TOKENS,
    )


def render_transcript(history: Sequence[Message]) -> str:
    """Render stored messages as ``Speaker: text`` lines."""
    lines = []
    for msg in history:
        text = msg.text
        if msg.role is MessageRole.HUMAN_OPERATOR:
            author = f" {msg.author_name}" if msg.author_name else ""
            text = f"{OPERATOR_MARKER}{author}: {text}"
        lines.append(f"{_SPEAKER[msg.role]}: {text}")
    return "\n".join(lines)


def build_messages(request: CompletionRequest) -> list[Any]:
    system = request.system_prompt
    if request.business_context:
        system = f"{system}\n\n## BUSINESS INFORMATION\n{request.business_context}"

    if request.history:
        prompt = (
            "Conversation so far:\n"
            f"{render_transcript(request.history)}\n\n"
            f"User: {request.current_message}"
        )
    else:
        prompt = request.current_message
    return [SystemMessage(content=system), HumanMessage(content=prompt)]


def _content_text(content: Any) -> str:
    """Flatten an AIMessage ``content`` (str or list of content blocks)."""
    if isinstance(content, str):
        return content.strip()
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts).strip()


class AnthropicCompletionClient:
    """Completion client with one cached LangChain chat model per model id."""

    def __init__(
        self,
        llm_factory: Callable[[str], BaseChatModel] = _build_llm,
    ) -> None:
        self._llm_factory = llm_factory
        self._llms: dict[str, BaseChatModel] = {}
        self._lock = threading.Lock()

    def _llm(self, model: str) -> BaseChatModel:
        with self._lock:
            if model not in self._llms:
                self._llms[model] = self._llm_factory(model)
            return self._llms[model]

    def complete(self, request: CompletionRequest) -> CompletionResult:
        llm = self._llm(request.model)
        t0 = time.perf_counter()
        try:
            response = llm.invoke(build_messages(request))
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "anthropic", "llm_invoke",
                error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise AgentUnavailable(f"Completion failed: {type(exc).__name__}") from exc

        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("anthropic", "llm_invoke", latency_ms=elapsed)
        logger.debug("%s responded in %.0fms", request.model, elapsed)

        text = _content_text(response.content)
        if not text:
            raise AgentUnavailable("Completion returned no text")

        usage = getattr(response, "usage_metadata", None) or {}
        return CompletionResult(
            text=text,
            usage=TokenUsage.from_counts(
                int(usage.get("input_tokens", 0)),
                int(usage.get("output_tokens", 0)),
            ),
        )
