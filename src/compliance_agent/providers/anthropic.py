"""
Anthropic provider.

Requires the 'anthropic' extra: pip install compliance-agent[anthropic]
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

try:
    from anthropic import AsyncAnthropic  # type: ignore[import-not-found]
except ImportError:
    raise ImportError(
        "Anthropic provider requires the 'anthropic' package. "
        "Install with: pip install compliance-agent[anthropic]"
    )

from compliance_agent.config import DEFAULT_MODEL, ServiceConfig
from compliance_agent.events import StreamEvent
from compliance_agent.logging import get_logger
from compliance_agent.providers.base import ModelProvider

logger = get_logger("providers.anthropic")


class AnthropicProvider(ModelProvider):
    """
    Streams Messages API responses as ``StreamEvent``s.

    Example:
        from anthropic import AsyncAnthropic

        provider = AnthropicProvider(AsyncAnthropic(), model="claude-sonnet-4-20250514")
        # or from COMPLIANCE_AGENT_MODEL / COMPLIANCE_AGENT_MAX_TOKENS
        provider = AnthropicProvider.from_config(ServiceConfig.from_env())

        async for event in provider.stream(system, messages, tools):
            ...
    """

    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
    ) -> None:
        # AsyncAnthropic() reads ANTHROPIC_API_KEY from the environment.
        self.client = client or AsyncAnthropic()
        self.default_model = model
        self.max_tokens = max_tokens

    @classmethod
    def from_config(
        cls, config: ServiceConfig, client: AsyncAnthropic | None = None
    ) -> AnthropicProvider:
        """Build a provider using ``config.model`` and ``config.max_tokens``."""
        return cls(client, model=config.model, max_tokens=config.max_tokens)

    async def stream(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[StreamEvent]:
        request_kwargs: dict[str, Any] = {
            "model": self.default_model,
            "max_tokens": self.max_tokens,
            "messages": messages,
            "stream": True,
        }
        if system:
            request_kwargs["system"] = system
        if tools:
            request_kwargs["tools"] = tools

        input_tokens = 0
        output_tokens = 0
        cache_read_tokens = 0
        cache_write_tokens = 0
        # content block index -> (tool id, tool name, partial json chunks)
        pending_tools: dict[int, tuple[str, str, list[str]]] = {}

        response = await self.client.messages.create(**request_kwargs)
        async for event in response:
            if event.type == "message_start":
                usage = event.message.usage
                input_tokens = usage.input_tokens or 0
                cache_read_tokens = getattr(usage, "cache_read_input_tokens", None) or 0
                cache_write_tokens = getattr(usage, "cache_creation_input_tokens", None) or 0

            elif event.type == "content_block_start":
                block = event.content_block
                if block.type == "tool_use":
                    pending_tools[event.index] = (block.id, block.name, [])

            elif event.type == "content_block_delta":
                delta = event.delta
                if delta.type == "text_delta":
                    yield StreamEvent(type="text_delta", content=delta.text)
                elif delta.type == "input_json_delta" and event.index in pending_tools:
                    pending_tools[event.index][2].append(delta.partial_json)

            elif event.type == "content_block_stop":
                tool = pending_tools.pop(event.index, None)
                if tool is not None:
                    tool_id, tool_name, chunks = tool
                    raw = "".join(chunks)
                    try:
                        tool_input = json.loads(raw) if raw else {}
                    except json.JSONDecodeError:
                        logger.warning("Malformed tool input for %s: %r", tool_name, raw)
                        tool_input = {}
                    yield StreamEvent(
                        type="tool_use",
                        tool_name=tool_name,
                        tool_call_id=tool_id,
                        tool_input=tool_input,
                    )

            elif event.type == "message_delta":
                if event.usage is not None:
                    output_tokens = event.usage.output_tokens or 0

        yield StreamEvent(
            type="usage",
            usage={
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "cache_read_tokens": cache_read_tokens,
                "cache_write_tokens": cache_write_tokens,
            },
        )
