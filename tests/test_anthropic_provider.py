"""Tests for the Anthropic provider's stream translation."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path
from types import SimpleNamespace as NS
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

pytest.importorskip("anthropic")

from compliance_agent.config import ServiceConfig  # noqa: E402
from compliance_agent.events import StreamEvent  # noqa: E402
from compliance_agent.providers.anthropic import AnthropicProvider  # noqa: E402
from compliance_agent.service import AgentService  # noqa: E402


async def _replay(events: list[Any]) -> AsyncIterator[Any]:
    for event in events:
        yield event


def _client(events: list[Any]) -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=_replay(events))
    return client


def message_start(input_tokens: int = 25, cache_read: int | None = None) -> NS:
    usage = NS(
        input_tokens=input_tokens,
        cache_read_input_tokens=cache_read,
        cache_creation_input_tokens=None,
    )
    return NS(type="message_start", message=NS(usage=usage))


def text_block(index: int, *chunks: str) -> list[NS]:
    return [
        NS(type="content_block_start", index=index, content_block=NS(type="text")),
        *(
            NS(type="content_block_delta", index=index, delta=NS(type="text_delta", text=c))
            for c in chunks
        ),
        NS(type="content_block_stop", index=index),
    ]


def tool_block(index: int, tool_id: str, name: str, *json_chunks: str) -> list[NS]:
    return [
        NS(
            type="content_block_start",
            index=index,
            content_block=NS(type="tool_use", id=tool_id, name=name),
        ),
        *(
            NS(
                type="content_block_delta",
                index=index,
                delta=NS(type="input_json_delta", partial_json=c),
            )
            for c in json_chunks
        ),
        NS(type="content_block_stop", index=index),
    ]


def message_delta(output_tokens: int) -> NS:
    return NS(type="message_delta", usage=NS(output_tokens=output_tokens))


async def collect(provider: AnthropicProvider, **kwargs: Any) -> list[StreamEvent]:
    return [
        e
        async for e in provider.stream(
            kwargs.get("system", "You are helpful"),
            kwargs.get("messages", [{"role": "user", "content": "hi"}]),
            kwargs.get("tools", []),
        )
    ]


class TestAnthropicProvider:
    @pytest.mark.asyncio
    async def test_text_and_usage(self) -> None:
        client = _client(
            [message_start(cache_read=7), *text_block(0, "Hel", "lo"), message_delta(12)]
        )
        events = await collect(AnthropicProvider(client, model="claude-test"))

        assert events == [
            StreamEvent(type="text_delta", content="Hel"),
            StreamEvent(type="text_delta", content="lo"),
            StreamEvent(
                type="usage",
                usage={
                    "input_tokens": 25,
                    "output_tokens": 12,
                    "cache_read_tokens": 7,
                    "cache_write_tokens": 0,
                },
            ),
        ]

    @pytest.mark.asyncio
    async def test_tool_use_is_assembled_from_json_chunks(self) -> None:
        client = _client(
            [
                message_start(),
                *text_block(0, "Changing status."),
                *tool_block(1, "toolu_1", "action_change-status", '{"newSta', 'tus": "OPEN"}'),
                message_delta(40),
            ]
        )
        events = await collect(AnthropicProvider(client))

        assert events[1] == StreamEvent(
            type="tool_use",
            tool_name="action_change-status",
            tool_call_id="toolu_1",
            tool_input={"newStatus": "OPEN"},
        )
        assert events[-1].type == "usage"

    @pytest.mark.asyncio
    async def test_tool_without_arguments(self) -> None:
        client = _client([message_start(), *tool_block(0, "toolu_2", "summarize")])
        events = await collect(AnthropicProvider(client))
        assert events[0].tool_input == {}

    @pytest.mark.asyncio
    async def test_malformed_tool_input_becomes_empty(self) -> None:
        client = _client([message_start(), *tool_block(0, "toolu_3", "summarize", '{"len')])
        events = await collect(AnthropicProvider(client))
        assert events[0].tool_name == "summarize"
        assert events[0].tool_input == {}

    @pytest.mark.asyncio
    async def test_request_parameters(self) -> None:
        client = _client([message_start()])
        tools = [{"name": "summarize", "description": "d", "input_schema": {"type": "object"}}]
        provider = AnthropicProvider(client, model="claude-test", max_tokens=1024)

        await collect(provider, system="sys", tools=tools)

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["max_tokens"] == 1024
        assert kwargs["system"] == "sys"
        assert kwargs["tools"] == tools
        assert kwargs["stream"] is True

    @pytest.mark.asyncio
    async def test_empty_system_and_tools_are_omitted(self) -> None:
        client = _client([message_start()])
        await collect(AnthropicProvider(client), system="", tools=[])

        kwargs = client.messages.create.call_args.kwargs
        assert "system" not in kwargs
        assert "tools" not in kwargs

    @pytest.mark.asyncio
    async def test_transport_errors_propagate(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=ConnectionError("reset"))
        with pytest.raises(ConnectionError):
            await collect(AnthropicProvider(client))

    def test_name_and_model(self) -> None:
        provider = AnthropicProvider(MagicMock(), model="claude-test")
        assert provider.name == "AnthropicProvider"
        assert provider.default_model == "claude-test"

    @pytest.mark.asyncio
    async def test_env_model_reaches_the_request(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("COMPLIANCE_AGENT_MODEL", "claude-from-env")
        monkeypatch.setenv("COMPLIANCE_AGENT_MAX_TOKENS", "512")
        client = _client([message_start()])

        provider = AnthropicProvider.from_config(ServiceConfig.from_env(), client=client)
        await collect(provider)

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-from-env"
        assert kwargs["max_tokens"] == 512

    def test_service_builds_provider_from_config(self, tmp_path: Path) -> None:
        config = ServiceConfig(db_path=tmp_path / "agent.db", model="claude-cfg", max_tokens=256)
        with patch("compliance_agent.providers.anthropic.AsyncAnthropic") as client_cls:
            service = AgentService.create(config)

        assert isinstance(service.provider, AnthropicProvider)
        assert service.provider.default_model == "claude-cfg"
        assert service.provider.max_tokens == 256
        assert service.provider.client is client_cls.return_value
