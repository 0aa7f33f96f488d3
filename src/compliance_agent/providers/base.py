"""
Base model provider interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from compliance_agent.events import StreamEvent


class ModelProvider(ABC):
    """
    A streaming chat model.

    ``stream`` yields ``text_delta``, ``tool_use`` and ``usage`` events and
    raises on transport failure; the agent loop turns that into a terminal
    ``error`` event.

    Example implementation:

        class EchoProvider(ModelProvider):
            default_model = "echo"

            async def stream(self, system, messages, tools):
                yield StreamEvent(type="text_delta", content=messages[-1]["content"])
                yield StreamEvent(type="usage", usage={"input_tokens": 1, "output_tokens": 1})
    """

    default_model: str = "unknown"

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def stream(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[StreamEvent]:
        """Stream one assistant turn."""
        ...
