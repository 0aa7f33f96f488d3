"""
Model providers.

Each provider adapts one vendor's streaming API to ``StreamEvent``s.
"""

from compliance_agent.providers.base import ModelProvider

__all__ = ["ModelProvider"]

# Optional imports for specific providers
try:
    from compliance_agent.providers.anthropic import AnthropicProvider  # noqa: F401

    __all__.append("AnthropicProvider")
except ImportError:
    pass
