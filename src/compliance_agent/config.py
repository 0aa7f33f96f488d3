"""
Service configuration.

Loaded from YAML, a dictionary, or the environment (``.env`` files are read
through python-dotenv), or constructed programmatically.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from compliance_agent.storage import DEFAULT_DB_PATH

DEFAULT_MODEL = "claude-sonnet-4-20250514"


@dataclass
class RateLimitConfig:
    """
    Per-organization rate limits.

    Example YAML:
        requests_per_minute: 60
        tokens_per_minute: 100000
        per_org:
          org-large:
            requests_per_minute: 600
    """

    requests_per_minute: int = 60
    tokens_per_minute: int = 100_000
    requests_per_day: int = 10_000
    tokens_per_day: int = 5_000_000
    per_org: dict[str, dict[str, int]] = field(default_factory=dict)  # org -> overrides

    def for_org(self, organization_id: str) -> RateLimitConfig:
        """Limits for one organization, with its overrides applied."""
        overrides = self.per_org.get(organization_id)
        if not overrides:
            return self
        return RateLimitConfig(
            requests_per_minute=overrides.get("requests_per_minute", self.requests_per_minute),
            tokens_per_minute=overrides.get("tokens_per_minute", self.tokens_per_minute),
            requests_per_day=overrides.get("requests_per_day", self.requests_per_day),
            tokens_per_day=overrides.get("tokens_per_day", self.tokens_per_day),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RateLimitConfig:
        return cls(
            requests_per_minute=data.get("requests_per_minute", 60),
            tokens_per_minute=data.get("tokens_per_minute", 100_000),
            requests_per_day=data.get("requests_per_day", 10_000),
            tokens_per_day=data.get("tokens_per_day", 5_000_000),
            per_org=data.get("per_org", {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "requests_per_minute": self.requests_per_minute,
            "tokens_per_minute": self.tokens_per_minute,
            "requests_per_day": self.requests_per_day,
            "tokens_per_day": self.tokens_per_day,
            "per_org": self.per_org,
        }


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ServiceConfig:
    """
    Main configuration for the agent service.

    Example YAML:
        db_path: /var/lib/compliance-agent/agent.db
        model: claude-sonnet-4-20250514
        max_tokens: 4096
        history_limit: 20
        ai_skip_preview: true
        rate_limits:
          requests_per_minute: 60
    """

    # Storage
    db_path: Path = DEFAULT_DB_PATH

    # Model
    model: str = DEFAULT_MODEL
    max_tokens: int = 4096

    # Agent loop
    history_limit: int = 20  # Messages of history sent per turn
    action_tool_prefix: str = "action_"  # Tool-name prefix marking actions
    ai_skip_preview: bool = True  # Agent tool calls bypass the preview guard
    agent_cache_size: int = 256

    log_level: str = "INFO"

    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServiceConfig:
        """Create config from a dictionary."""
        return cls(
            db_path=Path(data["db_path"]).expanduser() if data.get("db_path") else DEFAULT_DB_PATH,
            model=data.get("model", DEFAULT_MODEL),
            max_tokens=data.get("max_tokens", 4096),
            history_limit=data.get("history_limit", 20),
            action_tool_prefix=data.get("action_tool_prefix", "action_"),
            ai_skip_preview=data.get("ai_skip_preview", True),
            agent_cache_size=data.get("agent_cache_size", 256),
            log_level=data.get("log_level", "INFO"),
            rate_limits=RateLimitConfig.from_dict(data.get("rate_limits") or {}),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> ServiceConfig:
        """Load config from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_yaml_string(cls, content: str) -> ServiceConfig:
        """Load config from a YAML string."""
        data = yaml.safe_load(content)
        return cls.from_dict(data or {})

    @classmethod
    def from_env(cls, base: ServiceConfig | None = None) -> ServiceConfig:
        """
        Apply ``COMPLIANCE_AGENT_*`` environment variables over ``base``.

        A ``.env`` file in the working directory is loaded first.
        """
        load_dotenv()
        config = base or cls()
        if db := os.environ.get("COMPLIANCE_AGENT_DB"):
            config.db_path = Path(db).expanduser()
        if model := os.environ.get("COMPLIANCE_AGENT_MODEL"):
            config.model = model
        if max_tokens := os.environ.get("COMPLIANCE_AGENT_MAX_TOKENS"):
            config.max_tokens = int(max_tokens)
        if level := os.environ.get("COMPLIANCE_AGENT_LOG_LEVEL"):
            config.log_level = level.upper()
        if skip := os.environ.get("COMPLIANCE_AGENT_AI_SKIP_PREVIEW"):
            config.ai_skip_preview = _env_bool(skip)
        return config

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary."""
        return {
            "db_path": str(self.db_path),
            "model": self.model,
            "max_tokens": self.max_tokens,
            "history_limit": self.history_limit,
            "action_tool_prefix": self.action_tool_prefix,
            "ai_skip_preview": self.ai_skip_preview,
            "agent_cache_size": self.agent_cache_size,
            "log_level": self.log_level,
            "rate_limits": self.rate_limits.to_dict(),
        }
