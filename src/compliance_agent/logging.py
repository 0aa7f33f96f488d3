"""
Logging for the compliance agent.

Every module logs through a child of the ``compliance_agent`` logger:

- ``executor``: action lifecycle (executed, failed, undone, claim released)
- ``catalog``: action registration and replacement
- ``agent``: chat turns, tool dispatch, tolerated limiter failures
- ``agent_cache``: agent creation and eviction
- ``service``: startup summary (database, provider, model)
- ``rate_limit``, ``skills``, ``events``, ``providers.anthropic``

A host application configures or silences the whole package on the root, or
turns up a single component with ``set_level("DEBUG", "executor")``.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

ROOT_LOGGER_NAME = "compliance_agent"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_root_logger = logging.getLogger(ROOT_LOGGER_NAME)
_level_before_disable: int | None = None


def _to_level(level: str | int) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


def setup_logging(
    level: str | int = "INFO",
    format: str | None = None,
    stream: TextIO | None = None,
    file: str | None = None,
) -> None:
    """
    Attach handlers to the ``compliance_agent`` logger.

    Replaces any handlers installed by an earlier call, so a host can call it
    again after loading ``ServiceConfig.log_level``.

    Example:
        setup_logging("DEBUG")
        setup_logging("INFO", file="/var/log/compliance-agent.log")
    """
    level = _to_level(level)
    _root_logger.setLevel(level)
    _root_logger.handlers.clear()

    formatter = logging.Formatter(format or DEFAULT_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if file:
        handlers.append(logging.FileHandler(file))
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        _root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Child logger for a component, e.g. ``get_logger("executor")``."""
    if name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_level(level: str | int, component: str | None = None) -> None:
    """Set the level of the package, or of one component such as ``"agent"``."""
    target = get_logger(component) if component else _root_logger
    target.setLevel(_to_level(level))


def disable() -> None:
    """Silence every compliance agent logger until ``enable`` is called."""
    global _level_before_disable
    if _level_before_disable is None:
        _level_before_disable = _root_logger.level
    # Children inherit the level; the ``disabled`` flag only covers this logger.
    _root_logger.setLevel(logging.CRITICAL + 1)


def enable() -> None:
    global _level_before_disable
    if _level_before_disable is not None:
        _root_logger.setLevel(_level_before_disable)
        _level_before_disable = None
