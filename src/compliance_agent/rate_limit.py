"""
Per-organization rate limiting and usage metering.

The agent loop treats the limiter as a best-effort collaborator: if it raises,
the turn proceeds with a logged warning.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from compliance_agent.config import RateLimitConfig
from compliance_agent.errors import RateLimitedError
from compliance_agent.logging import get_logger

logger = get_logger("rate_limit")

WINDOW_SECONDS = 60.0
DAY_SECONDS = 86_400
MIN_RETRY_MS = 1000

RATE_LIMIT_RPM = "RATE_LIMIT_RPM"
RATE_LIMIT_TPM = "RATE_LIMIT_TPM"
RATE_LIMIT_DAILY = "RATE_LIMIT_DAILY"

PERIOD_SECONDS = {"week": 7 * DAY_SECONDS, "month": 30 * DAY_SECONDS}
USAGE_RETENTION_SECONDS = max(PERIOD_SECONDS.values())


@dataclass
class RateLimitResult:
    allowed: bool
    reason: str | None = None  # RATE_LIMIT_RPM | RATE_LIMIT_TPM | RATE_LIMIT_DAILY
    retry_after_ms: int | None = None
    remaining: dict[str, int] = field(default_factory=dict)

    def to_error(self) -> RateLimitedError:
        seconds = (self.retry_after_ms or 0) // 1000
        return RateLimitedError(
            f"Rate limit exceeded. Please try again in {seconds} seconds.",
            retry_after_ms=self.retry_after_ms,
            reason=self.reason,
        )


@dataclass
class UsageRecord:
    organization_id: str
    user_id: str
    input_tokens: int
    output_tokens: int
    model: str
    feature_type: str = "chat"
    provider: str = "anthropic"
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0
    entity_type: str | None = None
    entity_id: str | None = None
    duration_ms: int | None = None
    timestamp: float = field(default_factory=time.time)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class UsageStats:
    total_requests: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    by_feature: dict[str, dict[str, int]] = field(default_factory=dict)


@runtime_checkable
class RateLimiter(Protocol):
    def check_and_consume(
        self, organization_id: str, estimated_tokens: int
    ) -> RateLimitResult: ...

    def record_usage(self, usage: UsageRecord) -> None: ...


@dataclass
class _OrgWindow:
    requests: deque[float] = field(default_factory=deque)
    tokens: deque[tuple[float, int]] = field(default_factory=deque)
    day: int = -1
    daily_requests: int = 0
    daily_tokens: int = 0


class InMemoryRateLimiter:
    """
    Sliding one-minute window for requests and tokens, plus daily counters
    that reset at UTC midnight. State is per process.

    Example:
        limiter = InMemoryRateLimiter(RateLimitConfig(requests_per_minute=10))
        result = limiter.check_and_consume("org-1", estimated_tokens=800)
        if not result.allowed:
            print(f"retry in {result.retry_after_ms}ms ({result.reason})")
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, _OrgWindow] = {}
        self._usage: deque[UsageRecord] = deque()  # Arrival order

    def check_and_consume(self, organization_id: str, estimated_tokens: int) -> RateLimitResult:
        limits = self.config.for_org(organization_id)
        now = self._clock()
        window_start = now - WINDOW_SECONDS

        with self._lock:
            window = self._windows.setdefault(organization_id, _OrgWindow())
            while window.requests and window.requests[0] <= window_start:
                window.requests.popleft()
            while window.tokens and window.tokens[0][0] <= window_start:
                window.tokens.popleft()
            today = int(now // DAY_SECONDS)
            if window.day != today:
                window.day = today
                window.daily_requests = 0
                window.daily_tokens = 0

            current_rpm = len(window.requests)
            current_tpm = sum(t for _, t in window.tokens)

            if current_rpm >= limits.requests_per_minute:
                return RateLimitResult(
                    False, RATE_LIMIT_RPM, self._retry_after(window.requests[0], now)
                )
            if current_tpm + estimated_tokens > limits.tokens_per_minute:
                oldest = window.tokens[0][0] if window.tokens else None
                return RateLimitResult(False, RATE_LIMIT_TPM, self._retry_after(oldest, now))
            if (
                window.daily_requests >= limits.requests_per_day
                or window.daily_tokens + estimated_tokens > limits.tokens_per_day
            ):
                until_midnight = (today + 1) * DAY_SECONDS - now
                return RateLimitResult(False, RATE_LIMIT_DAILY, int(until_midnight * 1000))

            window.requests.append(now)
            window.tokens.append((now, estimated_tokens))
            window.daily_requests += 1
            window.daily_tokens += estimated_tokens

            return RateLimitResult(
                True,
                remaining={
                    "rpm": limits.requests_per_minute - current_rpm - 1,
                    "tpm": limits.tokens_per_minute - current_tpm - estimated_tokens,
                    "daily_requests": limits.requests_per_day - window.daily_requests,
                    "daily_tokens": limits.tokens_per_day - window.daily_tokens,
                },
            )

    @staticmethod
    def _retry_after(oldest: float | None, now: float) -> int:
        if oldest is None:
            return MIN_RETRY_MS
        return max(int((oldest + WINDOW_SECONDS - now) * 1000), MIN_RETRY_MS)

    def record_usage(self, usage: UsageRecord) -> None:
        cutoff = self._clock() - USAGE_RETENTION_SECONDS
        with self._lock:
            self._usage.append(usage)
            # Nothing older than the longest stats period is ever read.
            while self._usage and self._usage[0].timestamp < cutoff:
                self._usage.popleft()
        logger.debug(
            "AI usage: org=%s tokens=%d feature=%s",
            usage.organization_id,
            usage.total_tokens,
            usage.feature_type,
        )

    def get_usage_stats(self, organization_id: str, period: str = "day") -> UsageStats:
        """Aggregate recorded usage for ``day`` (since UTC midnight), ``week`` or ``month``."""
        now = self._clock()
        if period == "day":
            since = (now // DAY_SECONDS) * DAY_SECONDS
        elif period in PERIOD_SECONDS:
            since = now - PERIOD_SECONDS[period]
        else:
            raise ValueError(f"Unknown period: {period}")

        stats = UsageStats()
        with self._lock:
            records = [
                u
                for u in self._usage
                if u.organization_id == organization_id and u.timestamp >= since
            ]
        for u in records:
            stats.total_requests += 1
            stats.total_input_tokens += u.input_tokens
            stats.total_output_tokens += u.output_tokens
            feature = stats.by_feature.setdefault(
                u.feature_type or "unknown", {"requests": 0, "tokens": 0}
            )
            feature["requests"] += 1
            feature["tokens"] += u.total_tokens
        return stats
