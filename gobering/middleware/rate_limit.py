"""Per-IP rate limiting for the public booking and link-token endpoints.

Booking and waitlist registration are limited per hour to curb spam. The
token endpoints (cancel, reschedule, claim) are limited per minute so
link tokens cannot be enumerated. Every request on a templated path counts
against one rule, whatever token it carries.

Counters live in process memory, so each worker enforces its own limits.
"""

import logging
import math
import re
import time
from collections import deque
from dataclasses import dataclass

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

HOUR = 3600
MINUTE = 60


@dataclass(frozen=True)
class RateLimitConfig:
    """Allow ``requests`` calls per ``window_seconds`` for one client."""

    requests: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitRule:
    method: str
    path: str
    pattern: re.Pattern[str]
    config: RateLimitConfig

    def matches(self, method: str, path: str) -> bool:
        return method == self.method and self.pattern.match(path) is not None


_BOOKING = RateLimitConfig(requests=10, window_seconds=HOUR)
_TOKEN_READ = RateLimitConfig(requests=30, window_seconds=MINUTE)
_TOKEN_WRITE = RateLimitConfig(requests=5, window_seconds=MINUTE)

DEFAULT_RATE_LIMITS: dict[tuple[str, str], RateLimitConfig] = {
    ("POST", "/api/v1/professionals/{professional_id}/appointments"): _BOOKING,
    ("POST", "/api/v1/professionals/{professional_id}/waitlist"): _BOOKING,
    ("GET", "/api/v1/appointments/token/{token}"): _TOKEN_READ,
    ("POST", "/api/v1/appointments/token/{token}/cancel"): _TOKEN_WRITE,
    ("POST", "/api/v1/appointments/token/{token}/reschedule"): _TOKEN_WRITE,
    ("GET", "/api/v1/waitlist/{token}"): _TOKEN_READ,
    ("POST", "/api/v1/waitlist/{token}/claim"): _TOKEN_WRITE,
    ("POST", "/api/v1/waitlist/{token}/cancel"): _TOKEN_WRITE,
}

_PLACEHOLDER = re.compile(r"\{[^/]+\}")


def compile_path(path_template: str) -> re.Pattern[str]:
    """Turn ``/a/{param}/b`` into a regex matching one segment per placeholder."""
    parts = _PLACEHOLDER.split(path_template)
    return re.compile("^" + "[^/]+".join(re.escape(part) for part in parts) + "$")


def get_client_ip(request: Request) -> str:
    """Client address, preferring the first hop of X-Forwarded-For."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


class InMemoryRateLimitStorage:
    """Sliding-window request log keyed by rule and client."""

    def __init__(self, sweep_every: int = 1000) -> None:
        self._hits: dict[str, deque[float]] = {}
        self._sweep_every = sweep_every
        self._calls = 0

    def check_and_increment(
        self, key: str, limit: int, window_seconds: int
    ) -> tuple[bool, int, int]:
        """Record a hit for ``key`` if it fits in the window.

        Returns:
            Tuple of (is_allowed, remaining_requests, reset_seconds)
        """
        now = time.monotonic()
        self._maybe_sweep(now, window_seconds)

        hits = self._hits.setdefault(key, deque())
        while hits and now - hits[0] >= window_seconds:
            hits.popleft()

        if len(hits) >= limit:
            reset = math.ceil(window_seconds - (now - hits[0]))
            return False, 0, max(reset, 1)

        hits.append(now)
        reset = math.ceil(window_seconds - (now - hits[0]))
        return True, limit - len(hits), reset

    def _maybe_sweep(self, now: float, window_seconds: int) -> None:
        # Drop idle keys now and then so memory tracks active clients only
        self._calls += 1
        if self._calls % self._sweep_every:
            return
        idle = [
            key
            for key, hits in self._hits.items()
            if not hits or now - hits[-1] >= max(window_seconds, HOUR)
        ]
        for key in idle:
            del self._hits[key]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Answer 429 once a client exceeds the rule for a public endpoint."""

    def __init__(
        self,
        app,
        rate_limits: dict[tuple[str, str], RateLimitConfig] | None = None,
        storage: InMemoryRateLimitStorage | None = None,
        enabled: bool = True,
    ) -> None:
        super().__init__(app)
        self.enabled = enabled
        self.storage = storage or InMemoryRateLimitStorage()
        self.rules = [
            RateLimitRule(method, path, compile_path(path), config)
            for (method, path), config in (rate_limits or DEFAULT_RATE_LIMITS).items()
        ]

    def find_rule(self, method: str, path: str) -> RateLimitRule | None:
        return next((rule for rule in self.rules if rule.matches(method, path)), None)

    async def dispatch(self, request: Request, call_next) -> Response:
        rule = self.find_rule(request.method, request.url.path) if self.enabled else None
        if rule is None:
            return await call_next(request)

        client_ip = get_client_ip(request)
        allowed, remaining, reset = self.storage.check_and_increment(
            f"{rule.method}:{rule.path}:{client_ip}",
            rule.config.requests,
            rule.config.window_seconds,
        )
        headers = {
            "X-RateLimit-Limit": str(rule.config.requests),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(reset),
        }

        if not allowed:
            logger.warning(
                f"Rate limit exceeded: {request.method} {request.url.path} from {client_ip}"
            )
            return JSONResponse(
                status_code=429,
                content={
                    "detail": "Too many requests. Please try again later.",
                    "retry_after": reset,
                },
                headers={"Retry-After": str(reset), **headers},
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
