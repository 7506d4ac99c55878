"""Tests for the rate limiting middleware."""

from unittest.mock import patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from gobering.middleware.rate_limit import (
    InMemoryRateLimitStorage,
    RateLimitConfig,
    RateLimitMiddleware,
    compile_path,
)

LIMITS = {
    ("POST", "/waitlist/{token}/claim"): RateLimitConfig(requests=2, window_seconds=60),
}


def build_client(enabled: bool = True) -> TestClient:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, rate_limits=LIMITS, enabled=enabled)

    @app.post("/waitlist/{token}/claim")
    async def claim(token: str) -> dict:
        return {"token": token}

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return TestClient(app)


class TestCompilePath:
    def test_placeholder_matches_one_segment(self) -> None:
        pattern = compile_path("/api/v1/waitlist/{token}/claim")

        assert pattern.match("/api/v1/waitlist/abc-123/claim")
        assert not pattern.match("/api/v1/waitlist/abc/123/claim")
        assert not pattern.match("/api/v1/waitlist/abc/cancel")


class TestStorage:
    def test_counts_within_window(self) -> None:
        storage = InMemoryRateLimitStorage()

        assert storage.check_and_increment("k", 2, 60)[:2] == (True, 1)
        assert storage.check_and_increment("k", 2, 60)[:2] == (True, 0)
        assert storage.check_and_increment("k", 2, 60)[0] is False

    def test_hits_leave_the_window(self) -> None:
        storage = InMemoryRateLimitStorage()

        with patch("gobering.middleware.rate_limit.time.monotonic", return_value=1000.0):
            storage.check_and_increment("k", 1, 60)
            allowed, _, reset = storage.check_and_increment("k", 1, 60)
        assert allowed is False
        assert reset == 60

        with patch("gobering.middleware.rate_limit.time.monotonic", return_value=1060.0):
            assert storage.check_and_increment("k", 1, 60)[0] is True


class TestRateLimitMiddleware:
    """Tests for limits on templated paths."""

    def test_limit_is_shared_across_tokens(self) -> None:
        client = build_client()

        assert client.post("/waitlist/a/claim").status_code == 200
        assert client.post("/waitlist/b/claim").status_code == 200
        blocked = client.post("/waitlist/c/claim")

        assert blocked.status_code == 429
        assert blocked.headers["X-RateLimit-Remaining"] == "0"
        assert "Retry-After" in blocked.headers

    def test_headers_on_allowed_request(self) -> None:
        client = build_client()

        response = client.post("/waitlist/a/claim")

        assert response.headers["X-RateLimit-Limit"] == "2"
        assert response.headers["X-RateLimit-Remaining"] == "1"

    def test_unlisted_paths_are_not_limited(self) -> None:
        client = build_client()

        for _ in range(5):
            assert client.get("/health").status_code == 200

    def test_disabled_middleware_lets_everything_through(self) -> None:
        client = build_client(enabled=False)

        for _ in range(5):
            assert client.post("/waitlist/a/claim").status_code == 200
