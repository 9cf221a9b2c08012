"""
Inceptra Backend — Middleware Tests
=====================================

What we test:
    ✅ Rate limiter returns 429 with Retry-After once the window is full
    ✅ Liveness paths are never rate limited
    ✅ X-Forwarded-For is ignored unless the proxy is trusted
    ✅ Request IDs are generated, or reused (truncated) from the client
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.config import settings
from app.middleware.rate_limit import RateLimitMiddleware
from app.middleware.request_id import MAX_CLIENT_ID_LENGTH, RequestIDMiddleware


def make_app(max_requests=2, window=60) -> FastAPI:
    app = FastAPI()

    @app.get("/")
    async def root():
        return {"status": "ok"}

    @app.get("/api/thing")
    async def thing():
        return {"ok": True}

    app.add_middleware(RateLimitMiddleware, max_requests=max_requests, window=window)
    app.add_middleware(RequestIDMiddleware)
    return app


class TestRateLimit:

    @pytest.mark.asyncio
    async def test_third_request_is_limited(self):
        async with AsyncClient(transport=ASGITransport(app=make_app()), base_url="http://test") as client:
            assert (await client.get("/api/thing")).status_code == 200
            assert (await client.get("/api/thing")).status_code == 200

            response = await client.get("/api/thing")

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "rate_limit_exceeded"
        assert body["request_id"] == response.headers["X-Request-ID"]
        assert 1 <= int(response.headers["Retry-After"]) <= 61

    @pytest.mark.asyncio
    async def test_liveness_is_excluded(self):
        async with AsyncClient(transport=ASGITransport(app=make_app(max_requests=1)), base_url="http://test") as client:
            for _ in range(5):
                assert (await client.get("/")).status_code == 200

    @pytest.mark.asyncio
    async def test_rotating_forwarded_header_does_not_reset_the_window(self):
        async with AsyncClient(transport=ASGITransport(app=make_app()), base_url="http://test") as client:
            statuses = [
                (await client.get("/api/thing", headers={"X-Forwarded-For": f"10.0.0.{n}"})).status_code
                for n in range(1, 5)
            ]

        assert statuses == [200, 200, 429, 429]

    @pytest.mark.asyncio
    async def test_forwarded_clients_are_counted_separately_behind_trusted_proxy(self, monkeypatch):
        monkeypatch.setattr(settings, "trust_forwarded_for", True)

        async with AsyncClient(transport=ASGITransport(app=make_app(max_requests=1)), base_url="http://test") as client:
            first = await client.get("/api/thing", headers={"X-Forwarded-For": "10.0.0.1"})
            second = await client.get("/api/thing", headers={"X-Forwarded-For": "10.0.0.2, 172.16.0.1"})
            repeat = await client.get("/api/thing", headers={"X-Forwarded-For": "10.0.0.1"})

        assert first.status_code == 200
        assert second.status_code == 200
        assert repeat.status_code == 429


class TestRequestID:

    @pytest.mark.asyncio
    async def test_generated_when_missing(self):
        async with AsyncClient(transport=ASGITransport(app=make_app()), base_url="http://test") as client:
            response = await client.get("/")

        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_client_id_is_reused_and_truncated(self):
        async with AsyncClient(transport=ASGITransport(app=make_app()), base_url="http://test") as client:
            short = await client.get("/", headers={"X-Request-ID": "trace-123"})
            long = await client.get("/", headers={"X-Request-ID": "x" * 200})

        assert short.headers["X-Request-ID"] == "trace-123"
        assert long.headers["X-Request-ID"] == "x" * MAX_CLIENT_ID_LENGTH
