"""
Inceptra Backend — API Integration Tests
==========================================

What:  Tests the HTTP surface through httpx's ASGITransport.
How:   The store dependency is overridden with the in-memory fake and the
       generation service's candidate table is pointed at a scripted
       provider, so no database or network is involved.

What we test:
    ✅ Liveness endpoints
    ✅ Missing identity → 401 in the standard error shape
    ✅ Generation success, quota denial (429 + Retry-After), provider failure
    ✅ Malformed bodies → 400 validation_error
    ✅ History listing headers and cursor errors; usage report
"""

import base64

import pytest

from app.dependencies import get_generation_store
from app.main import app
from app.schemas.generation import Feature
from app.services.candidates import FeaturePolicy, ProviderCandidate
from app.services.generation_service import generation_service
from app.services.provider_base import ProviderError
from conftest import ScriptedProvider

FREE = {"X-User-Id": "user_free"}
PREMIUM = {"X-User-Id": "user_premium"}


@pytest.fixture
def provider(monkeypatch):
    scripted = ScriptedProvider(script={})
    monkeypatch.setattr(generation_service, "providers", {"huggingface": scripted})
    for feature, model in [
        (Feature.ARTICLE, "text-model"),
        (Feature.IMAGE, "image-model"),
        (Feature.BACKGROUND_REMOVAL, "seg-model"),
        (Feature.RESUME, "chat-model"),
    ]:
        monkeypatch.setitem(
            generation_service.policies,
            feature,
            FeaturePolicy(feature, (ProviderCandidate(model, 1),), 10),
        )
    return scripted


@pytest.fixture
def api_store(store):
    app.dependency_overrides[get_generation_store] = lambda: store
    return store


class TestLiveness:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/", "/api/health"])
    async def test_liveness(self, test_client, path):
        response = await test_client.get(path)

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "message": "Inceptra API is running"}
        assert response.headers["X-Request-ID"]


class TestIdentity:

    @pytest.mark.asyncio
    async def test_missing_user_header_is_401(self, test_client, api_store, provider):
        response = await test_client.post("/api/article", json={"prompt": "hello world"})

        assert response.status_code == 401
        body = response.json()
        assert body["error"] == "unauthorized"
        assert body["message"] == "User ID not found in auth context."
        assert body["status_code"] == 401
        assert body["request_id"] == response.headers["X-Request-ID"]
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_first_request_provisions_user(self, test_client, api_store, provider):
        provider.script["text-model"] = "Hi."

        response = await test_client.post(
            "/api/article",
            json={"prompt": "hello world"},
            headers={"X-User-Id": "newcomer", "X-User-Email": "new@example.com"},
        )

        assert response.status_code == 200
        assert api_store.users["newcomer"].email == "new@example.com"
        assert api_store.users["newcomer"].is_premium is False


class TestGeneration:

    @pytest.mark.asyncio
    async def test_article_success(self, test_client, api_store, provider):
        provider.script["text-model"] = {"choices": [{"message": {"content": "An article."}}]}

        response = await test_client.post(
            "/api/article", json={"prompt": "the ocean", "length": 200}, headers=FREE
        )

        assert response.status_code == 200
        assert response.json() == {"content": "An article."}
        assert len(api_store.records) == 1

    @pytest.mark.asyncio
    async def test_image_quota_exceeded(self, test_client, api_store, provider):
        api_store.seed("user_free", Feature.IMAGE.value, 10)
        provider.script["image-model"] = b"png"

        response = await test_client.post("/api/image", json={"prompt": "a red fox"}, headers=FREE)

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "quota_exceeded"
        assert body["details"]["limit"] == 10
        assert body["details"]["feature"] == "image-generator"
        assert int(response.headers["Retry-After"]) >= 1
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_short_prompt_is_400(self, test_client, api_store, provider):
        response = await test_client.post("/api/image", json={"prompt": "x"}, headers=FREE)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"
        assert response.json()["details"]["field"] == "prompt"

    @pytest.mark.asyncio
    async def test_malformed_body_is_400(self, test_client, api_store, provider):
        response = await test_client.post(
            "/api/article", json={"prompt": "hello", "length": "long"}, headers=FREE
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_provider_failure_hides_upstream_details(self, test_client, api_store, provider):
        provider.script["text-model"] = ProviderError("429 from text-model", retryable=True, status_code=429)

        response = await test_client.post("/api/article", json={"prompt": "hello"}, headers=FREE)

        assert response.status_code == 503
        body = response.json()
        assert body["error"] == "provider_unavailable"
        assert "details" not in body
        assert "text-model" not in response.text
        assert api_store.records == []

    @pytest.mark.asyncio
    async def test_background_removal_upload(self, test_client, api_store, provider, png_bytes, mask_bytes):
        provider.script["seg-model"] = [{"label": "fg", "mask": mask_bytes}]

        response = await test_client.post(
            "/api/bg-remove",
            files={"image": ("photo.png", png_bytes, "image/png")},
            headers=FREE,
        )

        assert response.status_code == 200
        assert base64.b64decode(response.json()["image"]).startswith(b"\x89PNG")
        assert api_store.records[0].input == {"filename": "photo.png"}

    @pytest.mark.asyncio
    async def test_resume_rejects_non_pdf(self, test_client, api_store, provider):
        response = await test_client.post(
            "/api/resume",
            files={"file": ("cv.docx", b"PK\x03\x04docx", "application/octet-stream")},
            headers=FREE,
        )

        assert response.status_code == 400
        assert provider.calls == []


class TestHistory:

    @pytest.mark.asyncio
    async def test_history_page_and_headers(self, test_client, api_store):
        api_store.seed("user_free", Feature.ARTICLE.value, 3)

        response = await test_client.get("/api/history?limit=2", headers=FREE)

        assert response.status_code == 200
        body = response.json()
        assert len(body["history"]) == 2
        assert body["pagination"]["has_next_page"] is True
        assert body["pagination"]["next_cursor"] == body["history"][-1]["id"]
        assert response.headers["X-Total-Count"] == "3"

        second = await test_client.get(
            f"/api/history?limit=2&page=2&cursor={body['pagination']['next_cursor']}", headers=FREE
        )
        assert len(second.json()["history"]) == 1
        assert second.json()["pagination"]["has_next_page"] is False
        assert second.json()["pagination"]["has_previous_page"] is True

    @pytest.mark.asyncio
    async def test_invalid_cursor_is_400(self, test_client, api_store):
        response = await test_client.get("/api/history?cursor=nope", headers=FREE)

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "cursor"

    @pytest.mark.asyncio
    async def test_usage_for_premium(self, test_client, api_store):
        response = await test_client.get("/api/history/usage", headers=PREMIUM)

        assert response.status_code == 200
        body = response.json()
        assert body["is_premium"] is True
        assert all(item["limit"] is None for item in body["usage"])
