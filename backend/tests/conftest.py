"""
Inceptra Backend — Test Configuration (conftest.py)
=====================================================

What:  Shared fixtures and fakes for the whole test suite.
How:   Environment overrides are applied before any `app` import so the
       settings singleton never sees production values.

Fakes:
    FakeGenerationStore: in-memory implementation of the persistence contract
    ScriptedProvider:    provider whose behavior per model is scripted
                         (return a payload, raise, or sleep first)
"""

import os

# Must run before any app import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["HF_TOKEN"] = "hf_test_not_real"
os.environ["LOG_LEVEL"] = "WARNING"

import asyncio
import io
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image

from app.exceptions import StorageUnavailableError, ValidationError
from app.services.provider_base import InferenceProvider


# ══════════════════════════════════════════════════════════════════════════
# In-memory persistence
# ══════════════════════════════════════════════════════════════════════════


@dataclass
class FakeUser:
    id: str
    email: str = ""
    is_premium: bool = False


@dataclass
class FakeRecord:
    id: str
    user_id: str
    feature: str
    input: Dict[str, Any]
    output: Dict[str, Any]
    created_at: datetime


class FakeGenerationStore:
    """Same operations as GenerationStore, backed by dicts and lists."""

    def __init__(self):
        self.users: Dict[str, FakeUser] = {}
        self.records: List[FakeRecord] = []
        self.fail_writes = False
        self._tick = 0

    def add_user(self, user_id: str, is_premium: bool = False) -> FakeUser:
        user = FakeUser(id=user_id, is_premium=is_premium)
        self.users[user_id] = user
        return user

    def seed(self, user_id: str, feature: str, count: int, created_at: Optional[datetime] = None):
        """Insert `count` past records for (user, feature)."""
        for _ in range(count):
            self.records.append(
                FakeRecord(
                    id=str(uuid.uuid4()),
                    user_id=user_id,
                    feature=feature,
                    input={"prompt": "seeded"},
                    output={"image": "c2VlZGVk"},
                    created_at=created_at or self._next_timestamp(),
                )
            )

    def _next_timestamp(self) -> datetime:
        # Strictly increasing so "newest first" is deterministic
        self._tick += 1
        return datetime.now(timezone.utc) + timedelta(microseconds=self._tick)

    async def find_user(self, user_id: str) -> Optional[FakeUser]:
        return self.users.get(user_id)

    async def ensure_user(self, user_id: str, email: str = "") -> FakeUser:
        if user_id not in self.users:
            self.users[user_id] = FakeUser(id=user_id, email=email)
        return self.users[user_id]

    async def count_generations(self, user_id: str, feature: str, since: datetime) -> int:
        return sum(
            1 for r in self.records
            if r.user_id == user_id and r.feature == feature and r.created_at >= since
        )

    async def create_generation(self, user_id, feature, input, output) -> FakeRecord:
        if self.fail_writes:
            raise StorageUnavailableError(context={"operation": "create_generation"})
        record = FakeRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            feature=feature,
            input=input,
            output=output,
            created_at=self._next_timestamp(),
        )
        self.records.append(record)
        return record

    async def list_generations(self, user_id, limit=20, cursor=None, lookahead=False):
        mine = sorted(
            (r for r in self.records if r.user_id == user_id),
            key=lambda r: (r.created_at, r.id),
            reverse=True,
        )
        if cursor:
            ids = [r.id for r in mine]
            if cursor not in ids:
                raise ValidationError(message="Invalid pagination cursor.", field="cursor")
            mine = mine[ids.index(cursor) + 1:]
        limit = max(1, min(limit, 50))
        return mine[: limit + 1 if lookahead else limit]

    async def count_user_generations(self, user_id: str) -> int:
        return sum(1 for r in self.records if r.user_id == user_id)


# ══════════════════════════════════════════════════════════════════════════
# Scripted provider
# ══════════════════════════════════════════════════════════════════════════


@dataclass
class Slow:
    """Sleep `seconds`, then return `result`."""

    seconds: float
    result: Any = None


@dataclass
class ScriptedProvider(InferenceProvider):
    """
    Provider whose response per model comes from `script`.

    Script values: an exception instance (raised), a Slow (awaited), or any
    other value (returned as the raw payload). Every call is appended to
    `calls` as the model id.
    """

    script: Dict[str, Any] = field(default_factory=dict)
    name: str = "huggingface"
    calls: List[str] = field(default_factory=list)
    closed: bool = False

    async def _run(self, model: str) -> Any:
        self.calls.append(model)
        behavior = self.script[model]
        if isinstance(behavior, BaseException):
            raise behavior
        if isinstance(behavior, Slow):
            await asyncio.sleep(behavior.seconds)
            return behavior.result
        return behavior

    async def generate_text(self, model, messages):
        return await self._run(model)

    async def generate_image(self, model, prompt):
        return await self._run(model)

    async def segment_image(self, model, image):
        return await self._run(model)

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True


# ══════════════════════════════════════════════════════════════════════════
# Helpers and fixtures
# ══════════════════════════════════════════════════════════════════════════


def make_image_bytes(width: int, height: int, mode: str = "RGB", fmt: str = "PNG", color=128) -> bytes:
    """Encoded solid-color image of the given size."""
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def store() -> FakeGenerationStore:
    fake = FakeGenerationStore()
    fake.add_user("user_free")
    fake.add_user("user_premium", is_premium=True)
    return fake


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes(64, 48)


@pytest.fixture
def mask_bytes() -> bytes:
    return make_image_bytes(64, 48, mode="L", color=255)


@pytest_asyncio.fixture
async def test_client():
    """
    HTTPX AsyncClient bound to the FastAPI app through ASGITransport.

    Tests set app.dependency_overrides as needed; overrides are cleared
    afterwards.
    """
    from app.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
