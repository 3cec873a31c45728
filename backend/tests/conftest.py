"""
Root conftest.py — Shared fixtures for ALL tests (unit + integration)

Fixture hierarchy:
  function-scoped : db_engine, session_factory, gateway, mock_provider,
                    memory_storage, make_token, async_client

Environment strategy:
  - Persistence tests run against an in-memory SQLite database
    (aiosqlite + StaticPool, so every session shares one connection).
    Foreign keys are enforced, as on the application engine.
  - The text-intelligence provider is always mocked; no network calls.
  - File storage is an in-memory StorageBackend.
  - JWTs are real HS256 tokens signed with the test secret.

How to run:
  pytest                          # all tests
  pytest -m unit                  # unit tests only
  pytest -m integration           # HTTP-level tests
"""

from __future__ import annotations

import os
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any app imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("DATABASE_URL",          "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PROVIDER_API_KEY",      "test-provider-key")
os.environ.setdefault("PROVIDER_BASE_URL",     "https://provider.test/api/v3")
os.environ.setdefault("CHAT_MODEL",            "test-chat-model")
os.environ.setdefault("EMBEDDING_MODEL",       "test-embedding")
os.environ.setdefault("EMBEDDING_MAX_RETRIES", "2")
os.environ.setdefault("JWT_SECRET",            "test-jwt-secret")
os.environ.setdefault("STORAGE_BACKEND",       "local")
os.environ.setdefault("APP_ENV",               "development")
os.environ.setdefault("DEBUG",                 "true")

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from readmate.db.repository import SqlAlchemyGateway  # noqa: E402
from readmate.db.session import enforce_sqlite_foreign_keys, init_models  # noqa: E402
from readmate.llm.client import TextIntelligenceClient  # noqa: E402
from readmate.schemas.analysis import ChunkAnalysisResult, DocumentReportResult  # noqa: E402
from readmate.storage.base import StorageBackend  # noqa: E402

TEST_USER_ID  = 1
OTHER_USER_ID = 2

SAMPLE_TEXT = (
    "The Old Man and the Sea tells the story of Santiago.\n\n"
    "He is an aging Cuban fisherman who struggles with a giant marlin.\n\n"
    "The struggle becomes a meditation on endurance and dignity."
)


# ─────────────────────────────────────────────────────────────────────────────
# Database
# ─────────────────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enforce_sqlite_foreign_keys(engine)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def gateway(session_factory) -> SqlAlchemyGateway:
    return SqlAlchemyGateway(session_factory)


async def make_document(gateway, user_id: int = TEST_USER_ID, **overrides):
    """Insert a document row with sensible defaults."""
    fields = {
        "user_id":   user_id,
        "title":     "The Old Man and the Sea",
        "author":    "Ernest Hemingway",
        "file_key":  f"{user_id}/abc123_book.txt",
        "file_url":  "file:///tmp/book.txt",
        "file_type": "txt",
        "file_size": len(SAMPLE_TEXT),
        "status":    "processing",
    }
    fields.update(overrides)
    return await gateway.create_document(**fields)


# ─────────────────────────────────────────────────────────────────────────────
# Provider
# ─────────────────────────────────────────────────────────────────────────────

def sample_analysis(**overrides) -> ChunkAnalysisResult:
    data = {
        "summary":        "Santiago fights a marlin.",
        "key_entities":   ["Santiago"],
        "core_arguments": ["Endurance defines dignity"],
        "sentiment":      "positive",
        "themes":         ["endurance"],
        "quotes":         ["A man can be destroyed but not defeated."],
    }
    data.update(overrides)
    return ChunkAnalysisResult(**data)


@pytest.fixture
def mock_provider():
    """
    Fully mocked TextIntelligenceClient.
    All methods are AsyncMock — no provider calls made.
    """
    provider = MagicMock(spec=TextIntelligenceClient)
    provider.analyze_chunk   = AsyncMock(return_value=sample_analysis())
    provider.embed           = AsyncMock(return_value=[1.0, 0.0, 0.0])
    provider.complete        = AsyncMock(return_value="Santiago is an old fisherman.")
    provider.generate_report = AsyncMock(
        return_value=DocumentReportResult(core_summary="A story of endurance.")
    )
    return provider


# ─────────────────────────────────────────────────────────────────────────────
# Storage
# ─────────────────────────────────────────────────────────────────────────────

class InMemoryStorage(StorageBackend):
    """Dict-backed storage used in place of local disk / S3."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        self.objects[key] = data
        return f"memory://{key}"

    async def get(self, key: str) -> bytes | None:
        return self.objects.get(key)

    async def delete(self, key: str) -> None:
        self.objects.pop(key, None)


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    return InMemoryStorage()


# ─────────────────────────────────────────────────────────────────────────────
# JWT token factory
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def make_token():
    """
    Factory fixture: returns a function that builds signed test JWTs.

    Usage:
        token = make_token()
        token = make_token(user_id=2)
        token = make_token(expired=True)
    """
    from datetime import timedelta

    from readmate.auth.token import create_access_token

    def _build(user_id: int = TEST_USER_ID, expired: bool = False) -> str:
        expires_in = timedelta(seconds=-60) if expired else None
        return create_access_token(user_id, expires_in=expires_in)

    return _build


@pytest.fixture
def auth_headers(make_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}


# ─────────────────────────────────────────────────────────────────────────────
# FastAPI test client with collaborator overrides
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def runner(gateway, mock_provider, memory_storage):
    from readmate.services.pipeline import AnalysisPipeline, PipelineRunner
    return PipelineRunner(AnalysisPipeline(gateway, mock_provider, memory_storage))


@pytest.fixture
def app_with_overrides(gateway, mock_provider, memory_storage, runner):
    """
    FastAPI app with ALL external collaborators overridden:
      - get_gateway      → in-memory SQLite gateway
      - get_provider     → mock_provider (no LLM calls)
      - get_file_storage → memory_storage (no disk / S3)
      - get_runner       → runner wired to the three above

    Authentication is NOT overridden: requests carry real HS256 tokens.
    """
    from readmate.auth.dependencies import (
        get_file_storage,
        get_gateway,
        get_provider,
        get_runner,
    )
    from readmate.main import app

    app.dependency_overrides[get_gateway]      = lambda: gateway
    app.dependency_overrides[get_provider]     = lambda: mock_provider
    app.dependency_overrides[get_file_storage] = lambda: memory_storage
    app.dependency_overrides[get_runner]       = lambda: runner

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app_with_overrides) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client using the overridden app (lifespan not run)."""
    from httpx import ASGITransport
    transport = ASGITransport(app=app_with_overrides)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
