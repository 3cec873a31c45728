"""
Composed FastAPI Dependencies

Combines auth + persistence + storage + provider into injectable objects.
Route handlers import from here — never from db/repository, storage/factory
or llm/client directly.

This is the single wiring point for the request context. Process-wide
collaborators (gateway, provider client, pipeline runner) are built once;
tests replace them through app.dependency_overrides.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from readmate.auth.token import TokenPayload, get_current_user
from readmate.db.repository import PersistenceGateway, SqlAlchemyGateway
from readmate.llm.client import TextIntelligenceClient
from readmate.rag.responder import ConversationResponder
from readmate.services.ingestion import IngestionService
from readmate.services.pipeline import AnalysisPipeline, PipelineRunner
from readmate.storage.base import StorageBackend
from readmate.storage.factory import get_storage


# ---------------------------------------------------------------------------
# 1. Process-wide collaborators
# ---------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_gateway() -> PersistenceGateway:
    return SqlAlchemyGateway()


@lru_cache(maxsize=1)
def get_provider() -> TextIntelligenceClient:
    return TextIntelligenceClient()


def get_file_storage() -> StorageBackend:
    return get_storage()


@lru_cache(maxsize=1)
def get_runner() -> PipelineRunner:
    """
    Background runner shared by all requests so the in-flight guard sees
    every scheduled document.
    """
    pipeline = AnalysisPipeline(get_gateway(), get_provider(), get_storage())
    return PipelineRunner(pipeline)


# ---------------------------------------------------------------------------
# 2. Per-request services
# ---------------------------------------------------------------------------

def get_ingestion_service(
    gateway: Annotated[PersistenceGateway, Depends(get_gateway)],
    storage: Annotated[StorageBackend, Depends(get_file_storage)],
    runner:  Annotated[PipelineRunner, Depends(get_runner)],
) -> IngestionService:
    return IngestionService(gateway=gateway, storage=storage, runner=runner)


def get_responder(
    gateway:  Annotated[PersistenceGateway, Depends(get_gateway)],
    provider: Annotated[TextIntelligenceClient, Depends(get_provider)],
) -> ConversationResponder:
    return ConversationResponder(gateway=gateway, provider=provider)


# ---------------------------------------------------------------------------
# Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

CurrentUser = Annotated[TokenPayload, Depends(get_current_user)]
Gateway     = Annotated[PersistenceGateway, Depends(get_gateway)]
Storage     = Annotated[StorageBackend, Depends(get_file_storage)]
Ingestion   = Annotated[IngestionService, Depends(get_ingestion_service)]
Responder   = Annotated[ConversationResponder, Depends(get_responder)]
Runner      = Annotated[PipelineRunner, Depends(get_runner)]
