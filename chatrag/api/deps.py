"""FastAPI dependencies for sessions, the shared embedding engine and pipelines."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from chatrag.core.config import get_settings
from chatrag.core.database import get_session
from chatrag.services.document_store import DocumentStore
from chatrag.services.embedding import EmbeddingEngine
from chatrag.services.ingestion import IngestionPipeline
from chatrag.services.retrieval import RetrievalPipeline


def get_embedding_engine(request: Request) -> EmbeddingEngine:
    """The process-wide engine created in the application lifespan."""
    return request.app.state.embedding_engine


Session = Annotated[AsyncSession, Depends(get_session)]
Engine = Annotated[EmbeddingEngine, Depends(get_embedding_engine)]


def get_document_store(session: Session) -> DocumentStore:
    return DocumentStore(session)


Store = Annotated[DocumentStore, Depends(get_document_store)]


def get_ingestion_pipeline(store: Store, engine: Engine) -> IngestionPipeline:
    settings = get_settings()
    return IngestionPipeline(
        store,
        engine,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )


def get_retrieval_pipeline(store: Store, engine: Engine) -> RetrievalPipeline:
    return RetrievalPipeline(store, engine)


# Typed shorthand for use in route signatures
Ingestion = Annotated[IngestionPipeline, Depends(get_ingestion_pipeline)]
Retrieval = Annotated[RetrievalPipeline, Depends(get_retrieval_pipeline)]
