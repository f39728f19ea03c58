"""Shared test fixtures — async SQLite in-memory DB, fake embedding model, test client."""

import hashlib
import math
import re
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

# Import all models so metadata is populated
import chatrag.models  # noqa: F401
from chatrag.api.deps import get_embedding_engine
from chatrag.core.database import get_session
from chatrag.main import app
from chatrag.services.document_store import DocumentStore
from chatrag.services.embedding import EmbeddingEngine

DIMENSIONS = 384


class FakeSentenceModel:
    """Deterministic bag-of-words stand-in for a sentence-transformers model.

    Every word is hashed to one of 384 buckets; vectors are L2-normalized
    and non-negative, so cosine scores land in [0, 1].
    """

    def __init__(self, dimensions: int = DIMENSIONS) -> None:
        self.dimensions = dimensions
        self.calls: list[list[str]] = []

    def encode(self, texts, normalize_embeddings=True, show_progress_bar=False):
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]

    def _vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dimensions
        words = re.findall(r"\w+", text.lower()) or [text]
        for word in words:
            bucket = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % self.dimensions
            vec[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vec))
        return [v / norm for v in vec]


@pytest.fixture
def fake_model() -> FakeSentenceModel:
    return FakeSentenceModel()


@pytest.fixture
def embedding_engine(fake_model) -> EmbeddingEngine:
    return EmbeddingEngine(
        model_name="test-model",
        dimensions=DIMENSIONS,
        batch_size=10,
        model_loader=lambda name, device: fake_model,
    )


@pytest.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", echo=False, poolclass=StaticPool)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess


@pytest.fixture
def store(session) -> DocumentStore:
    return DocumentStore(session)


@pytest.fixture
async def client(session, embedding_engine) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session and embedding engine overrides."""

    async def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_embedding_engine] = lambda: embedding_engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
