"""Embedding service — local sentence-transformers model, lazily loaded.

One ``EmbeddingEngine`` is built at process start and shared by the
ingestion and retrieval pipelines. The model is loaded on first use in a
worker thread so the event loop keeps serving requests; ``unload()``
frees it again and waits for in-flight calls before doing so.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from chatrag.core.errors import (
    DimensionMismatchError,
    EmbeddingError,
    InvalidInputError,
    ModelInitializationError,
)
from chatrag.services.scoring import cosine_similarity

logger = logging.getLogger(__name__)

# Small 384-dimensional default that runs on CPU
DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_EMBEDDING_DIMENSIONS = 384
DEFAULT_BATCH_SIZE = 10
DEFAULT_INIT_TIMEOUT = 120.0

# Known dimensions for common local models
_MODEL_DIMENSIONS: dict[str, int] = {
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "sentence-transformers/all-MiniLM-L12-v2": 384,
    "sentence-transformers/all-mpnet-base-v2": 768,
    "BAAI/bge-small-en-v1.5": 384,
    "BAAI/bge-base-en-v1.5": 768,
}

ModelLoader = Callable[[str, str | None], Any]


def get_embedding_dimensions(model: str | None = None) -> int:
    """Return the expected vector dimension for a given embedding model."""
    return _MODEL_DIMENSIONS.get(model or DEFAULT_EMBEDDING_MODEL, DEFAULT_EMBEDDING_DIMENSIONS)


def load_sentence_transformer(model_name: str, device: str | None = None) -> Any:
    """Blocking model load; downloads the weights on first use."""
    from sentence_transformers import SentenceTransformer

    return SentenceTransformer(model_name, device=device)


class EmbeddingEngine:
    """Produces normalized, mean-pooled sentence embeddings locally."""

    def __init__(
        self,
        model_name: str = DEFAULT_EMBEDDING_MODEL,
        dimensions: int | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        init_timeout: float = DEFAULT_INIT_TIMEOUT,
        device: str | None = None,
        model_loader: ModelLoader | None = None,
    ) -> None:
        if batch_size <= 0:
            raise InvalidInputError("batch_size must be positive")
        self.model_name = model_name
        self.dimensions = dimensions or get_embedding_dimensions(model_name)
        self.batch_size = batch_size
        self.init_timeout = init_timeout
        self.device = device
        self._model_loader = model_loader or load_sentence_transformer

        self._model: Any = None
        self._init_lock = asyncio.Lock()
        # Tracks in-flight inference so unload() never pulls the model from under it
        self._state = asyncio.Condition()
        self._active_calls = 0
        self._unloading = False

    @property
    def is_initialized(self) -> bool:
        return self._model is not None

    async def initialize(self) -> None:
        """Load the model once; concurrent callers wait on the same load."""
        if self._model is not None:
            return

        async with self._init_lock:
            if self._model is not None:
                return

            logger.info("Loading embedding model %s", self.model_name)
            started = time.monotonic()
            try:
                model = await asyncio.wait_for(
                    asyncio.to_thread(self._model_loader, self.model_name, self.device),
                    timeout=self.init_timeout,
                )
            except ImportError as exc:
                logger.exception("Embedding model dependency missing")
                raise ModelInitializationError(
                    f"Failed to initialize embedding model '{self.model_name}': {exc}. "
                    "Is the sentence-transformers package installed?"
                ) from exc
            except asyncio.TimeoutError as exc:
                logger.exception("Embedding model load timed out")
                raise ModelInitializationError(
                    f"Failed to initialize embedding model '{self.model_name}': "
                    f"load did not finish within {self.init_timeout:.0f}s "
                    "(network issue while downloading model files?)"
                ) from exc
            except MemoryError as exc:
                logger.exception("Out of memory loading embedding model")
                raise ModelInitializationError(
                    f"Failed to initialize embedding model '{self.model_name}': out of memory"
                ) from exc
            except Exception as exc:
                logger.exception("Failed to load embedding model %s", self.model_name)
                raise ModelInitializationError(
                    f"Failed to initialize embedding model '{self.model_name}': {exc}. "
                    "Check network access for the first download and free disk/memory."
                ) from exc

            self._model = model
            logger.info(
                "Embedding model %s loaded in %dms",
                self.model_name,
                int((time.monotonic() - started) * 1000),
            )

    async def embed(self, text: str) -> list[float]:
        """Embed one non-empty string."""
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("Text must be a non-empty string")

        vectors = await self._run_encode([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed many strings in sub-batches, preserving input order.

        A failure in any sub-batch fails the whole call.
        """
        if isinstance(texts, str) or not texts:
            raise InvalidInputError("Texts must be a non-empty list of strings")
        for i, text in enumerate(texts):
            if not isinstance(text, str) or not text.strip():
                raise InvalidInputError(f"Text at position {i} must be a non-empty string")

        embeddings: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = list(texts[start:start + self.batch_size])
            embeddings.extend(await self._run_encode(batch))
            logger.debug(
                "Embedded batch %d-%d of %d",
                start, start + len(batch), len(texts),
            )
        return embeddings

    def cosine_similarity(self, a: Sequence[float], b: Sequence[float]) -> float:
        return cosine_similarity(a, b)

    async def unload(self) -> None:
        """Release the model; the next embed call reloads it."""
        async with self._state:
            self._unloading = True
            try:
                await self._state.wait_for(lambda: self._active_calls == 0)
                async with self._init_lock:
                    had_model = self._model is not None
                    self._model = None
            finally:
                self._unloading = False
                self._state.notify_all()
        if had_model:
            logger.info("Embedding model %s unloaded", self.model_name)

    def model_info(self) -> dict:
        return {
            "model": self.model_name,
            "dimensions": self.dimensions,
            "initialized": self.is_initialized,
            "batch_size": self.batch_size,
        }

    # ── internals ────────────────────────────────────────────

    async def _run_encode(self, batch: list[str]) -> list[list[float]]:
        async with self._state:
            await self._state.wait_for(lambda: not self._unloading)
            self._active_calls += 1
        try:
            await self.initialize()
            model = self._model
            try:
                raw = await asyncio.to_thread(
                    model.encode,
                    batch,
                    normalize_embeddings=True,
                    show_progress_bar=False,
                )
            except Exception as exc:
                logger.exception("Embedding inference failed for %d texts", len(batch))
                raise EmbeddingError(f"Failed to generate embeddings: {exc}") from exc
        finally:
            async with self._state:
                self._active_calls -= 1
                self._state.notify_all()

        vectors = [[float(v) for v in row] for row in raw]
        if len(vectors) != len(batch):
            raise EmbeddingError(
                f"Model returned {len(vectors)} vectors for {len(batch)} texts"
            )
        for vector in vectors:
            if len(vector) != self.dimensions:
                raise DimensionMismatchError(self.dimensions, len(vector))
        return vectors
