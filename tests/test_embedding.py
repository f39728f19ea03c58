"""Tests for the embedding engine: lazy loading, batching, failures."""

import asyncio
import threading
import time

import pytest

from chatrag.core.errors import (
    DimensionMismatchError,
    EmbeddingError,
    InvalidInputError,
    ModelInitializationError,
)
from chatrag.services.embedding import EmbeddingEngine, get_embedding_dimensions
from tests.conftest import FakeSentenceModel


class CountingLoader:
    def __init__(self, model, delay: float = 0.0, failures: int = 0) -> None:
        self.model = model
        self.delay = delay
        self.failures = failures
        self.calls = 0

    def __call__(self, model_name, device):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.calls <= self.failures:
            raise OSError("could not download model files")
        return self.model


class FlakyModel(FakeSentenceModel):
    """Fails on the nth encode call."""

    def __init__(self, fail_on: int) -> None:
        super().__init__()
        self.fail_on = fail_on

    def encode(self, texts, normalize_embeddings=True, show_progress_bar=False):
        if len(self.calls) + 1 == self.fail_on:
            self.calls.append(list(texts))
            raise RuntimeError("inference crashed")
        return super().encode(texts, normalize_embeddings, show_progress_bar)


async def test_embed_returns_384_dimensions(embedding_engine):
    vector = await embedding_engine.embed("Local retrieval keeps data on the machine.")
    assert len(vector) == 384
    assert all(isinstance(v, float) for v in vector)
    assert embedding_engine.is_initialized


async def test_embed_is_deterministic(embedding_engine):
    first = await embedding_engine.embed("same input")
    second = await embedding_engine.embed("same input")
    assert first == second


async def test_model_loads_lazily(fake_model):
    loader = CountingLoader(fake_model)
    engine = EmbeddingEngine(model_name="test-model", dimensions=384, model_loader=loader)
    assert not engine.is_initialized
    assert loader.calls == 0

    await engine.embed("hello")
    await engine.embed("again")
    assert loader.calls == 1


@pytest.mark.parametrize("bad", ["", "   ", "\n\t", None, 42])
async def test_embed_rejects_empty_or_non_string(embedding_engine, bad):
    with pytest.raises(InvalidInputError):
        await embedding_engine.embed(bad)


async def test_embed_batch_preserves_order(embedding_engine):
    texts = [f"document number {i}" for i in range(7)]
    batch = await embedding_engine.embed_batch(texts)
    singles = [await embedding_engine.embed(t) for t in texts]
    assert batch == singles


async def test_embed_batch_uses_sub_batches(embedding_engine, fake_model):
    texts = [f"text {i}" for i in range(25)]
    vectors = await embedding_engine.embed_batch(texts)

    assert len(vectors) == 25
    assert [len(call) for call in fake_model.calls] == [10, 10, 5]
    assert [t for call in fake_model.calls for t in call] == texts


@pytest.mark.parametrize("bad", [[], ["ok", ""], ["ok", "  "], "not a list"])
async def test_embed_batch_rejects_bad_input(embedding_engine, fake_model, bad):
    with pytest.raises(InvalidInputError):
        await embedding_engine.embed_batch(bad)
    assert fake_model.calls == []


async def test_concurrent_initialize_loads_once(fake_model):
    loader = CountingLoader(fake_model, delay=0.05)
    engine = EmbeddingEngine(model_name="test-model", dimensions=384, model_loader=loader)

    await asyncio.gather(*(engine.embed(f"query {i}") for i in range(5)))

    assert loader.calls == 1
    assert engine.is_initialized


async def test_load_failure_raises_and_allows_retry(fake_model):
    loader = CountingLoader(fake_model, failures=1)
    engine = EmbeddingEngine(model_name="test-model", dimensions=384, model_loader=loader)

    with pytest.raises(ModelInitializationError) as exc_info:
        await engine.embed("first attempt")
    assert "test-model" in exc_info.value.message
    assert not engine.is_initialized

    vector = await engine.embed("second attempt")
    assert len(vector) == 384
    assert loader.calls == 2


async def test_missing_dependency_raises_initialization_error():
    def loader(model_name, device):
        raise ImportError("No module named 'sentence_transformers'")

    engine = EmbeddingEngine(model_name="test-model", dimensions=384, model_loader=loader)
    with pytest.raises(ModelInitializationError) as exc_info:
        await engine.initialize()
    assert "sentence-transformers" in exc_info.value.message


async def test_load_timeout_raises_initialization_error(fake_model):
    release = threading.Event()

    def slow_loader(model_name, device):
        release.wait(5)
        return fake_model

    engine = EmbeddingEngine(
        model_name="test-model", dimensions=384, init_timeout=0.05, model_loader=slow_loader,
    )
    try:
        with pytest.raises(ModelInitializationError) as exc_info:
            await engine.initialize()
        assert "did not finish" in exc_info.value.message
        assert not engine.is_initialized
    finally:
        release.set()


async def test_batch_failure_fails_whole_call():
    model = FlakyModel(fail_on=2)
    engine = EmbeddingEngine(
        model_name="test-model", dimensions=384, batch_size=10, model_loader=lambda n, d: model,
    )
    with pytest.raises(EmbeddingError):
        await engine.embed_batch([f"text {i}" for i in range(25)])
    assert len(model.calls) == 2


async def test_dimension_mismatch_is_reported():
    engine = EmbeddingEngine(
        model_name="test-model",
        dimensions=128,
        model_loader=lambda n, d: FakeSentenceModel(dimensions=384),
    )
    with pytest.raises(DimensionMismatchError) as exc_info:
        await engine.embed("hello")
    assert exc_info.value.expected == 128
    assert exc_info.value.actual == 384


async def test_unload_without_initialize_is_safe(embedding_engine):
    await embedding_engine.unload()
    assert not embedding_engine.is_initialized


async def test_unload_then_embed_reloads(fake_model):
    loader = CountingLoader(fake_model)
    engine = EmbeddingEngine(model_name="test-model", dimensions=384, model_loader=loader)

    await engine.embed("before")
    await engine.unload()
    assert not engine.is_initialized

    await engine.embed("after")
    assert engine.is_initialized
    assert loader.calls == 2


async def test_unload_waits_for_in_flight_calls():
    started = threading.Event()
    release = threading.Event()

    class BlockingModel(FakeSentenceModel):
        def encode(self, texts, normalize_embeddings=True, show_progress_bar=False):
            started.set()
            release.wait(5)
            return super().encode(texts, normalize_embeddings, show_progress_bar)

    engine = EmbeddingEngine(
        model_name="test-model", dimensions=384, model_loader=lambda n, d: BlockingModel(),
    )
    embed_task = asyncio.create_task(engine.embed("slow"))
    while not started.is_set():
        await asyncio.sleep(0.01)

    unload_task = asyncio.create_task(engine.unload())
    await asyncio.sleep(0.05)
    assert not unload_task.done()
    assert engine.is_initialized

    release.set()
    vector = await embed_task
    await unload_task
    assert len(vector) == 384
    assert not engine.is_initialized


def test_cosine_similarity_method(embedding_engine):
    assert embedding_engine.cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)


def test_model_info(embedding_engine):
    info = embedding_engine.model_info()
    assert info == {
        "model": "test-model",
        "dimensions": 384,
        "initialized": False,
        "batch_size": 10,
    }


def test_known_model_dimensions():
    assert get_embedding_dimensions() == 384
    assert get_embedding_dimensions("sentence-transformers/all-mpnet-base-v2") == 768
    assert get_embedding_dimensions("unknown/model") == 384


def test_rejects_non_positive_batch_size():
    with pytest.raises(InvalidInputError):
        EmbeddingEngine(batch_size=0)
