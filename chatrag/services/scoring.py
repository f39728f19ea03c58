"""Vector scoring — cosine similarity and top-k ranking of stored chunks.

Ranking is exhaustive: every candidate vector is stacked into one numpy
matrix and scored with a single matrix-vector product. ``rank_chunks`` is
CPU-bound and synchronous; async callers run it in a worker thread.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

import numpy as np

from chatrag.core.errors import DimensionMismatchError
from chatrag.models.chunk import DocumentChunk
from chatrag.models.document import Document

SOURCE_WORKSPACE = "workspace"
SOURCE_CHAT = "chat"


@dataclass
class ScoredChunk:
    """A stored chunk ranked against a query."""
    chunk_id: int
    document_id: int
    document_title: str
    chunk_index: int
    content: str
    score: float
    token_count: int
    source: str  # "workspace" or "chat"

    def to_dict(self) -> dict:
        return {
            "chunkId": self.chunk_id,
            "documentId": self.document_id,
            "documentTitle": self.document_title,
            "chunkIndex": self.chunk_index,
            "content": self.content,
            "score": self.score,
            "tokenCount": self.token_count,
            "source": self.source,
        }


@dataclass
class ScoringOutcome:
    """Ranked results plus counters for chunks that could not be scored."""
    results: list[ScoredChunk] = field(default_factory=list)
    processed: int = 0
    skipped_null: int = 0
    skipped_invalid: int = 0
    skipped_dimension: int = 0

    @property
    def skipped(self) -> int:
        return self.skipped_null + self.skipped_invalid + self.skipped_dimension


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors; 0.0 if either is all zeros."""
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denominator = np.linalg.norm(va) * np.linalg.norm(vb)
    if denominator == 0:
        return 0.0
    return float(np.dot(va, vb) / denominator)


def cosine_scores(query_vector: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine of the query against every row of ``matrix``; 0.0 for zero-norm rows."""
    query = np.asarray(query_vector, dtype=np.float64)
    if matrix.shape[1] != query.shape[0]:
        raise DimensionMismatchError(query.shape[0], matrix.shape[1])

    denominators = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    scores = np.zeros(matrix.shape[0], dtype=np.float64)
    np.divide(dots, denominators, out=scores, where=denominators != 0)
    return scores


def serialize_embedding(vector: Iterable[float]) -> str:
    """Serialize a vector to the stored JSON-array text format."""
    return json.dumps([float(v) for v in vector], separators=(",", ":"))


def parse_embedding(raw: str | None) -> list[float] | None:
    """Parse a stored embedding; None when absent or not a numeric JSON array."""
    if raw is None or raw == "":
        return None
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(value, list) or not value:
        return None
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value):
        return None
    return [float(v) for v in value]


def chunk_source(document: Document | None) -> str:
    if document is not None and document.workspace_id is not None:
        return SOURCE_WORKSPACE
    return SOURCE_CHAT


def rank_chunks(
    query_vector: Sequence[float],
    chunks: Iterable[DocumentChunk],
    documents: Mapping[int, Document],
    k: int = 5,
) -> ScoringOutcome:
    """Score every chunk against the query and keep the k best.

    Chunks without a usable embedding (NULL, unparsable, or of a different
    dimension than the query) are skipped and counted, never raised.
    Ties keep the input order.
    """
    outcome = ScoringOutcome()
    dimensions = len(query_vector)
    candidates: list[DocumentChunk] = []
    vectors: list[list[float]] = []

    for chunk in chunks:
        if chunk.embedding is None:
            outcome.skipped_null += 1
            continue
        vector = parse_embedding(chunk.embedding)
        if vector is None:
            outcome.skipped_invalid += 1
            continue
        if len(vector) != dimensions:
            outcome.skipped_dimension += 1
            continue
        candidates.append(chunk)
        vectors.append(vector)

    outcome.processed = len(candidates)
    if not candidates or k <= 0:
        return outcome

    scores = cosine_scores(query_vector, np.asarray(vectors, dtype=np.float64))
    # Stable sort, so equal scores keep iteration order
    order = np.argsort(-scores, kind="stable")[:k]

    for i in order:
        chunk = candidates[i]
        document = documents.get(chunk.document_id)
        outcome.results.append(ScoredChunk(
            chunk_id=chunk.id,
            document_id=chunk.document_id,
            document_title=document.title if document is not None else "Unknown",
            chunk_index=chunk.chunk_index,
            content=chunk.content,
            score=float(scores[i]),
            token_count=chunk.token_count or 0,
            source=chunk_source(document),
        ))
    return outcome
