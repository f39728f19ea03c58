"""Retrieval pipeline — retrieval-augmented context for a chat question.

Flow:
  1. Embed the question
  2. Gather candidate documents (workspace scope ∪ chat scope, deduplicated)
  3. Load their chunks and score them by cosine similarity
  4. Keep the top k and render the context block injected into the LLM prompt
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from chatrag.core.errors import InvalidInputError
from chatrag.models.document import Document
from chatrag.services.document_store import DocumentStore
from chatrag.services.embedding import EmbeddingEngine
from chatrag.services.scoring import SOURCE_WORKSPACE, ScoredChunk, rank_chunks

logger = logging.getLogger(__name__)

# Maximum context chunks to retrieve
DEFAULT_TOP_K = 5

CONTEXT_HEADER = "Here is relevant information from your knowledge base:\n\n"
_SOURCE_LABELS = {
    SOURCE_WORKSPACE: "🏢 Workspace",
    "chat": "💬 Chat",
}


@dataclass
class RetrievalResult:
    results: list[ScoredChunk] = field(default_factory=list)
    context: str = ""
    skipped: int = 0

    @property
    def count(self) -> int:
        return len(self.results)

    def to_dict(self) -> dict:
        return {
            "results": [r.to_dict() for r in self.results],
            "context": self.context,
            "count": self.count,
        }


@dataclass
class KnowledgeBaseStats:
    document_count: int = 0
    chunk_count: int = 0
    total_tokens: int = 0
    avg_chunks_per_doc: int = 0

    def to_dict(self) -> dict:
        return {
            "documentCount": self.document_count,
            "chunkCount": self.chunk_count,
            "totalTokens": self.total_tokens,
            "avgChunksPerDoc": self.avg_chunks_per_doc,
        }


def build_context_string(chunks: list[ScoredChunk]) -> str:
    """Render ranked chunks as the context block for the LLM prompt."""
    if not chunks:
        return ""

    context = CONTEXT_HEADER
    for i, chunk in enumerate(chunks, 1):
        label = _SOURCE_LABELS.get(chunk.source, chunk.source)
        context += (
            f'[{i}] {label} - "{chunk.document_title}" '
            f"(relevance: {chunk.score * 100:.1f}%)\n"
        )
        context += f"{chunk.content}\n\n"
    return context


def inject_context(message_history: list[dict], context: str) -> list[dict]:
    """Insert the context as a system message right before the latest message."""
    messages = list(message_history)
    if not context or not messages:
        return messages
    messages.insert(len(messages) - 1, {"role": "system", "content": context})
    return messages


class RetrievalPipeline:
    def __init__(self, store: DocumentStore, engine: EmbeddingEngine) -> None:
        self.store = store
        self.engine = engine

    async def query(
        self,
        question: str,
        chat_id: int | None = None,
        workspace_id: int | None = None,
        k: int = DEFAULT_TOP_K,
    ) -> RetrievalResult:
        """Rank the chunks visible from the given chat/workspace against a question."""
        if not isinstance(question, str) or not question.strip():
            raise InvalidInputError("Question is required")

        logger.info("RAG query %r (chat=%s, workspace=%s, k=%d)",
                    question[:50], chat_id, workspace_id, k)

        # 1. Embed the question
        query_vector = await self.engine.embed(question)

        # 2. Candidate documents
        documents = await self.gather_documents(chat_id=chat_id, workspace_id=workspace_id)
        if not documents:
            logger.info("No candidate documents for chat=%s workspace=%s", chat_id, workspace_id)
            return RetrievalResult()

        # 3. Their chunks
        chunks = await self.store.find_chunks_by_document_ids(list(documents))

        # 4. Score off the event loop and keep the top k
        outcome = await asyncio.to_thread(rank_chunks, query_vector, chunks, documents, k)
        if outcome.skipped:
            logger.warning(
                "Skipped %d chunks during scoring (null=%d, invalid=%d, dimension=%d)",
                outcome.skipped,
                outcome.skipped_null,
                outcome.skipped_invalid,
                outcome.skipped_dimension,
            )
        logger.info(
            "Scored %d chunks from %d documents, returning %d",
            outcome.processed, len(documents), len(outcome.results),
        )

        return RetrievalResult(
            results=outcome.results,
            context=build_context_string(outcome.results),
            skipped=outcome.skipped,
        )

    async def gather_documents(
        self,
        chat_id: int | None = None,
        workspace_id: int | None = None,
    ) -> dict[int, Document]:
        """Workspace documents ∪ chat documents keyed by id; first occurrence wins."""
        candidates: list[Document] = []
        if workspace_id is not None:
            candidates.extend(await self.store.find_documents_by_workspace(workspace_id))
        if chat_id is not None:
            candidates.extend(await self.store.find_documents_by_chat(chat_id))

        documents: dict[int, Document] = {}
        for doc in candidates:
            documents.setdefault(doc.id, doc)
        return documents

    async def get_chat_stats(self, chat_id: int) -> KnowledgeBaseStats:
        return await self._stats(await self.store.find_documents_by_chat(chat_id))

    async def get_workspace_stats(self, workspace_id: int) -> KnowledgeBaseStats:
        return await self._stats(await self.store.find_documents_by_workspace(workspace_id))

    async def _stats(self, documents: list[Document]) -> KnowledgeBaseStats:
        if not documents:
            return KnowledgeBaseStats()

        chunks = await self.store.find_chunks_by_document_ids([d.id for d in documents])
        chunk_count = len(chunks)
        total_tokens = sum(c.token_count or 0 for c in chunks)
        # Round half up, not banker's rounding
        avg = int(chunk_count / len(documents) + 0.5)
        return KnowledgeBaseStats(
            document_count=len(documents),
            chunk_count=chunk_count,
            total_tokens=total_tokens,
            avg_chunks_per_doc=avg,
        )
