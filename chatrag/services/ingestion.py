"""Ingestion pipeline — one document: persist → chunk → embed → persist chunks."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from chatrag.core.errors import DocumentNotFoundError, InvalidInputError
from chatrag.models.chunk import DocumentChunk
from chatrag.models.document import Document
from chatrag.services.chunking import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, chunk_text
from chatrag.services.document_store import DocumentStore
from chatrag.services.embedding import EmbeddingEngine
from chatrag.services.scoring import serialize_embedding

logger = logging.getLogger(__name__)


@dataclass
class IngestRequest:
    """Already-extracted text plus the metadata of where it came from."""
    title: str
    filename: str
    text: str
    chat_id: int | None = None
    workspace_id: int | None = None
    tenant_id: str | None = None
    file_path: str = ""
    mime_type: str | None = None
    file_size: int = 0


class IngestionPipeline:
    def __init__(
        self,
        store: DocumentStore,
        engine: EmbeddingEngine,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    ) -> None:
        self.store = store
        self.engine = engine
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    async def ingest(self, request: IngestRequest) -> int:
        """Ingest one document and return its id.

        The document row is committed before chunking starts. If embedding
        or chunk storage fails afterwards the error propagates and the
        document stays behind with no chunks; it is not rolled back.
        """
        if not request.title or not request.title.strip():
            raise InvalidInputError("Document title is required")
        if not request.filename or not request.filename.strip():
            raise InvalidInputError("Document filename is required")
        if not isinstance(request.text, str) or not request.text.strip():
            raise InvalidInputError("Document text is empty")

        logger.info("Ingesting document %r (%d chars)", request.title, len(request.text))

        # 1. Create document record (flush point 1)
        document = await self.store.insert_document(Document(
            chat_id=request.chat_id,
            workspace_id=request.workspace_id,
            tenant_id=request.tenant_id,
            title=request.title,
            filename=request.filename,
            file_path=request.file_path,
            mime_type=request.mime_type,
            file_size=request.file_size or 0,
        ))
        document_id = document.id
        logger.info("Created document %s", document_id)

        try:
            # 2. Chunk the content
            chunks = chunk_text(
                request.text,
                chunk_size=self.chunk_size,
                chunk_overlap=self.chunk_overlap,
            )
            if not chunks:
                logger.warning("Document %s produced no chunks", document_id)
                return document_id

            # 3. Embed all chunk texts in one batched call
            vectors = await self.engine.embed_batch([c.content for c in chunks])

            # 4. Save chunks (flush point 2)
            await self.store.insert_chunks([
                DocumentChunk(
                    document_id=document_id,
                    chunk_index=tc.index,
                    content=tc.content,
                    embedding=serialize_embedding(vector),
                    token_count=tc.char_count,
                )
                for tc, vector in zip(chunks, vectors)
            ])
        except Exception:
            logger.exception(
                "Ingestion failed after document %s was created; it is left without chunks",
                document_id,
            )
            raise

        logger.info("Ingested document %s: %d chunks", document_id, len(chunks))
        return document_id

    async def delete_document(self, document_id: int) -> None:
        """Remove a document together with all its chunks."""
        if not await self.store.delete_document(document_id):
            raise DocumentNotFoundError(document_id)
