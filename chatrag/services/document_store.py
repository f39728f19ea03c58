"""Document store — repository over documents and their chunks.

The pipelines only talk to this interface; the SQL engine behind the
session is an implementation detail. Every SQLAlchemy failure surfaces as
``PersistenceError``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import delete, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from chatrag.core.errors import PersistenceError
from chatrag.models.chat import Chat
from chatrag.models.chunk import DocumentChunk
from chatrag.models.document import Document

logger = logging.getLogger(__name__)


class DocumentStore:
    """Reads and writes Document / DocumentChunk rows through one session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ── reads ────────────────────────────────────────────────

    async def get_document(self, document_id: int) -> Document | None:
        try:
            return await self.session.get(Document, document_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load document {document_id}: {exc}") from exc

    async def find_documents_by_workspace(self, workspace_id: int) -> list[Document]:
        stmt = (
            select(Document)
            .where(Document.workspace_id == workspace_id)
            .order_by(Document.id.desc())  # type: ignore[union-attr]
        )
        return await self._all(stmt, f"documents for workspace {workspace_id}")

    async def find_documents_by_chat(self, chat_id: int) -> list[Document]:
        stmt = (
            select(Document)
            .where(Document.chat_id == chat_id)
            .order_by(Document.id.desc())  # type: ignore[union-attr]
        )
        return await self._all(stmt, f"documents for chat {chat_id}")

    async def find_chunks_by_document_ids(self, document_ids: Sequence[int]) -> list[DocumentChunk]:
        if not document_ids:
            return []
        stmt = (
            select(DocumentChunk)
            .where(DocumentChunk.document_id.in_(list(document_ids)))  # type: ignore[attr-defined]
            .order_by(DocumentChunk.document_id, DocumentChunk.chunk_index)
        )
        return await self._all(stmt, f"chunks for {len(document_ids)} documents")

    async def list_documents(self, search: str | None = None) -> list[Document]:
        """All documents, newest first, optionally filtered on title/filename."""
        stmt = select(Document)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Document.title).like(pattern),
                    func.lower(Document.filename).like(pattern),
                )
            )
        stmt = stmt.order_by(Document.id.desc())  # type: ignore[union-attr]
        return await self._all(stmt, "document listing")

    async def count_chunks_by_document(self, document_ids: Sequence[int]) -> dict[int, int]:
        if not document_ids:
            return {}
        stmt = (
            select(DocumentChunk.document_id, func.count())
            .where(DocumentChunk.document_id.in_(list(document_ids)))  # type: ignore[attr-defined]
            .group_by(DocumentChunk.document_id)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to count chunks: {exc}") from exc
        return {row[0]: row[1] for row in result.all()}

    async def chat_titles(self, chat_ids: Sequence[int]) -> dict[int, str]:
        """Titles of the given chats; ids without a chat row are left out."""
        if not chat_ids:
            return {}
        stmt = select(Chat.id, Chat.title).where(Chat.id.in_(list(chat_ids)))  # type: ignore[union-attr]
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load chat titles: {exc}") from exc
        return {row[0]: row[1] for row in result.all()}

    async def total_file_size(self, tenant_id: str | None = None) -> int:
        """Sum of stored document sizes in bytes, optionally for one tenant."""
        stmt = select(func.coalesce(func.sum(Document.file_size), 0))
        if tenant_id is not None:
            stmt = stmt.where(Document.tenant_id == tenant_id)
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to compute storage usage: {exc}") from exc
        return int(result.scalar_one())

    # ── writes ───────────────────────────────────────────────

    async def insert_document(self, document: Document) -> Document:
        """Insert and commit a document; its id is populated on return."""
        try:
            self.session.add(document)
            await self.session.commit()
            await self.session.refresh(document)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(f"Failed to create document: {exc}") from exc
        return document

    async def insert_chunks(self, chunks: Sequence[DocumentChunk]) -> None:
        """Insert and commit all chunks of one document in a single transaction."""
        if not chunks:
            return
        try:
            self.session.add_all(list(chunks))
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(f"Failed to store {len(chunks)} chunks: {exc}") from exc

    async def delete_chunks_by_document(self, document_id: int) -> int:
        stmt = delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(
                f"Failed to delete chunks of document {document_id}: {exc}"
            ) from exc
        deleted = result.rowcount or 0
        logger.info("Deleted %d chunks of document %s", deleted, document_id)
        return deleted

    async def delete_document(self, document_id: int) -> bool:
        """Delete a document and its chunks (chunks first). False if it did not exist."""
        document = await self.get_document(document_id)
        if document is None:
            return False
        await self.delete_chunks_by_document(document_id)
        try:
            await self.session.delete(document)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(f"Failed to delete document {document_id}: {exc}") from exc
        return True

    # ── helpers ──────────────────────────────────────────────

    async def _all(self, stmt, what: str) -> list:
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load {what}: {exc}") from exc
        return list(result.scalars().all())
