"""Document model — one ingested file or URL, scoped to a chat and/or a workspace."""

from sqlmodel import Field, SQLModel

from chatrag.models.base import TimestampMixin


class Document(TimestampMixin, SQLModel, table=True):
    __tablename__ = "documents"

    id: int | None = Field(default=None, primary_key=True)

    # Scope: chat-private, workspace-shared, or neither (legacy tenant-only rows)
    chat_id: int | None = Field(default=None, nullable=True, index=True)
    workspace_id: int | None = Field(default=None, nullable=True, index=True)
    tenant_id: str | None = Field(default=None, nullable=True, max_length=255)

    title: str = Field(nullable=False, max_length=500)
    filename: str = Field(nullable=False, max_length=500)
    # Raw files are not retained; empty for chunk-only storage
    file_path: str | None = Field(default="", nullable=True, max_length=1000)
    mime_type: str | None = Field(default=None, nullable=True, max_length=255)
    file_size: int = Field(default=0, nullable=False)


# ── Pydantic schemas ─────────────────────────────────────────

class DocumentRead(SQLModel):
    id: int
    chat_id: int | None
    workspace_id: int | None
    title: str
    filename: str
    mime_type: str | None
    file_size: int
    chunk_count: int = 0
    created_at: str
    updated_at: str

    @classmethod
    def from_document(cls, doc: Document, chunk_count: int = 0) -> "DocumentRead":
        return cls(
            id=doc.id,
            chat_id=doc.chat_id,
            workspace_id=doc.workspace_id,
            title=doc.title,
            filename=doc.filename,
            mime_type=doc.mime_type,
            file_size=doc.file_size or 0,
            chunk_count=chunk_count,
            created_at=doc.created,
            updated_at=doc.updated,
        )


class AdminDocumentRead(DocumentRead):
    """Admin listing row, labelled with the owning chat and workspace."""
    chat_title: str | None = None
    workspace_name: str | None = None
