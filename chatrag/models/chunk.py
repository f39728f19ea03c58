"""DocumentChunk model — an indexed text segment with its serialized embedding."""

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from chatrag.models.base import TimestampMixin


class DocumentChunk(TimestampMixin, SQLModel, table=True):
    __tablename__ = "document_chunks"

    id: int | None = Field(default=None, primary_key=True)
    document_id: int = Field(nullable=False, index=True)

    # Position within the document, dense from 0
    chunk_index: int = Field(nullable=False)

    content: str = Field(sa_column=Column(Text, nullable=False))

    # JSON array of floats, e.g. "[0.0123,-0.221,...]"; NULL means not retrievable
    embedding: str | None = Field(default=None, sa_column=Column(Text, nullable=True))

    # Character length of content, not a tokenizer count
    token_count: int = Field(default=0)
