"""RAG feature flags — a single-row table read by the access policy."""

from pydantic import BaseModel
from sqlmodel import Field, SQLModel

from chatrag.models.base import TimestampMixin


class RagSettings(TimestampMixin, SQLModel, table=True):
    __tablename__ = "rag_settings"

    id: int | None = Field(default=None, primary_key=True)

    # Approximate storage quota for ingested text, in MB
    storage_limit_mb: int = Field(default=1024)

    disable_rag: bool = Field(default=False)
    disable_rag_chat: bool = Field(default=False)
    disable_rag_workspace: bool = Field(default=False)


# ── Pydantic schemas ─────────────────────────────────────────

class RagSettingsRead(BaseModel):
    storage_limit_mb: int = 1024
    disable_rag: bool = False
    disable_rag_chat: bool = False
    disable_rag_workspace: bool = False


class RagSettingsUpdate(BaseModel):
    storage_limit_mb: int | None = None
    disable_rag: bool | None = None
    disable_rag_chat: bool | None = None
    disable_rag_workspace: bool | None = None
