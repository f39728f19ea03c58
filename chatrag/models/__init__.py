"""Import all models so SQLModel.metadata picks them up."""

from chatrag.models.chat import Chat
from chatrag.models.chunk import DocumentChunk
from chatrag.models.document import AdminDocumentRead, Document, DocumentRead
from chatrag.models.settings import RagSettings, RagSettingsRead, RagSettingsUpdate

__all__ = [
    "AdminDocumentRead",
    "Chat",
    "Document",
    "DocumentChunk",
    "DocumentRead",
    "RagSettings",
    "RagSettingsRead",
    "RagSettingsUpdate",
]
