"""Chat model — the metadata the RAG core needs about a conversation."""

from sqlmodel import Field, SQLModel

from chatrag.models.base import TimestampMixin


class Chat(TimestampMixin, SQLModel, table=True):
    __tablename__ = "chats"

    id: int | None = Field(default=None, primary_key=True)
    title: str = Field(default="", max_length=500)
    workspace_id: int | None = Field(default=None, nullable=True, index=True)

    # Chats spawned by a workspace follow the workspace RAG flag, not the chat flag
    is_workspace_created: bool = Field(default=False)
