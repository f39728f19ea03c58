"""RAG feature-flag gating.

Three flags live in the single ``rag_settings`` row:

- ``disable_rag`` switches everything off.
- ``disable_rag_workspace`` covers workspace documents and chats created
  from a workspace.
- ``disable_rag_chat`` covers every other chat.

Reading the flags or the chat row may fail; RAG is additive, so a failed
read means "not disabled".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from chatrag.models.chat import Chat
from chatrag.models.settings import RagSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RagFlags:
    disable_rag: bool = False
    disable_rag_chat: bool = False
    disable_rag_workspace: bool = False


@dataclass(frozen=True)
class ChatMetadata:
    chat_id: int
    is_workspace_created: bool = False


@dataclass(frozen=True)
class AccessDecision:
    disabled: bool
    reason: str | None = None


ALLOWED = AccessDecision(disabled=False)


def should_skip(
    flags: RagFlags,
    chat: ChatMetadata | None = None,
    workspace_id: int | None = None,
) -> AccessDecision:
    """Decide whether RAG must be skipped for this chat / workspace request."""
    if flags.disable_rag:
        return AccessDecision(disabled=True, reason="RAG system is disabled")

    workspace_scoped = (chat is not None and chat.is_workspace_created) or (
        chat is None and workspace_id is not None
    )
    if workspace_scoped:
        if flags.disable_rag_workspace:
            return AccessDecision(disabled=True, reason="RAG for workspaces is disabled")
        return ALLOWED

    if chat is not None and flags.disable_rag_chat:
        return AccessDecision(disabled=True, reason="RAG for chats is disabled")
    return ALLOWED


async def get_settings_row(session: AsyncSession) -> RagSettings | None:
    result = await session.execute(select(RagSettings).order_by(RagSettings.id).limit(1))
    return result.scalars().first()


async def load_flags(session: AsyncSession) -> RagFlags:
    row = await get_settings_row(session)
    if row is None:
        return RagFlags()
    return RagFlags(
        disable_rag=bool(row.disable_rag),
        disable_rag_chat=bool(row.disable_rag_chat),
        disable_rag_workspace=bool(row.disable_rag_workspace),
    )


async def update_settings(session: AsyncSession, **changes) -> RagSettings:
    """Create or update the settings row with the given non-None values."""
    row = await get_settings_row(session)
    if row is None:
        row = RagSettings()
    for key, value in changes.items():
        if value is not None:
            setattr(row, key, value)
    row.touch()
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return row


async def load_chat_metadata(session: AsyncSession, chat_id: int) -> ChatMetadata:
    chat = await session.get(Chat, chat_id)
    if chat is None:
        # Unknown chats are treated as regular (non-workspace) chats
        return ChatMetadata(chat_id=chat_id)
    return ChatMetadata(chat_id=chat_id, is_workspace_created=bool(chat.is_workspace_created))


async def check_access(
    session: AsyncSession,
    chat_id: int | None = None,
    workspace_id: int | None = None,
) -> AccessDecision:
    """Load flags and chat metadata and apply ``should_skip``; fails open."""
    try:
        flags = await load_flags(session)
        chat = await load_chat_metadata(session, chat_id) if chat_id is not None else None
    except Exception:
        logger.exception("Could not read RAG settings or chat %s; RAG stays enabled", chat_id)
        await session.rollback()
        return ALLOWED
    decision = should_skip(flags, chat, workspace_id)
    if decision.disabled:
        logger.info("RAG skipped (chat=%s, workspace=%s): %s", chat_id, workspace_id, decision.reason)
    return decision
