"""Tests for the RAG enable/disable policy."""

from unittest.mock import AsyncMock, patch

import pytest

from chatrag.models.chat import Chat
from chatrag.services.access_policy import (
    ALLOWED,
    ChatMetadata,
    RagFlags,
    check_access,
    load_chat_metadata,
    load_flags,
    should_skip,
    update_settings,
)

REGULAR_CHAT = ChatMetadata(chat_id=1, is_workspace_created=False)
WORKSPACE_CHAT = ChatMetadata(chat_id=2, is_workspace_created=True)


@pytest.mark.parametrize(
    ("flags", "chat", "workspace_id", "reason"),
    [
        # Nothing disabled
        (RagFlags(), REGULAR_CHAT, None, None),
        (RagFlags(), WORKSPACE_CHAT, 5, None),
        (RagFlags(), None, 5, None),
        # Global switch wins everywhere
        (RagFlags(disable_rag=True), REGULAR_CHAT, None, "RAG system is disabled"),
        (RagFlags(disable_rag=True), WORKSPACE_CHAT, None, "RAG system is disabled"),
        (RagFlags(disable_rag=True), None, 5, "RAG system is disabled"),
        (RagFlags(disable_rag=True), None, None, "RAG system is disabled"),
        # Chat flag only touches regular chats
        (RagFlags(disable_rag_chat=True), REGULAR_CHAT, None, "RAG for chats is disabled"),
        (RagFlags(disable_rag_chat=True), REGULAR_CHAT, 5, "RAG for chats is disabled"),
        (RagFlags(disable_rag_chat=True), WORKSPACE_CHAT, None, None),
        (RagFlags(disable_rag_chat=True), None, 5, None),
        # Workspace flag touches workspace-created chats and bare workspace requests
        (RagFlags(disable_rag_workspace=True), WORKSPACE_CHAT, None, "RAG for workspaces is disabled"),
        (RagFlags(disable_rag_workspace=True), None, 5, "RAG for workspaces is disabled"),
        (RagFlags(disable_rag_workspace=True), REGULAR_CHAT, None, None),
        # No chat and no workspace
        (RagFlags(disable_rag_chat=True, disable_rag_workspace=True), None, None, None),
    ],
)
def test_should_skip_matrix(flags, chat, workspace_id, reason):
    decision = should_skip(flags, chat, workspace_id)
    assert decision.disabled is (reason is not None)
    assert decision.reason == reason


async def test_load_flags_defaults_without_row(session):
    assert await load_flags(session) == RagFlags()


async def test_update_settings_creates_then_updates_row(session):
    row = await update_settings(session, disable_rag_chat=True)
    assert row.id is not None
    assert row.disable_rag_chat is True
    assert row.disable_rag is False

    row = await update_settings(session, disable_rag=True, disable_rag_chat=None)
    assert row.disable_rag is True
    assert row.disable_rag_chat is True

    flags = await load_flags(session)
    assert flags == RagFlags(disable_rag=True, disable_rag_chat=True)


async def test_load_chat_metadata(session):
    chat = Chat(title="From workspace", workspace_id=3, is_workspace_created=True)
    session.add(chat)
    await session.commit()
    await session.refresh(chat)

    meta = await load_chat_metadata(session, chat.id)
    assert meta == ChatMetadata(chat_id=chat.id, is_workspace_created=True)


async def test_missing_chat_is_treated_as_regular_chat(session):
    await update_settings(session, disable_rag_chat=True)

    meta = await load_chat_metadata(session, 404)
    assert meta == ChatMetadata(chat_id=404, is_workspace_created=False)

    decision = await check_access(session, chat_id=404)
    assert decision.disabled
    assert decision.reason == "RAG for chats is disabled"


async def test_check_access_workspace_created_chat(session):
    await update_settings(session, disable_rag_workspace=True)
    chat = Chat(title="Spawned", workspace_id=8, is_workspace_created=True)
    session.add(chat)
    await session.commit()
    await session.refresh(chat)

    decision = await check_access(session, chat_id=chat.id)
    assert decision.reason == "RAG for workspaces is disabled"


async def test_check_access_fails_open(session):
    await update_settings(session, disable_rag=True)

    with patch(
        "chatrag.services.access_policy.load_flags",
        AsyncMock(side_effect=RuntimeError("settings table unreadable")),
    ):
        decision = await check_access(session, chat_id=1, workspace_id=2)

    assert decision is ALLOWED
    assert not decision.disabled
