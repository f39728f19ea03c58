"""RAG settings — the global / chat / workspace kill switches and storage quota."""

from fastapi import APIRouter

from chatrag.api.deps import Session
from chatrag.models.settings import RagSettingsRead, RagSettingsUpdate
from chatrag.services import access_policy

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=RagSettingsRead)
async def get_rag_settings(session: Session) -> RagSettingsRead:
    row = await access_policy.get_settings_row(session)
    if row is None:
        return RagSettingsRead()
    return RagSettingsRead.model_validate(row, from_attributes=True)


@router.post("", response_model=RagSettingsRead)
async def update_rag_settings(body: RagSettingsUpdate, session: Session) -> RagSettingsRead:
    row = await access_policy.update_settings(session, **body.model_dump(exclude_unset=True))
    return RagSettingsRead.model_validate(row, from_attributes=True)
