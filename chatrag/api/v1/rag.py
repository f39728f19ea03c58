"""Knowledge-base endpoints — ingest, list, delete, query, stats."""

import logging

import httpx
from fastapi import APIRouter, Form, HTTPException, Query, UploadFile, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chatrag.api.deps import Engine, Ingestion, Retrieval, Session, Store
from chatrag.core.config import get_settings
from chatrag.core.errors import InvalidInputError
from chatrag.models.chat import Chat
from chatrag.models.document import AdminDocumentRead, DocumentRead
from chatrag.services import access_policy
from chatrag.services.document_store import DocumentStore
from chatrag.services.extract import (
    extract_text,
    guess_mime_type,
    is_supported,
    supported_formats,
)
from chatrag.services.html_extract import filename_from_url, parse_html, title_from_url
from chatrag.services.ingestion import IngestRequest
from chatrag.services.retrieval import KnowledgeBaseStats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rag", tags=["rag"])

# URL pages with less visible text than this are rejected
MIN_URL_TEXT_LENGTH = 50


# ── Schemas ──────────────────────────────────────────────────

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IngestTextBody(CamelModel):
    title: str
    text: str
    filename: str | None = None
    chat_id: int | None = None
    workspace_id: int | None = None
    tenant_id: str | None = None
    mime_type: str | None = None


class IngestUrlBody(CamelModel):
    url: str
    chat_id: int | None = None
    workspace_id: int | None = None
    tenant_id: str | None = None


class QueryBody(CamelModel):
    question: str
    chat_id: int | None = None
    workspace_id: int | None = None
    k: int = Field(default_factory=lambda: get_settings().default_top_k, ge=1, le=50)


class IngestResponse(CamelModel):
    success: bool
    document_id: int | None = None
    chat_id: int | None = None
    message: str | None = None
    error: str | None = None


# ── Helpers ──────────────────────────────────────────────────

def _skipped(reason: str | None) -> dict:
    return {"success": False, "error": reason or "RAG is disabled"}


async def _create_knowledge_base_chat(session, title: str) -> int:
    """Documents uploaded without any scope get a chat of their own."""
    chat = Chat(title=f"Knowledge Base: {title}")
    session.add(chat)
    await session.commit()
    await session.refresh(chat)
    logger.info("Created knowledge-base chat %s", chat.id)
    return chat.id


async def _check_quota(session, store: DocumentStore, tenant_id: str | None) -> None:
    row = await access_policy.get_settings_row(session)
    limit_mb = row.storage_limit_mb if row is not None else 1024
    used = await store.total_file_size(tenant_id)
    if used >= limit_mb * 1024 * 1024:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Storage quota exceeded ({used / (1024 * 1024):.2f}MB / {limit_mb}MB)",
        )


# ── Ingestion ────────────────────────────────────────────────

@router.post("/ingest", response_model=IngestResponse, response_model_exclude_none=True)
async def ingest_upload(
    file: UploadFile,
    session: Session,
    store: Store,
    pipeline: Ingestion,
    chat_id: int | None = Form(None, alias="chatId"),
    workspace_id: int | None = Form(None, alias="workspaceId"),
    title: str | None = Form(None),
    tenant_id: str | None = Form(None, alias="tenantId"),
):
    """Upload a file, extract its text and ingest it."""
    decision = await access_policy.check_access(session, chat_id, workspace_id)
    if decision.disabled:
        return _skipped(decision.reason)

    filename = file.filename or ""
    if not filename:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="No filename")
    if not is_supported(filename):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail=f"Unsupported file type: {filename}. {supported_formats()}",
        )

    content = await file.read()
    max_bytes = get_settings().max_upload_size_mb * 1024 * 1024
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail=f"File too large. Maximum size is {get_settings().max_upload_size_mb} MB.",
        )

    await _check_quota(session, store, tenant_id)
    text = extract_text(filename, content)
    doc_title = title or filename

    if chat_id is None and workspace_id is None:
        chat_id = await _create_knowledge_base_chat(session, doc_title)

    document_id = await pipeline.ingest(IngestRequest(
        chat_id=chat_id,
        workspace_id=workspace_id,
        tenant_id=tenant_id,
        title=doc_title,
        filename=filename,
        file_path="",  # raw files are not retained, only chunks
        text=text,
        mime_type=file.content_type or guess_mime_type(filename),
        file_size=len(content),
    ))
    return IngestResponse(
        success=True,
        document_id=document_id,
        chat_id=chat_id,
        message="Document ingested successfully",
    )


@router.post("/ingest-text", response_model=IngestResponse, response_model_exclude_none=True)
async def ingest_text(body: IngestTextBody, session: Session, pipeline: Ingestion):
    """Ingest text that was extracted elsewhere."""
    decision = await access_policy.check_access(session, body.chat_id, body.workspace_id)
    if decision.disabled:
        return _skipped(decision.reason)

    if not body.text.strip():
        raise InvalidInputError("Document text is empty")

    chat_id = body.chat_id
    if chat_id is None and body.workspace_id is None:
        chat_id = await _create_knowledge_base_chat(session, body.title)

    document_id = await pipeline.ingest(IngestRequest(
        chat_id=chat_id,
        workspace_id=body.workspace_id,
        tenant_id=body.tenant_id,
        title=body.title,
        filename=body.filename or f"{body.title}.txt",
        text=body.text,
        mime_type=body.mime_type or "text/plain",
        file_size=len(body.text.encode("utf-8")),
    ))
    return IngestResponse(
        success=True,
        document_id=document_id,
        chat_id=chat_id,
        message="Document ingested successfully",
    )


@router.post("/ingest-url", response_model=IngestResponse, response_model_exclude_none=True)
async def ingest_url(body: IngestUrlBody, session: Session, store: Store, pipeline: Ingestion):
    """Fetch a web page, strip it to text and ingest it."""
    decision = await access_policy.check_access(session, body.chat_id, body.workspace_id)
    if decision.disabled:
        return _skipped(decision.reason)

    if not body.url.startswith(("http://", "https://")):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="Invalid URL format")

    await _check_quota(session, store, body.tenant_id)

    try:
        async with httpx.AsyncClient(
            timeout=get_settings().url_fetch_timeout, follow_redirects=True,
        ) as client:
            resp = await client.get(body.url, headers={"User-Agent": "chatrag/1.0"})
            resp.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Fetching %s failed: %s", body.url, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Could not fetch URL: {exc}",
        ) from exc

    page = parse_html(resp.text)
    if len(page.text) < MIN_URL_TEXT_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail="Could not extract meaningful content from URL",
        )

    title = page.title or title_from_url(body.url)
    chat_id = body.chat_id
    if chat_id is None and body.workspace_id is None:
        chat_id = await _create_knowledge_base_chat(session, title)

    document_id = await pipeline.ingest(IngestRequest(
        chat_id=chat_id,
        workspace_id=body.workspace_id,
        tenant_id=body.tenant_id,
        title=title,
        filename=filename_from_url(body.url),
        file_path="",
        text=page.text,
        mime_type="text/plain",
        file_size=len(page.text),  # approximate: no raw file is kept
    ))
    return IngestResponse(
        success=True,
        document_id=document_id,
        chat_id=chat_id,
        message="URL content ingested successfully",
    )


# ── Documents ────────────────────────────────────────────────

@router.get("/documents")
async def list_documents(
    session: Session,
    store: Store,
    chat_id: int | None = Query(None, alias="chatId"),
    workspace_id: int | None = Query(None, alias="workspaceId"),
) -> dict:
    """Documents of one chat or one workspace, newest first."""
    if chat_id is None and workspace_id is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail="chat_id or workspace_id is required",
        )

    decision = await access_policy.check_access(session, chat_id, workspace_id)
    if decision.disabled:
        return {"success": True, "documents": [], "disabled": True, "reason": decision.reason}

    if chat_id is not None:
        documents = await store.find_documents_by_chat(chat_id)
    else:
        documents = await store.find_documents_by_workspace(workspace_id)

    counts = await store.count_chunks_by_document([d.id for d in documents])
    return {
        "success": True,
        "documents": [
            DocumentRead.from_document(d, counts.get(d.id, 0)).model_dump() for d in documents
        ],
    }


@router.get("/admin/documents")
async def list_all_documents(store: Store, search: str | None = None) -> dict:
    """Every document, labelled with its chat title and workspace name."""
    documents = await store.list_documents(search)
    counts = await store.count_chunks_by_document([d.id for d in documents])
    titles = await store.chat_titles(sorted({d.chat_id for d in documents if d.chat_id is not None}))

    results = []
    for d in documents:
        row = AdminDocumentRead.from_document(d, counts.get(d.id, 0))
        if d.chat_id is not None:
            row.chat_title = titles.get(d.chat_id) or f"Chat {d.chat_id}"
        if d.workspace_id is not None:
            row.workspace_name = f"Workspace {d.workspace_id}"
        results.append(row.model_dump())
    return {"success": True, "documents": results, "total": len(results)}


@router.delete("/documents/{document_id}")
async def delete_document(document_id: int, pipeline: Ingestion) -> dict:
    await pipeline.delete_document(document_id)
    return {"success": True, "message": "Document deleted successfully"}


# ── Query / stats ────────────────────────────────────────────

@router.post("/query")
async def query_knowledge_base(body: QueryBody, session: Session, pipeline: Retrieval) -> dict:
    """Rank chunks visible from the chat/workspace and build the prompt context."""
    decision = await access_policy.check_access(session, body.chat_id, body.workspace_id)
    if decision.disabled:
        return {
            "success": True,
            "results": [],
            "context": "",
            "count": 0,
            "disabled": True,
            "reason": decision.reason,
        }

    result = await pipeline.query(
        body.question,
        chat_id=body.chat_id,
        workspace_id=body.workspace_id,
        k=body.k,
    )
    return {"success": True, **result.to_dict()}


@router.get("/stats")
async def get_stats(
    session: Session,
    pipeline: Retrieval,
    chat_id: int | None = Query(None, alias="chatId"),
    workspace_id: int | None = Query(None, alias="workspaceId"),
) -> dict:
    if chat_id is None and workspace_id is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail="chat_id or workspace_id is required",
        )

    decision = await access_policy.check_access(session, chat_id, workspace_id)
    if decision.disabled:
        return {
            "success": True,
            "stats": KnowledgeBaseStats().to_dict(),
            "disabled": True,
            "reason": decision.reason,
        }

    if chat_id is not None:
        stats = await pipeline.get_chat_stats(chat_id)
    else:
        stats = await pipeline.get_workspace_stats(workspace_id)
    return {"success": True, "stats": stats.to_dict()}


@router.get("/storage/usage")
async def get_storage_usage(
    session: Session,
    store: Store,
    tenant_id: str | None = Query(None, alias="tenantId"),
) -> dict:
    row = await access_policy.get_settings_row(session)
    limit_mb = row.storage_limit_mb if row is not None else 1024
    used = await store.total_file_size(tenant_id)
    used_mb = round(used / (1024 * 1024), 2)
    percent = round(used / (limit_mb * 1024 * 1024) * 100, 2) if limit_mb else 0.0
    return {
        "success": True,
        "bytes": used,
        "mb": used_mb,
        "quota": limit_mb,
        "percentUsed": percent,
        "exceeded": used >= limit_mb * 1024 * 1024,
    }


@router.get("/model")
async def get_model_info(engine: Engine) -> dict:
    return {"success": True, "model": engine.model_info()}
