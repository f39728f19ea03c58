"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatrag.api.v1 import v1_router
from chatrag.core.config import get_settings
from chatrag.core.database import init_db
from chatrag.core.errors import RAGError
from chatrag.services.embedding import EmbeddingEngine

logger = logging.getLogger(__name__)


def build_embedding_engine() -> EmbeddingEngine:
    settings = get_settings()
    return EmbeddingEngine(
        model_name=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
        batch_size=settings.embedding_batch_size,
        init_timeout=settings.embedding_init_timeout,
        device=settings.embedding_device,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Startup: ensure tables exist; the model itself loads on first use
    await init_db()
    app.state.embedding_engine = build_embedding_engine()
    yield
    # Shutdown: free the model
    await app.state.embedding_engine.unload()


app = FastAPI(
    title="chatrag",
    version="0.1.0",
    description="Self-hosted document retrieval for chat applications",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────
_settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _settings.allowed_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RAGError)
async def rag_error_handler(request: Request, exc: RAGError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.__class__.__name__, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.__class__.__name__,
            "detail": exc.message,
        },
    )


# ── API routes ───────────────────────────────────────────────
app.include_router(v1_router)


@app.get("/health", tags=["system"])
async def health_check(request: Request) -> dict:
    engine = getattr(request.app.state, "embedding_engine", None)
    return {
        "status": "ok",
        "embedding_model_loaded": bool(engine and engine.is_initialized),
    }
