"""V1 API router aggregation."""

from fastapi import APIRouter

from chatrag.api.v1.rag import router as rag_router
from chatrag.api.v1.settings import router as settings_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(rag_router)
v1_router.include_router(settings_router)
