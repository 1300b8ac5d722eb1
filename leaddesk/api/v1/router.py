"""Root API router for v1 endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from leaddesk.api.v1 import auth, bulk, health, imports, leads
from leaddesk.core.config import get_config

api_router = APIRouter(prefix=get_config().API_PREFIX)
api_router.include_router(health.router)
api_router.include_router(auth.router)
api_router.include_router(leads.router)
api_router.include_router(bulk.router)
api_router.include_router(imports.router)


def get_api_router() -> APIRouter:
    return api_router
