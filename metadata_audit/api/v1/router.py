"""API v1 router aggregator."""

from fastapi import APIRouter

from metadata_audit.api.v1.audits.routes import router as audits_router

api_router = APIRouter()

api_router.include_router(audits_router, prefix="/audits", tags=["Audits"])
