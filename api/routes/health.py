"""Health check endpoints."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from database.engine import ping_db

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version="0.1.0")


@router.get("/ready")
async def readiness_check():
    """Readiness check for load balancers."""
    if not await ping_db():
        return JSONResponse(status_code=503, content={"status": "unavailable", "database": False})
    return {"status": "ready", "database": True}
