"""
Liveness probe for the share store and the upload directory.
"""
from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool

from shareit.models import HealthCheck

router = APIRouter()


def _check(request: Request) -> bool:
    service = request.app.state.shares
    return request.app.state.db.is_healthy() and service.blobs.upload_dir.is_dir()


@router.get("/api/healthz", response_model=HealthCheck)
async def health_check(request: Request) -> HealthCheck:
    """ok is false when the store does not answer a ping or uploads have nowhere to go."""
    return HealthCheck(ok=await run_in_threadpool(_check, request))
