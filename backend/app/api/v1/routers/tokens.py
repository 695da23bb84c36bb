# app/api/v1/routers/tokens.py
from fastapi import APIRouter, Depends

from app.api.v1.deps import api_rate_limit, get_services, require_min_level
from app.core.permissions import ADMIN_LEVEL
from app.services.container import Services

router = APIRouter(
    prefix="/tokens",
    tags=["tokens"],
    dependencies=[Depends(require_min_level(ADMIN_LEVEL)), Depends(api_rate_limit)],
)


@router.get("/stats")
async def token_statistics(services: Services = Depends(get_services)):
    """Session counts: total, active, expired and revoked (admin only)."""
    return {"success": True, "data": await services.tokens.statistics()}


@router.post("/cleanup")
async def cleanup_tokens(services: Services = Depends(get_services)):
    """
    Run both garbage-collection sweeps now (admin only): expired sessions,
    and revoked sessions older than the retention window.
    """
    expired = await services.tokens.cleanup_expired()
    revoked = await services.tokens.cleanup_revoked()
    return {"success": True, "data": {"expiredDeleted": expired, "revokedDeleted": revoked}}
