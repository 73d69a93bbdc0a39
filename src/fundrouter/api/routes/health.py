"""Health check endpoints."""

from fastapi import APIRouter

from fundrouter import __version__
from fundrouter.chain.factory import get_chain_client
from fundrouter.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "fundrouter"}


@router.get("/health/detailed")
async def detailed_health():
    """Detailed health check with configuration info."""
    settings = get_settings()
    chain_ok = await get_chain_client().health_check()
    return {
        "status": "healthy" if chain_ok else "degraded",
        "service": "fundrouter",
        "version": __version__,
        "chain_reachable": chain_ok,
        "config": settings.get_safe_dict(),
    }
