"""Health check endpoints."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Basic health check."""
    configured = getattr(request.app.state, "orchestrator", None) is not None
    return {"status": "healthy", "service": "consilium", "specialists_configured": configured}


@router.get("/")
async def root():
    """API root."""
    return {
        "name": "Consilium API",
        "version": "1.0.0",
        "docs": "/docs",
    }
