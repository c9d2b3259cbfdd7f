"""Health check endpoint."""

from fastapi import APIRouter, Request

from services.metrics import get_metrics_collector

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health(request: Request):
    """Service status, configured provider, context store backend and tool stats."""
    state = request.app.state
    settings = state.settings
    store_ok = await state.context_store.ping()
    return {
        "status": "healthy" if store_ok else "degraded",
        "provider": settings.default_provider,
        "model": settings.model_for(settings.default_provider),
        "contextStore": settings.context_store_type,
        "contextStoreReachable": store_ok,
        "tools": state.tool_registry.names(),
        "toolMetrics": get_metrics_collector().snapshot()["tools"],
    }
