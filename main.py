"""FastAPI entry point for the SkinBuddy chat service."""

import asyncio
import logging
from contextlib import asynccontextmanager

import litellm
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.chat import drain_detached_turns, router as chat_router
from api.health import router as health_router
from config.settings import get_settings
from services.concurrency import ConcurrencyLimitMiddleware
from services.context_store import build_context_store, periodic_cleanup
from services.middleware import RequestIdMiddleware
from services.storefront_client import StorefrontClient
from tools.registry import build_tool_registry

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Token counting only; keep LiteLLM from chattering at INFO.
litellm.suppress_debug_info = True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle — start/stop shared resources."""
    storefront = StorefrontClient.from_settings(settings)
    await storefront.start()

    store = build_context_store(settings)
    if settings.context_store_type == "redis":
        if await store.ping():
            logger.info("Redis connection verified")
        else:
            logger.warning("Redis connection failed — sessions may not persist")
    cleanup_task = asyncio.create_task(periodic_cleanup(store, interval_seconds=300))

    app.state.settings = settings
    app.state.context_store = store
    app.state.storefront = storefront
    app.state.tool_registry = build_tool_registry()

    yield

    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass

    await drain_detached_turns()
    await store.close()
    await storefront.close()


app = FastAPI(
    title="SkinBuddy Chat",
    description="Streaming shopping-assistant chat with tool calling",
    version="0.4.0",
    lifespan=lifespan,
)

# ── Middleware stack ───────────────────────────────────────
# Starlette wraps in reverse order: ConcurrencyLimit runs outermost.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(ConcurrencyLimitMiddleware, max_streams=settings.max_concurrent_chats)

# ── Routers ─────────────────────────────────────────────────
app.include_router(health_router)
app.include_router(chat_router)


if __name__ == "__main__":
    if settings.debug:
        uvicorn.run("main:app", host="0.0.0.0", port=settings.service_port, reload=True)
    else:
        # Production: prefer `gunicorn main:app -c deploy/gunicorn.conf.py`
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.service_port,
            workers=4,
            timeout_keep_alive=120,
        )
