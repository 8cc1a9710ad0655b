"""Main FastAPI application."""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from app.api import health
from app.api.webhooks import voice
from app.core.config import settings
from app.core.dependencies import get_audio_store, get_business_provider, get_orchestrator
from app.core.logging import setup_logging
from app.db.database import init_db

logger = logging.getLogger(__name__)


async def sweep_idle_sessions(orchestrator=None) -> None:
    """Expire abandoned calls periodically."""
    if orchestrator is None:
        orchestrator = get_orchestrator()
    while True:
        await asyncio.sleep(settings.session_sweep_interval_seconds)
        try:
            expired = await orchestrator.expire_idle_sessions()
        except Exception as e:
            logger.error(f"[MAINTENANCE] Idle session sweep failed: {e}", exc_info=True)
            continue
        if expired:
            logger.info(f"[MAINTENANCE] Expired {len(expired)} idle sessions")


async def reclaim_audio(audio_store=None) -> None:
    """Delete synthesized audio that was never released."""
    if audio_store is None:
        audio_store = get_audio_store()
    while True:
        try:
            audio_store.reclaim(settings.audio_max_age_hours)
        except Exception as e:
            logger.error(f"[MAINTENANCE] Audio reclaim failed: {e}", exc_info=True)
        await asyncio.sleep(settings.audio_cleanup_interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    tasks = [
        asyncio.create_task(sweep_idle_sessions()),
        asyncio.create_task(reclaim_audio()),
    ]
    logger.info(f"[STARTUP] Call agent ready - Provider: {settings.telephony_provider}")
    yield
    # Shutdown
    for task in tasks:
        task.cancel()
    for task in tasks:
        with suppress(asyncio.CancelledError):
            await task
    await get_business_provider().aclose()


app = FastAPI(
    title="Phone Reservation Agent",
    description="Voice assistant answering phone calls and booking tables",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers (must be before static file mounting to take precedence)
app.include_router(health.router, tags=["health"])
app.include_router(voice.router, tags=["voice"])

# Synthesized speech fetched by the telephony provider
Path(settings.audio_dir).mkdir(parents=True, exist_ok=True)
app.mount("/audio", StaticFiles(directory=settings.audio_dir), name="audio")
