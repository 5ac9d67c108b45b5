import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from negocie_bridge import __version__
from negocie_bridge.core.cache_store import UserCacheStore
from negocie_bridge.core.config import Settings
from negocie_bridge.core.context import ContextReconstructor
from negocie_bridge.core.escalation import EscalationStateMachine
from negocie_bridge.core.logging_config import LoggingMiddleware, auto_configure
from negocie_bridge.core.negocie_gateway import NegocieGateway
from negocie_bridge.core.negotiation_service import NegotiationService, fallback_response
from negocie_bridge.core.notifications import NotificationSink
from negocie_bridge.core.pipeline import NegotiationPipeline
from negocie_bridge.core.sync import SyncOrchestrator
from negocie_bridge.core.user_directory import StaticUserDirectory, UserDirectory
from negocie_bridge.routes.admin_routes import router as admin_router
from negocie_bridge.routes.admin_routes import run_sync_background
from negocie_bridge.routes.negociacao_routes import limiter
from negocie_bridge.routes.negociacao_routes import router as negociacao_router

logger = logging.getLogger(__name__)


def load_directory(settings: Settings) -> UserDirectory:
    if not settings.user_directory_file:
        logger.warning("⚠️ USER_DIRECTORY_FILE nao definido, diretorio de usuarios vazio")
        return StaticUserDirectory()
    return StaticUserDirectory.from_json_file(settings.user_directory_file)


def start_scheduler(orchestrator: SyncOrchestrator, hour: int):
    """Sync diario no horario configurado (SYNC_CRON_HOUR)."""
    from apscheduler.schedulers.asyncio import AsyncIOScheduler

    scheduler = AsyncIOScheduler()
    scheduler.add_job(run_sync_background, "cron", hour=hour, minute=0, args=[orchestrator], id="negocie_sync")
    scheduler.start()
    logger.info(f"[Scheduler] Sync diario agendado para {hour:02d}:00")
    return scheduler


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[NegocieGateway] = None,
    directory: Optional[UserDirectory] = None,
    sink: Optional[NotificationSink] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 Starting negocie-bridge...")
        api = gateway or NegocieGateway.from_settings(settings)
        users = directory if directory is not None else load_directory(settings)
        notifications = sink or NotificationSink.from_settings(settings)
        store = UserCacheStore(settings.cache_db_path, ttl_seconds=settings.cache_ttl_seconds)

        notifications.start()
        escalation = EscalationStateMachine(store, notifications)
        pipeline = NegotiationPipeline(ContextReconstructor(api, users), escalation)
        orchestrator = SyncOrchestrator(
            pipeline,
            users,
            batch_size=settings.sync_batch_size,
            batch_delay=settings.sync_batch_delay,
        )

        app.state.store = store
        app.state.notifications = notifications
        app.state.sync_orchestrator = orchestrator
        app.state.negotiation_service = NegotiationService(
            users,
            store,
            pipeline,
            escalation,
            clear_confirmation=settings.cache_clear_confirmation,
        )

        scheduler = None
        if settings.sync_cron_hour is not None:
            scheduler = start_scheduler(orchestrator, settings.sync_cron_hour)

        yield

        logger.info("🛑 Shutting down...")
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        await notifications.stop()
        await api.aclose()
        store.close()
        logger.info("✅ Application closed")

    app = FastAPI(
        title="Negocie Bridge",
        description="Orquestracao de negociacao de dividas entre o chat e a API Negocie",
        version=__version__,
        lifespan=lifespan,
        docs_url=None if os.getenv("ENVIRONMENT") == "production" else "/docs",
        redoc_url=None if os.getenv("ENVIRONMENT") == "production" else "/redoc",
    )
    app.state.settings = settings

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        max_age=3600,
    )
    app.add_middleware(LoggingMiddleware)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception(f"Erro nao tratado em {request.url.path}: {exc}")
        response = fallback_response()
        return JSONResponse(status_code=response.status_code, content=response.envelope())

    @app.get("/health", response_model=dict)
    async def health_check(request: Request):
        """Status do cache e da fila de notificacoes."""
        cache = await request.app.state.store.health_check()
        return {
            "status": "ok" if cache["status"] == "healthy" else "degraded",
            "service": "negocie-bridge",
            "version": __version__,
            "timestamp": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "cache": cache,
            "notifications_pending": request.app.state.notifications.pending,
            "sync_running": request.app.state.sync_orchestrator.running,
        }

    app.include_router(negociacao_router)
    app.include_router(admin_router)
    return app


auto_configure()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "3000")))
