from __future__ import annotations

"""
Message Triage Engine: FastAPI app
- POST /api/whatsapp : Twilio WhatsApp webhook (ack now, process in background)
- GET  /             : interactive extract → draft → export form
- Integration clients are built once at startup and shared via app.state
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Query

from . import error_sink
from .config import settings
from .form_routes import FormStore, router as form_router
from .runtime import configure_logging, get_logger, log_core_env
from .services import Services, build_services
from .whatsapp_webhook import router as whatsapp_router

VERSION = "1.0.0"

logger = get_logger("main")


def create_app(services: Optional[Services] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        log_core_env()
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services()
        logger.info("🚀 Message Triage Engine %s ready", VERSION)
        try:
            yield
        finally:
            svc: Services = app.state.services
            await svc.dispatcher.drain(timeout=settings().BACKGROUND_DRAIN_TIMEOUT)
            svc.close()

    app = FastAPI(title="Message Triage Engine", version=VERSION, lifespan=lifespan)
    app.state.services = services
    app.state.forms = FormStore()
    app.include_router(whatsapp_router)
    app.include_router(form_router)

    # ─────────────────────────── Health ────────────────────────────────
    @app.get("/ping")
    async def ping():
        return {"ok": True, "pong": True, "time": datetime.now(timezone.utc).isoformat()}

    @app.get("/health")
    async def health():
        svc: Optional[Services] = app.state.services
        return {
            "ok": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
            "integrations": svc.integrations() if svc else None,
            "background": svc.dispatcher.stats() if svc else None,
            "form_sessions": len(app.state.forms),
        }

    @app.get("/healthz")
    async def healthz():
        return await health()

    @app.get("/ops/failures")
    async def failures(limit: int = Query(50, ge=1, le=500)):
        return {"ok": True, "failures": error_sink.recent(limit)}

    return app


app = create_app()
