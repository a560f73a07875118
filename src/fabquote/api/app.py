from __future__ import annotations

from fastapi import FastAPI

from fabquote import __version__
from fabquote.api.middleware.context import RequestContextMiddleware
from fabquote.api.routers.health import router as health_router
from fabquote.backoffice.events.event_bus import event_bus
from fabquote.backoffice.events.listeners import register_event_log_listener
from fabquote.backoffice.web.conversion_router import conversion_router
from fabquote.backoffice.web.quote_router import quote_router
from fabquote.config import get_settings
from fabquote.database import init_db


def create_app() -> FastAPI:
    app = FastAPI(title="FabQuote", version=__version__)
    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(conversion_router, prefix="/api/v1")
    app.include_router(quote_router, prefix="/api/v1")

    @app.on_event("startup")
    def _startup() -> None:  # pragma: no cover
        from fabquote import database

        # Dev convenience: auto-create tables; production uses migrations.
        if get_settings().ENVIRONMENT == "dev":
            init_db(create_tables=True)
        register_event_log_listener(event_bus, database.SessionLocal)

    @app.on_event("shutdown")
    def _shutdown() -> None:  # pragma: no cover
        event_bus.clear()

    return app


app = create_app()
