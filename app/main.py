import os

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

from .auth.router import router as auth_router
from .config import settings
from .db import Base, SessionLocal, engine
from .errors import register_exception_handlers
from .logging import RequestIdMiddleware, setup_logging
from .routes.analytics import router as analytics_router
from .routes.leads import router as leads_router
from .routes.materials import router as materials_router
from .routes.notifications import router as notifications_router
from .routes.payments import router as payments_router
from .routes.projects import router as projects_router
from .routes.raw_materials import router as raw_materials_router
from .routes.vendors import router as vendors_router
from .routes.workforce import router as workforce_router


API_PREFIX = "/api"


def create_app() -> FastAPI:
    setup_logging()
    log = structlog.get_logger()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    register_exception_handlers(app)

    # Routers
    for router in (
        auth_router,
        projects_router,
        payments_router,
        materials_router,
        vendors_router,
        raw_materials_router,
        workforce_router,
        leads_router,
        analytics_router,
        notifications_router,
    ):
        app.include_router(router, prefix=API_PREFIX)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get(f"{API_PREFIX}/health")
    def health():
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            database = "ok"
        except SQLAlchemyError as e:
            log.warning("health_database_unreachable", error=str(e))
            database = "unavailable"
        finally:
            db.close()
        return {"status": "ok", "environment": settings.environment, "database": database}

    @app.on_event("startup")
    def _startup():
        log.info("startup", app_name=settings.app_name, environment=settings.environment)
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            existing_tables = set(inspect(engine).get_table_names())
            missing = set(Base.metadata.tables.keys()) - existing_tables
            if missing:
                log.info("creating_tables", count=len(missing))
                Base.metadata.create_all(bind=engine)

    return app


app = create_app()
