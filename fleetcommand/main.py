import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .config import settings
from .db import Base, engine, SessionLocal
from .logging import setup_logging, RequestIdMiddleware, structlog
from .models import models  # noqa: F401  registers tables on Base.metadata
from .auth.router import router as auth_router
from .routes.settings import router as settings_router
from .routes.vehicles import router as vehicles_router
from .routes.tasks import router as tasks_router
from .routes.templates import router as templates_router
from .routes.inspections import router as inspections_router
from .routes.equipment import router as equipment_router
from .routes.imports import router as imports_router
from .routes.smartsheet import router as smartsheet_router
from .routes.users import router as users_router
from .routes.regions import router as regions_router, seed_default_regions
from .routes.dashboard import router as dashboard_router
from .routes.demo import router as demo_router
from .routes.audit import router as audit_router


def create_app() -> FastAPI:
    setup_logging()
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

    app.include_router(auth_router)
    app.include_router(settings_router)
    app.include_router(vehicles_router)
    app.include_router(tasks_router)
    app.include_router(templates_router)
    app.include_router(inspections_router)
    app.include_router(equipment_router)
    app.include_router(imports_router)
    app.include_router(smartsheet_router)
    app.include_router(users_router)
    app.include_router(regions_router)
    app.include_router(dashboard_router)
    app.include_router(demo_router)
    app.include_router(audit_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok", "app_mode": settings.app_mode}

    @app.on_event("startup")
    def _startup():
        log = structlog.get_logger()
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if not settings.auto_create_db:
            return
        Base.metadata.create_all(bind=engine)
        db = SessionLocal()
        try:
            added = seed_default_regions(db)
        finally:
            db.close()
        log.info("startup_complete", app_mode=settings.app_mode, entry_mode=settings.entry_mode, regions_added=added)

    return app


app = create_app()
