"""
FastAPI application factory for the subscription/usage accounting API
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .config import config
from .logging_config import setup_logging, RequestIDMiddleware
from .exceptions import register_exception_handlers
from .routes import subscription_router, plans_router, quota_router, usage_session_router

logger = logging.getLogger(__name__)


def bootstrap_database():
    """Create tables in dev/test and seed the plan catalog"""
    from .db.engine import SessionLocal, init_db
    from .services.plan_catalog import PlanCatalog
    from .services.plan_cache import get_plan_cache

    if config.ENV in ["dev", "test"]:
        init_db()

    db = SessionLocal()
    try:
        PlanCatalog(db, cache=get_plan_cache()).seed_from_yaml()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(env=config.ENV, log_level=config.LOG_LEVEL)
    logger.info(f"Starting Creator Subscriptions API (env={config.ENV})")

    bootstrap_database()

    if config.ENABLE_SCHEDULER:
        from .services.scheduled_jobs import start_scheduler
        start_scheduler()

    yield

    if config.ENABLE_SCHEDULER:
        from .services.scheduled_jobs import stop_scheduler
        stop_scheduler()
    logger.info("Creator Subscriptions API stopped")


def create_app(use_lifespan: bool = True) -> FastAPI:
    """
    Build the application

    Args:
        use_lifespan: Run logging setup, database bootstrap and the scheduler
            on startup (tests disable it and provide their own database)
    """
    app = FastAPI(
        title="Creator Subscriptions API",
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(subscription_router)
    app.include_router(plans_router)
    app.include_router(quota_router)
    app.include_router(usage_session_router)

    @app.get("/health")
    async def health():
        """Health check including database connectivity"""
        from .db.engine import engine

        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", "service": "creator-subscriptions", "database": "unreachable"},
            )
        return {"status": "healthy", "service": "creator-subscriptions", "database": "ok"}

    return app
