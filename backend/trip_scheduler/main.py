from fastapi import FastAPI
import asyncio
import logging
import os
from pathlib import Path

from trip_scheduler.api.router import api_router
from trip_scheduler.core.config import settings
from trip_scheduler.core.logging import configure_logging

logger = logging.getLogger(__name__)

def _run_migrations_if_needed():
    """Apply Alembic migrations automatically in production if enabled.

    Controlled by env var AUTO_APPLY_MIGRATIONS (default: '1'). Safe to run repeatedly.
    """
    if settings.env.lower() != "prod":
        return
    if os.getenv("AUTO_APPLY_MIGRATIONS", "1") != "1":
        return
    try:
        from alembic import command
        from alembic.config import Config
        alembic_ini = Path(__file__).resolve().parents[1] / "alembic.ini"
        if not alembic_ini.exists():
            logger.warning("alembic.ini not found at %s, skipping auto-migrations", alembic_ini)
            return
        cfg = Config(str(alembic_ini))
        # Ensure script_location resolves correctly when launched from arbitrary CWD
        cfg.set_main_option("script_location", str(Path(__file__).resolve().parents[1] / "alembic"))
        logger.info("Applying Alembic migrations -> head ...")
        command.upgrade(cfg, "head")
        logger.info("Migrations applied successfully")
    except Exception:
        # Do not kill the app on migration failure; it can be retried manually.
        logger.exception("Migration failed")

app = FastAPI(title=settings.app_name, version="0.1.0")
app.include_router(api_router)

@app.get("/health")
def health():
    return {"status": "ok"}

@app.on_event("startup")
async def startup():
    configure_logging(settings.log_level)
    _run_migrations_if_needed()
    if settings.scheduler_enabled:
        from trip_scheduler.services.reminder_scheduler import build_scheduler, trip_notification_loop
        app.state.scheduler_task = asyncio.create_task(
            trip_notification_loop(build_scheduler(settings), settings.scan_interval_seconds)
        )
        logger.info("Trip notification loop started (interval=%ds)", settings.scan_interval_seconds)

@app.on_event("shutdown")
async def shutdown():
    task = getattr(app.state, "scheduler_task", None)
    if task is not None:
        task.cancel()
