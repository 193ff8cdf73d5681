# main.py
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from taskminder import database
from taskminder.config import get_settings
from taskminder.features.reminders import ReminderScheduler, ReminderService
from taskminder.logging import RequestLoggingMiddleware, init_logging
from taskminder.routes import router

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
init_logging()
logger = logging.getLogger("main")


# ---------------------------------------------------------------------------
# App lifespan (startup/shutdown)
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown tasks."""
    settings = get_settings()
    logger.info("Starting Taskminder (env=%s)", settings.env)

    logger.info("Startup: initializing database...")
    try:
        await database.init_db_async()
        logger.info("Connected to database: %s", database.get_database_dsn())
    except Exception as e:
        logger.critical("Database initialization failed: %s", e)
        raise  # the app does not start without a database

    if settings.seed_sample_data:
        from taskminder.services.seed import seed_if_empty
        await seed_if_empty()

    service = ReminderService(settings=settings)
    scheduler = ReminderScheduler(service, settings.reminder_check_interval_seconds)
    app.state.reminder_service = service
    app.state.reminder_scheduler = scheduler

    if settings.reminder_scheduler_enabled:
        logger.info("Startup: starting reminder scheduler...")
        scheduler.start()
    else:
        logger.info("Reminder scheduler disabled (REMINDER_SCHEDULER_ENABLED=false)")

    yield  # app runs during this block

    if scheduler.running:
        logger.info("Shutdown: stopping reminder scheduler...")
        try:
            await scheduler.stop()
        except Exception as e:
            logger.error("Error stopping reminder scheduler: %s", e)

    logger.info("Shutdown: closing database connection pool...")
    try:
        await database.shutdown_db_async()
        logger.info("Cleanup complete.")
    except Exception as e:
        logger.error("Error during shutdown cleanup: %s", e)


# ---------------------------------------------------------------------------
# FastAPI Application
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Taskminder - Task Reminder Service",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Base Routes
# ---------------------------------------------------------------------------

@app.get("/", tags=["Health"])
async def root():
    """Basic health check to verify the service is running."""
    return {"status": "ok", "message": "Taskminder is running."}


app.include_router(router)
