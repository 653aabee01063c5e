import asyncio
from functools import partial

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.api import api_router
from app.config import get_settings
from app.database import SessionLocal, init_db
from app.logging_config import get_logger, setup_logging
from app.services.application_pipeline import ApplicationPipeline
from app.services.checkpoint_store import CheckpointStore
from app.services.gemini_extractor import GeminiCompanyExtractor
from app.services.gmail_service import create_gmail_client
from app.services.notion_sink import create_notion_sink
from app.services.sync_orchestrator import SyncOrchestrator
from app.services.sync_scheduler import SyncScheduler

settings = get_settings()
logger = get_logger(__name__)

app = FastAPI(
    title="Job Application Tracker",
    description="Records job application confirmation emails from Gmail in Notion",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def configure_services(app: FastAPI) -> None:
    """Build the sync stack and attach it to app.state."""
    store = CheckpointStore(SessionLocal)
    pipeline = ApplicationPipeline(
        extractor=GeminiCompanyExtractor(
            api_key=settings.google_api_key,
            model=settings.gemini_model,
        ),
        sink=create_notion_sink(settings.notion_secret, settings.notion_database_id),
        extraction_timeout=settings.extraction_timeout_seconds,
    )
    gmail_factory = partial(create_gmail_client, settings=settings)
    orchestrator = SyncOrchestrator(store, gmail_factory, pipeline)

    app.state.checkpoint_store = store
    app.state.gmail_factory = gmail_factory
    app.state.sync_scheduler = SyncScheduler(orchestrator)


@app.on_event("startup")
async def on_startup():
    """Create database tables and start the sync worker."""
    setup_logging(settings.log_level, json_logs=settings.log_json)
    init_db()
    logger.info("✅ Database tables created/verified")

    configure_services(app)
    app.state.sync_scheduler.start()
    logger.info("🚀 Sync worker started")


@app.on_event("shutdown")
async def on_shutdown():
    """Let queued passes finish (bounded), then stop the sync worker."""
    scheduler = app.state.sync_scheduler
    try:
        await asyncio.wait_for(scheduler.join(), timeout=settings.shutdown_timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning("⚠️ Queued sync passes still running at shutdown, cancelling")
    await scheduler.stop()
    logger.info("🛑 Sync worker stopped")


app.include_router(api_router)


@app.get("/")
def health_check():
    return {"status": "ok"}
