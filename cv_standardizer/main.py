import asyncio
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cv_standardizer.middleware.error_handlers import ExceptionHandlerMiddleware, PerformanceMiddleware
from cv_standardizer.routers import candidates, evaluation, reports
from cv_standardizer.utils.logging_config import configure_for_environment, get_logger

# Configure logging first
configure_for_environment()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager"""
    logger.info("CV Standardizer API starting up...")

    try:
        from cv_standardizer.services.db import init_indexes
        await init_indexes()
        logger.info("Database indexes initialized successfully")
    except Exception as e:
        logger.warning(f"Database index initialization had issues: {e}")
        logger.info("Application will continue - some operations may be slower without indexes")

    stop = asyncio.Event()
    worker_task = None
    if os.getenv("CANDIDATE_AI_WORKER_ENABLED", "false").lower() in ("1", "true", "yes"):
        from cv_standardizer.services.graph import get_pipeline
        from cv_standardizer.services.worker import worker_loop
        pipeline = get_pipeline()
        worker_task = asyncio.create_task(
            worker_loop(pipeline.store, pipeline, pipeline.settings.processing_settings, stop=stop)
        )

    yield

    logger.info("CV Standardizer API shutting down...")
    if worker_task is not None:
        stop.set()
        await worker_task


app = FastAPI(title="CV Standardizer API", version="1.0.0", lifespan=lifespan)

# Exception handler should be the outermost middleware
app.add_middleware(PerformanceMiddleware, slow_request_threshold=2.0)
app.add_middleware(ExceptionHandlerMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
@app.head("/health")
async def health_check():
    """Health check endpoint - handles both GET and HEAD requests"""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


app.include_router(evaluation.router, prefix="/api", tags=["evaluation"])
app.include_router(candidates.router, prefix="/api/candidates", tags=["candidates"])
app.include_router(reports.router, prefix="/api/jobs", tags=["reports"])

logger.info("CV Standardizer API initialized successfully")
