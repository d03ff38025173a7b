"""
Recall Board Backend - FastAPI Application

Main entry point for the lesson progression API. Business logic lives in
lessons/ (engine and services) and shared/ (persistence, LLM access).
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings, validate_required_settings
from database import get_db_manager
from shared.api import health
from lessons.api import lessons
from lessons.engine.progress_writer import get_progress_writer

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Validate configuration on startup
validate_required_settings()

# Initialize FastAPI app
app = FastAPI(
    title="Recall Board Backend",
    description="Lesson progression and spaced-recall API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(lessons.router)


@app.on_event("startup")
async def startup_event():
    """Validate database connection on startup."""
    logger.info("Starting Recall Board Backend...")

    db_manager = get_db_manager()
    is_healthy = db_manager.health_check()

    if not is_healthy:
        logger.warning("Database health check failed on startup")
    else:
        logger.info("Database connection healthy")


@app.on_event("shutdown")
async def shutdown_event():
    """Write any debounced progress before the process exits."""
    get_progress_writer().flush_all()
    get_db_manager().close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True
    )
