"""Main FastAPI application"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tracker_sync import __version__
from tracker_sync.api import issues
from tracker_sync.config import settings
from tracker_sync.runtime import build_runtime

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info(f"Starting issue sync service (phase={settings.phase})")
    runtime = build_runtime(settings)
    app.state.runtime = runtime
    runtime.start()
    yield
    # Shutdown
    logger.info("Stopping issue sync service")
    runtime.stop()


app = FastAPI(
    title="Issue Sync Service",
    description="Keep a phase-aware local cache of remote tracker issues",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(issues.router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "Issue Sync"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tracker_sync.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
