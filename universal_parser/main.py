"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Response
from prometheus_fastapi_instrumentator import Instrumentator

from universal_parser.config import settings
from universal_parser.api.routes import extract
from universal_parser.ingest.extraction_engine import create_engine

# Configure structured logging
from universal_parser.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting universal product parser...")

    engine = create_engine()
    app.state.engine = engine
    logger.info(f"Loaded learned patterns for {len(engine.pattern_store)} domains")

    yield

    # Shutdown
    logger.info("Shutting down...")
    try:
        await engine.shutdown()
    except Exception:
        logger.exception("Error shutting down extraction engine")
    app.state.engine = None

    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Universal Product Parser",
    description="Extract structured product data from e-commerce product pages",
    version="0.1.0",
    lifespan=lifespan,
)

# Add Prometheus instrumentation
instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_respect_env_var=True,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/metrics", "/health", "/favicon.ico"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
)
instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])

# Include API routes
app.include_router(extract.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/favicon.ico")
async def favicon():
    """Return empty favicon response to avoid 404 noise."""
    return Response(status_code=204)


if __name__ == "__main__":
    # Run with uvicorn
    uvicorn.run(
        "universal_parser.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
