"""FastAPI dependencies."""

from fastapi import HTTPException, Request, status

from universal_parser.ingest.extraction_engine import ExtractionEngine


async def get_engine(request: Request) -> ExtractionEngine:
    """Dependency for the shared extraction engine built at startup."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Extraction engine not initialized"
        )
    return engine
