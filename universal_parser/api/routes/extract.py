"""Product extraction API endpoints."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from universal_parser.api.deps import get_engine
from universal_parser.ingest.base import FetchStrategy
from universal_parser.ingest.extraction_engine import ExtractionEngine
from universal_parser.normalize.processor import registrable_domain

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/extract", tags=["extract"])

EXTRACTION_FAILED = "could not extract product data for this URL"


# Request / response models
class ExtractRequest(BaseModel):
    """Request model for a single extraction."""
    url: str = Field(..., min_length=1)
    force_strategy: Optional[FetchStrategy] = None
    timeout_ms: Optional[int] = Field(default=None, gt=0)


class ProductResponse(BaseModel):
    """Response model for an extracted product."""
    url: str
    name: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    brand: Optional[str] = None
    description: Optional[str] = None
    sku: Optional[str] = None
    availability: Optional[str] = None
    images: List[str] = []
    sources: Dict[str, str] = {}
    confidence: float
    strategy: Optional[str] = None
    hostname: Optional[str] = None
    extraction_time_ms: Optional[float] = None


class PatternResponse(BaseModel):
    """Response model for a learned domain pattern."""
    domain: str
    fields: Dict[str, str]
    last_success: datetime
    success_count: int


@router.post("", response_model=ProductResponse)
async def extract_product(
    request: ExtractRequest,
    engine: ExtractionEngine = Depends(get_engine),
):
    """Extract product data from a URL."""
    record = await engine.extract(
        request.url,
        force_strategy=request.force_strategy,
        timeout_ms=request.timeout_ms,
    )

    if record.confidence == 0:
        logger.info(f"Extraction failed for {request.url}: {record.error}")
        raise HTTPException(
            status_code=422,
            detail={"message": EXTRACTION_FAILED, "error": record.error},
        )

    return ProductResponse(
        url=record.url,
        name=record.name,
        price=record.price,
        currency=record.currency,
        brand=record.brand,
        description=record.description,
        sku=record.sku,
        availability=record.availability,
        images=list(record.images),
        sources=dict(record.sources),
        confidence=record.confidence,
        strategy=record.strategy,
        hostname=record.hostname,
        extraction_time_ms=record.extraction_time_ms,
    )


@router.get("/metrics")
async def get_extraction_metrics(engine: ExtractionEngine = Depends(get_engine)) -> Dict[str, Any]:
    """Engine counters: attempts, successes, escalations and per-strategy rates."""
    return engine.get_metrics()


@router.get("/patterns/{domain}", response_model=PatternResponse)
async def get_learned_pattern(domain: str, engine: ExtractionEngine = Depends(get_engine)):
    """Learned selectors for a domain."""
    entry = engine.pattern_store.get(registrable_domain(f"https://{domain}") or domain)
    if entry is None:
        raise HTTPException(status_code=404, detail="No learned pattern for this domain")

    return PatternResponse(
        domain=entry.domain,
        fields=dict(entry.fields),
        last_success=entry.last_success,
        success_count=entry.success_count,
    )
