"""
Radio Quote Expert - FastAPI Application Layer

Endpoints:
  1. POST /quote                        - Full requirement-to-quote pipeline
  2. POST /requirements/extract         - Requirement extraction only
  3. GET  /architectures                - Architecture reference table
  4. POST /architecture/select          - Architecture decision table
  5. GET  /products/{sku}/compatibility - Compatibility edges for one product
  6. GET  /health                       - Health check

Error mapping: InvalidRequirement / UnreasonableRequestError / CompatibilityGap
-> 422, ValidationFailure -> 409, ExternalServiceFailure -> 503.
"""
from __future__ import annotations
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Optional

import aiohttp
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from architecture_selector import ARCHITECTURE_PROFILES, select_architecture
from asyncpg_repository import AsyncPGCatalogStore, AsyncPGPatternStore, DatabasePool
from catalog_repository import CatalogStore, seeded_catalog
from compatibility_resolver import resolve_compatibility
from config import Settings, configure_logging, get_settings
from exceptions import (
    CompatibilityGap, ExternalServiceFailure, InvalidRequirement,
    UnreasonableRequestError, ValidationFailure,
)
from models import (
    ArchitectureSelectRequest, CompatibilityEdge, DeploymentRequirement,
    HealthResponse, ProductCategory, Quote, QuoteRequest, SystemArchitecture,
)
from pricing_service import ERPPricingClient, PricingService, StaticPricingService
from quote_pipeline import QuotePipeline, build_pipeline
from recommendation_engine import PatternStore
from requirement_extraction import extractor_from_settings

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# ============================================================
# Application State (shared singletons)
# ============================================================

class AppState:
    """Holds all shared service instances."""
    settings: Settings
    catalog: CatalogStore
    pricing: PricingService
    pipeline: QuotePipeline
    db: Optional[DatabasePool] = None
    http: Optional[aiohttp.ClientSession] = None
    start_time: float
    request_count: int = 0

    def __init__(self):
        self.start_time = time.monotonic()
        self.request_count = 0


_state = AppState()


# ============================================================
# Lifespan: Startup / Shutdown
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize services on startup, cleanup on shutdown."""
    settings = get_settings()
    configure_logging(settings)
    logger.info("Starting Radio Quote Expert...")
    _state.settings = settings

    # --- Catalog + learning patterns ---
    patterns: Optional[PatternStore] = None
    if settings.catalog_backend == "postgres":
        db = DatabasePool(settings.asyncpg_dsn, settings.db_pool_min, settings.db_pool_max)
        await db.initialize()
        _state.db = db
        _state.catalog = AsyncPGCatalogStore(db)
        patterns = AsyncPGPatternStore(db)
    else:
        _state.catalog = seeded_catalog()

    # --- Pricing ---
    if settings.pricing_backend == "erp":
        _state.http = aiohttp.ClientSession()
        _state.pricing = ERPPricingClient(
            _state.http,
            settings.erp_base_url,
            settings.erp_api_token,
            batch_size=settings.erp_batch_size,
            timeout=settings.external_timeout_seconds,
        )
    else:
        _state.pricing = StaticPricingService(_state.catalog)

    _state.pipeline = build_pipeline(_state.catalog, _state.pricing, settings, patterns)

    logger.info("System ready. catalog=%s pricing=%s",
                settings.catalog_backend, settings.pricing_backend)
    yield

    # Shutdown
    logger.info("Shutting down Radio Quote Expert...")
    if _state.http is not None:
        await _state.http.close()
        _state.http = None
    if _state.db is not None:
        await _state.db.close()
        _state.db = None


# ============================================================
# Request/Response Models (API-specific)
# ============================================================

class ExtractRequest(BaseModel):
    text: str = Field(min_length=1)


class ArchitectureSelectResponse(BaseModel):
    architecture: SystemArchitecture
    total_users: int
    is_multi_site: bool
    max_users: int
    max_sites: int


class CompatibilityResponse(BaseModel):
    sku: str
    name: str
    edges: list[CompatibilityEdge]


# ============================================================
# FastAPI App
# ============================================================

app = FastAPI(
    title="Radio Quote Expert API",
    description="Requirement-to-quote pipeline for multi-site two-way radio systems.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================
# Middleware: Request Counting & Timing
# ============================================================

@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    start = time.monotonic()
    _state.request_count += 1
    response = await call_next(request)
    elapsed = int((time.monotonic() - start) * 1000)
    response.headers["X-Response-Time-Ms"] = str(elapsed)
    return response


def _error_detail(code: str, message: str, **extra: Any) -> dict[str, Any]:
    return {"code": code, "message": message, **extra}


# ============================================================
# 1. POST /quote - Full Pipeline
# ============================================================

@app.post("/quote", response_model=Quote, tags=["Quotes"])
async def create_quote(request: QuoteRequest):
    """
    Build a validated quote from a free-text request, e.g.
    "5 hospitals with 40 users each that need to communicate between locations".
    """
    try:
        quote = await _state.pipeline.build_quote(request.text)
    except UnreasonableRequestError as e:
        raise HTTPException(422, _error_detail(
            "UNREASONABLE_REQUEST", str(e), field=e.field, value=e.value, limit=e.limit))
    except InvalidRequirement as e:
        raise HTTPException(422, _error_detail(
            "INVALID_REQUIREMENT", str(e), field=e.field, value=e.value))
    except CompatibilityGap as e:
        raise HTTPException(422, _error_detail(
            "COMPATIBILITY_GAP", str(e), subcategory=e.subcategory))
    except ValidationFailure as e:
        raise HTTPException(409, _error_detail(
            "VALIDATION_FAILED", str(e),
            validation=e.result.model_dump(mode="json"),
            quote=e.quote.model_dump(mode="json") if e.quote is not None else None,
        ))
    except ExternalServiceFailure as e:
        raise HTTPException(503, _error_detail(e.code, str(e), service=e.service))

    logger.info(
        "[quote] session=%s quote=%s architecture=%s total=%.2f time=%dms",
        request.session_id, quote.quote_number, quote.architecture.value,
        quote.pricing.total, quote.response_time_ms,
    )
    return quote


# ============================================================
# 2. POST /requirements/extract - Extraction Only
# ============================================================

@app.post("/requirements/extract", response_model=DeploymentRequirement, tags=["Quotes"])
async def extract(request: ExtractRequest):
    try:
        return extractor_from_settings(_state.settings).extract(request.text)
    except UnreasonableRequestError as e:
        raise HTTPException(422, _error_detail(
            "UNREASONABLE_REQUEST", str(e), field=e.field, value=e.value, limit=e.limit))
    except InvalidRequirement as e:
        raise HTTPException(422, _error_detail(
            "INVALID_REQUIREMENT", str(e), field=e.field, value=e.value))


# ============================================================
# 3-4. Architectures
# ============================================================

@app.get("/architectures", tags=["Architecture"])
async def list_architectures():
    return {
        "architectures": [
            {
                "architecture": arch.value,
                "max_users": p.max_users,
                "max_sites": p.max_sites,
                "requires_repeater": p.requires_repeater,
                "complexity_level": p.complexity_level,
                "cost_multiplier": p.cost_multiplier,
                "max_repeaters_per_site": p.max_repeaters_per_site,
                "multi_site_capable": p.multi_site_capable,
            }
            for arch, p in ARCHITECTURE_PROFILES.items()
        ]
    }


@app.post("/architecture/select", response_model=ArchitectureSelectResponse,
          tags=["Architecture"])
async def choose_architecture(request: ArchitectureSelectRequest):
    arch = select_architecture(request.total_users, request.is_multi_site)
    profile = ARCHITECTURE_PROFILES[arch]
    return ArchitectureSelectResponse(
        architecture=arch,
        total_users=request.total_users,
        is_multi_site=request.is_multi_site,
        max_users=profile.max_users,
        max_sites=profile.max_sites,
    )


# ============================================================
# 5. GET /products/{sku}/compatibility
# ============================================================

@app.get("/products/{sku}/compatibility", response_model=CompatibilityResponse,
         tags=["Products"])
async def product_compatibility(sku: str, include_incompatible: bool = False):
    product = await _state.catalog.get_product(sku)
    if not product:
        raise HTTPException(404, f"Product {sku} not found")

    candidates = []
    for category in ProductCategory:
        candidates.extend(await _state.catalog.get_products_by_category(category))

    try:
        edges = resolve_compatibility(product, candidates)
    except CompatibilityGap as e:
        raise HTTPException(422, _error_detail(
            "COMPATIBILITY_GAP", str(e), subcategory=e.subcategory))
    if not include_incompatible:
        edges = [e for e in edges if e.is_compatible]
    return CompatibilityResponse(sku=product.sku, name=product.name, edges=edges)


# ============================================================
# 6. GET /health - Health Check
# ============================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """System health check."""
    uptime = int(time.monotonic() - _state.start_time)

    catalog: dict[str, Any] = {"status": "healthy", "backend": _state.settings.catalog_backend}
    if _state.db is not None:
        try:
            await _state.db.healthcheck()
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            catalog["status"] = "unhealthy"
    else:
        catalog["products"] = len(getattr(_state.catalog, "products", {}))

    breaker = _state.pipeline.pricing.breaker
    components = {
        "catalog": catalog,
        "pricing": {
            "status": "degraded" if breaker.state != breaker.CLOSED else "healthy",
            "backend": _state.settings.pricing_backend,
            "circuit": breaker.state,
        },
        "validator": {"status": "healthy"},
    }
    overall = "healthy"
    if any(c["status"] != "healthy" for c in components.values()):
        overall = "degraded"

    return HealthResponse(
        status=overall,
        components=components,
        version=VERSION,
        uptime_seconds=uptime,
        request_count=_state.request_count,
    )


# ============================================================
# Entry Point
# ============================================================

def main() -> None:
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port,
                log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
