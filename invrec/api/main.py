"""FastAPI application main module.

Defines the InvRec application: health, status and metrics endpoints,
exception handlers, request logging and the optional regeneration schedule.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from invrec import __version__
from invrec.api.exceptions import InvRecException
from invrec.api.logging_config import RequestLoggingMiddleware, setup_logging
from invrec.api.metrics import metrics_service
from invrec.api.routes import recommend, settings
from invrec.api.state import get_state, peek_state
from invrec.config import get_settings
from invrec.recommender.jobs import GenerationOptions, RecommendationScheduler, generate_recommendations

# Configure module logger
logger = logging.getLogger(__name__)


def run_scheduled_generation() -> Dict[str, Any]:
    """Generation run triggered by the background schedule."""
    state = get_state()
    metrics_service.record_generation()
    run_status = generate_recommendations(
        state.catalog,
        state.metrics,
        state.settings_store,
        state.store,
        GenerationOptions(exclude_keywords=state.settings.EXCLUDE_KEYWORDS),
        time_budget_seconds=state.settings.TIME_BUDGET_SECONDS,
    )
    state.recommendations_loaded = True
    return run_status


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_settings()
    setup_logging(config.LOG_LEVEL)

    scheduler = RecommendationScheduler(run_scheduled_generation, config.REGENERATE_INTERVAL_MINUTES)
    scheduler.start()
    try:
        yield
    finally:
        scheduler.shutdown()


# Create FastAPI application instance
app = FastAPI(
    title="InvRec API",
    description="Inventory cross-sell and related product recommendation service",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(recommend.router)
app.include_router(settings.router)


@app.exception_handler(InvRecException)
async def invrec_exception_handler(request: Request, exc: InvRecException) -> JSONResponse:
    """Convert domain exceptions to JSON error bodies."""
    logger.warning(
        exc.message,
        extra={"error_type": type(exc).__name__, "status_code": exc.status_code, "path": request.url.path},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(
            {"error": type(exc).__name__, "message": exc.message, "details": exc.details}
        ),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": "Invalid request parameters",
            "details": {"errors": jsonable_encoder(exc.errors(), custom_encoder={Exception: str})},
        },
    )


class StatusResponse(BaseModel):
    """Service status.

    Attributes:
        catalog_loaded: Whether the catalog has been loaded into memory.
        timestamp_last_loaded: When the data was last loaded.
        num_products: Products in the loaded catalog.
        num_variants: Variants in the loaded catalog.
        recommendations_loaded: Whether generated recommendations are available.
        last_run: Status of the last generation run, if any.
    """

    catalog_loaded: bool
    timestamp_last_loaded: Optional[str] = None
    num_products: int = 0
    num_variants: int = 0
    recommendations_loaded: bool = False
    last_run: Optional[Dict[str, Any]] = Field(default=None)


@app.get("/ping")
def ping() -> Dict[str, str]:
    """Health check endpoint.

    Example:
        >>> response = client.get("/ping")
        >>> assert response.json() == {"status": "ok"}
    """
    return {"status": "ok"}


@app.get("/status", response_model=StatusResponse)
def status() -> StatusResponse:
    """Report what is loaded, without triggering a load."""
    state = peek_state()
    if state is None:
        return StatusResponse(catalog_loaded=False)

    last_run = state.store.load_run_status()
    return StatusResponse(
        catalog_loaded=True,
        timestamp_last_loaded=state.loaded_at.isoformat(),
        num_products=len(state.catalog),
        num_variants=state.catalog.num_variants,
        recommendations_loaded=state.recommendations_loaded,
        last_run=jsonable_encoder(last_run) if last_run else None,
    )


@app.get("/metrics")
def metrics() -> Dict[str, Any]:
    """Recommendation call counters and latency."""
    return metrics_service.get_metrics()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "invrec.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
