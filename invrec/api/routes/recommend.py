"""Recommendation endpoints for the InvRec API.

Serves stored and live variant recommendations, the storefront widget feed,
product-level lists, and triggers generation runs.
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from invrec.api.exceptions import (
    InvRecException,
    ProductNotFoundError,
    RecommendationError,
    RecommendationsNotGeneratedError,
    VariantNotFoundError,
)
from invrec.api.metrics import metrics_service
from invrec.api.state import RecommendationState, get_state, reset_state
from invrec.recommender.catalog import Product, Variant
from invrec.recommender.jobs import GenerationOptions, generate_recommendations
from invrec.recommender.products import TYPE_RECOMMENDED, TYPE_RELATED
from invrec.recommender.scoring import transform_candidate

# Configure module logger
logger = logging.getLogger(__name__)

# Create API router
router = APIRouter(
    prefix="/recommend",
    tags=["recommendations"],
)

PUBLIC_MODES = ("product", "fragrance", "nonfragrance")
PUBLIC_DEFAULT_LIMIT = 8


class VariantRecommendation(BaseModel):
    """A recommended variant with its score.

    ``breakdown`` and ``matches`` are only filled when ``explain`` is set.
    """

    variant: Dict[str, Any] = Field(..., description="Recommended variant with sales metrics")
    score: float
    position: int
    breakdown: Optional[Dict[str, float]] = None
    matches: Optional[Dict[str, Any]] = None


class VariantRecommendationsResponse(BaseModel):
    variant_id: str = Field(..., description="Base variant ID")
    source: str = Field(..., description="'stored' or 'live'")
    recommendations: List[VariantRecommendation]


class PublicRecommendation(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None
    price: Optional[float] = None
    original_price: Optional[float] = None
    url: Optional[str] = None


class PublicRecommendationsResponse(BaseModel):
    status: str = "success"
    recommendations: List[PublicRecommendation]
    count: int


class ProductRecommendation(BaseModel):
    recommended_product_id: str
    recommended_variant_id: Optional[str] = None
    type: str
    position: int
    score: float
    matches: Dict[str, Any] = Field(default_factory=dict)
    variant: Optional[Dict[str, Any]] = None


class ProductRecommendationsResponse(BaseModel):
    product_id: str
    related: List[ProductRecommendation] = Field(default_factory=list)
    recommended: List[ProductRecommendation] = Field(default_factory=list)


class GenerateRequest(BaseModel):
    """Options of a generation run; omitted fields use the defaults."""

    chunk: Optional[int] = Field(default=None, description="Progress logging chunk, at least 10")
    limit: Optional[int] = Field(default=None, description="Stored recommendations per variant")
    product_limit: Optional[int] = Field(default=None, description="Entries per product list")
    skip_variants: Optional[bool] = None
    exclude_keywords: Optional[List[str]] = None


class RunStatusResponse(BaseModel):
    status: str
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    message: Optional[str] = None
    variants: int = 0
    products: int = 0
    related: int = 0
    recommended: int = 0
    options: Dict[str, Any] = Field(default_factory=dict)


def _first_string(*candidates: Any) -> Optional[str]:
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


def _float_or_none(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def public_limit(value: Optional[str], maximum: int) -> int:
    """Parse the storefront limit, falling back to the default for non-numbers."""
    try:
        limit = int(value) if value is not None else PUBLIC_DEFAULT_LIMIT
    except ValueError:
        limit = PUBLIC_DEFAULT_LIMIT
    return max(1, min(limit, maximum))


def public_view(variant: Variant, product: Optional[Product]) -> PublicRecommendation:
    """Minimal storefront representation of a variant."""
    data = variant.data
    payload = product.base_payload if product else {}
    metadata = payload.get("metadata") if isinstance(payload.get("metadata"), dict) else {}

    images = payload.get("images") if isinstance(payload.get("images"), list) else []
    first_image = images[0] if images else None
    if isinstance(first_image, dict):
        first_image = first_image.get("url") or first_image.get("cdnName")

    price_data = data.get("price") if isinstance(data.get("price"), dict) else {}

    return PublicRecommendation(
        id=variant.id,
        name=variant.name or (product.name if product else None),
        image=_first_string(data.get("image_url"), data.get("image"), first_image, payload.get("image")),
        price=variant.price,
        original_price=_float_or_none(price_data.get("original", data.get("original_price"))),
        url=_first_string(
            data.get("url"), metadata.get("detail_url"), metadata.get("url"), payload.get("url")
        ),
    )


def _find_variant(state: RecommendationState, variant_id: str) -> Variant:
    variant = state.catalog.find_variant(variant_id)
    if variant is None:
        raise VariantNotFoundError(variant_id)
    return variant


@router.get("/variants/{variant_id}", response_model=VariantRecommendationsResponse)
def get_variant_recommendations(
    variant_id: str,
    limit: int = Query(6, ge=1, le=100),
    live: bool = False,
    explain: bool = False,
    state: RecommendationState = Depends(get_state),
) -> VariantRecommendationsResponse:
    """Get recommendations for a variant.

    Stored recommendations from the last generation run are returned when
    available; otherwise (or with ``live=true``) they are computed on the
    spot.

    Example:
        GET /recommend/variants/v-1?limit=3&explain=true
    """
    start_time = time.time()
    variant = _find_variant(state, variant_id)

    stored = [] if live else state.store.variant_recommendations(variant.id)
    results: List[VariantRecommendation] = []

    if stored:
        source = "stored"
        for record in stored[:limit]:
            recommended = state.catalog.get_variant(record["recommended_variant_id"])
            if recommended is None:
                continue
            results.append(
                VariantRecommendation(
                    variant=transform_candidate(
                        recommended,
                        state.catalog.product_for(recommended),
                        state.metrics.summarize(recommended),
                    ),
                    score=record["score"],
                    position=len(results),
                    breakdown=record.get("breakdown") if explain else None,
                    matches=record.get("matches") if explain else None,
                )
            )
    else:
        source = "live"
        try:
            entries = state.recommender().recommend(variant, limit)
        except Exception as e:
            logger.error(f"Live recommendation failed for variant {variant.id}: {e}", exc_info=True)
            raise RecommendationError(f"variant {variant.id}", e) from e

        for position, entry in enumerate(entries):
            results.append(
                VariantRecommendation(
                    variant=entry["variant"],
                    score=entry["score"],
                    position=position,
                    breakdown=entry["breakdown"] if explain else None,
                    matches=entry["matches"] if explain else None,
                )
            )

    latency_ms = (time.time() - start_time) * 1000
    metrics_service.record_call("variant", latency_ms)
    logger.info(
        f"Served {len(results)} recommendations for variant {variant.id}",
        extra={"variant_id": variant.id, "source": source, "latency_ms": round(latency_ms, 2)},
    )

    return VariantRecommendationsResponse(variant_id=variant.id, source=source, recommendations=results)


@router.get("/public/products", response_model=PublicRecommendationsResponse)
def get_public_recommendations(
    product_id: Optional[str] = None,
    limit: Optional[str] = None,
    mode: str = "product",
):
    """Storefront widget feed.

    ``product_id`` accepts a variant id or code. Errors are answered with
    ``{"error": ..., "recommendations": []}`` and never expose internals.
    """
    start_time = time.time()

    if not product_id:
        return JSONResponse(status_code=400, content={"error": "Invalid product_id", "recommendations": []})

    try:
        state = get_state()
        limit = public_limit(limit, state.settings.PUBLIC_MAX_LIMIT)
        mode = mode if mode in PUBLIC_MODES else "product"

        variant = state.catalog.find_variant(product_id)
        if variant is None:
            return JSONResponse(status_code=404, content={"error": "Product not found", "recommendations": []})

        entries = state.recommender().recommend_by_inspiration_type(variant, limit, mode)
        recommendations = []
        for entry in entries:
            recommended = state.catalog.get_variant(entry["variant"]["id"])
            if recommended is not None:
                recommendations.append(public_view(recommended, state.catalog.product_for(recommended)))
    except Exception as e:
        logger.error(
            "Public recommendations failed",
            extra={"product_id": product_id, "error": str(e), "error_type": type(e).__name__},
            exc_info=True,
        )
        return JSONResponse(
            status_code=500, content={"error": "Failed to load recommendations", "recommendations": []}
        )

    metrics_service.record_call("public", (time.time() - start_time) * 1000)
    return PublicRecommendationsResponse(
        status="success", recommendations=recommendations, count=len(recommendations)
    )


@router.get("/products/{product_id}", response_model=ProductRecommendationsResponse)
def get_product_recommendations(
    product_id: str,
    type: Optional[str] = Query(None, pattern=f"^({TYPE_RELATED}|{TYPE_RECOMMENDED})$"),
    state: RecommendationState = Depends(get_state),
) -> ProductRecommendationsResponse:
    """Stored related and/or recommended lists of a product."""
    start_time = time.time()
    if state.catalog.get_product(product_id) is None:
        raise ProductNotFoundError(product_id)
    if not state.recommendations_loaded:
        raise RecommendationsNotGeneratedError(str(state.store.directory))

    response = ProductRecommendationsResponse(product_id=product_id)
    for record in state.store.product_recommendations(product_id, type):
        recommended = state.catalog.get_variant(record["recommended_variant_id"] or "")
        item = ProductRecommendation(
            recommended_product_id=record["recommended_product_id"],
            recommended_variant_id=record["recommended_variant_id"],
            type=record["type"],
            position=record["position"],
            score=record["score"],
            matches=record["matches"],
            variant=transform_candidate(recommended, state.catalog.product_for(recommended), {})
            if recommended
            else None,
        )
        getattr(response, record["type"]).append(item)

    metrics_service.record_call("product", (time.time() - start_time) * 1000)
    return response


@router.post("/generate", response_model=RunStatusResponse)
def generate(
    request: Optional[GenerateRequest] = None,
    state: RecommendationState = Depends(get_state),
) -> RunStatusResponse:
    """Run a generation synchronously and return its final status."""
    payload = request.model_dump(exclude_none=True) if request else {}
    payload.setdefault("exclude_keywords", state.settings.EXCLUDE_KEYWORDS)
    options = GenerationOptions.from_dict(payload)

    metrics_service.record_generation()
    try:
        run_status = generate_recommendations(
            state.catalog,
            state.metrics,
            state.settings_store,
            state.store,
            options,
            time_budget_seconds=state.settings.TIME_BUDGET_SECONDS,
        )
    except InvRecException:
        raise
    except Exception as e:
        raise RecommendationError("catalog", e) from e

    state.recommendations_loaded = True
    return RunStatusResponse(**run_status)


@router.get("/runs/latest", response_model=RunStatusResponse)
def get_latest_run(state: RecommendationState = Depends(get_state)) -> RunStatusResponse:
    run_status = state.store.load_run_status()
    if run_status is None:
        return RunStatusResponse(status="never_run")
    return RunStatusResponse(**run_status)


@router.post("/reload")
def reload_data() -> Dict[str, Any]:
    """Reload catalog, orders and stored recommendations from disk.

    Useful after a new catalog export or an offline generation run.
    """
    logger.info("Reloading recommendation state...")
    reset_state()
    state = get_state()
    return {
        "status": "Data reloaded successfully",
        "num_products": len(state.catalog),
        "num_variants": state.catalog.num_variants,
        "recommendations_loaded": state.recommendations_loaded,
    }
