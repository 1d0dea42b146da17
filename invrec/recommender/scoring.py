"""Variant recommendation engine.

Scores candidate variants of the same shop against a base variant using
shared inspiration descriptors, matching filter parameters, related product
links, set membership, stock and recent sales. A second, inspiration-only
mode powers the storefront widgets.
"""

import json
import logging
import time
from typing import Any, Dict, List, Optional

from invrec.recommender.catalog import Catalog, Product, Variant
from invrec.recommender.context import (
    VariantContext,
    build_variant_context,
    extract_set_items,
    is_fragrance_context,
    set_items_contain,
)
from invrec.recommender.metrics import MetricsRepository
from invrec.recommender.settings import SettingsStore
from invrec.recommender.text import normalize_key, normalize_lower, to_ascii

# Configure module logger
logger = logging.getLogger(__name__)

INSPIRATION_TYPES = ("fragrance", "nonfragrance", "product", "any")
INSPIRATION_MATCH_SCORE = 1000.0
INSPIRATION_POOL_LIMIT = 2000
CANDIDATE_POOL_MIN = 200
CANDIDATE_POOL_MAX = 2000
PRIORITY_POOL_FACTOR = 5
RUNWAY_SATURATION_DAYS = 60.0

BREAKDOWN_KEYS = ("descriptors", "filters", "related_products", "sets", "stock", "sales", "price", "name")


def _empty_breakdown() -> Dict[str, float]:
    return dict.fromkeys(BREAKDOWN_KEYS, 0.0)


def _as_weight(value: Any) -> Optional[float]:
    """Numeric weight, or None for null and non-numeric stored values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _is_gender_slug(slug: str) -> bool:
    return "pohl" in slug or "gender" in slug


def intersect_gender_values(left: List[Any], right: List[Any]) -> List[Any]:
    """Intersect gender filter values, treating ``unisex`` as a wildcard."""

    def normalized(values):
        result = {}
        for value in values:
            if isinstance(value, bool) or not isinstance(value, (str, int, float)):
                continue
            key = to_ascii(str(value).strip()).lower()
            if key:
                result[key] = value
        return result

    left_map = normalized(left)
    right_map = normalized(right)
    if not left_map or not right_map:
        return []

    result = []
    for left_key, raw in left_map.items():
        for right_key in right_map:
            if left_key == right_key or "unisex" in (left_key, right_key):
                if raw not in result:
                    result.append(raw)
                break
    return result


def _brand_filter_values(filters: Dict[str, Dict[str, Any]]) -> Dict[str, str]:
    result = {}
    for slug, meta in filters.items():
        if not isinstance(meta, dict):
            continue
        if "znacka" not in normalize_lower(slug) and "znacka" not in normalize_lower(meta.get("name")):
            continue
        for value in meta.get("values") or []:
            if isinstance(value, bool) or not isinstance(value, (str, int, float)):
                continue
            key = normalize_key(str(value))
            if key:
                result[key] = str(value)
    return result


def intersect_brand_filters(
    base_filters: Dict[str, Dict[str, Any]], candidate_filters: Dict[str, Dict[str, Any]]
) -> List[str]:
    """Raw candidate brand values also present among the base brand filters."""
    base = _brand_filter_values(base_filters)
    candidate = _brand_filter_values(candidate_filters)
    if not base or not candidate:
        return []

    result = []
    for key, raw in candidate.items():
        if key in base and raw not in result:
            result.append(raw)
    return result


def _payload_brand(product: Optional[Product]) -> Optional[str]:
    if product is None:
        return None
    brand = product.base_payload.get("brand")
    if isinstance(brand, dict) and isinstance(brand.get("name"), str):
        return brand["name"]
    return None


def _normalized_inspiration(context: VariantContext) -> Dict[str, str]:
    """Normalized inspiration value -> raw value, in descriptor order."""
    result: Dict[str, str] = {}
    for value in context.inspiration:
        key = normalize_key(value)
        if key:
            result[key] = value
    return result


def transform_candidate(variant: Variant, product: Optional[Product], summary: Dict[str, Any]) -> Dict[str, Any]:
    """Serializable view of a recommended variant with its sales metrics."""
    updated_at = summary.get("metrics_updated_at")
    return {
        "id": variant.id,
        "code": variant.code,
        "name": variant.name,
        "brand": variant.brand,
        "supplier": variant.supplier,
        "price": variant.price,
        "currency_code": variant.currency_code,
        "stock": variant.stock,
        "min_stock_supply": variant.min_stock_supply,
        "product": {
            "id": product.id,
            "external_guid": product.external_guid,
            "name": product.name,
            "status": product.status,
        }
        if product
        else None,
        "metrics": {
            "last_30_orders_count": int(summary.get("last_30_orders_count") or 0),
            "last_30_quantity": float(summary.get("last_30_quantity") or 0.0),
            "last_90_orders_count": int(summary.get("last_90_orders_count") or 0),
            "last_90_quantity": float(summary.get("last_90_quantity") or 0.0),
            "lifetime_orders_count": int(summary.get("lifetime_orders_count") or 0),
            "lifetime_quantity": float(summary.get("lifetime_quantity") or 0.0),
            "lifetime_revenue": float(summary.get("lifetime_revenue") or 0.0),
            "average_daily_sales": float(summary.get("average_daily_sales") or 0.0),
            "stock_runway_days": summary.get("stock_runway_days"),
            "metrics_updated_at": updated_at.isoformat() if updated_at else None,
        },
    }


class VariantRecommender:
    """Ranks catalog variants as cross-sell candidates for a base variant."""

    def __init__(
        self,
        catalog: Catalog,
        metrics: MetricsRepository,
        settings_store: SettingsStore,
        time_budget_seconds: float = 10.0,
    ):
        self.catalog = catalog
        self.metrics = metrics
        self.settings_store = settings_store
        self.time_budget_seconds = time_budget_seconds
        self._contexts: Dict[str, VariantContext] = {}

    def context_for(self, variant: Variant) -> VariantContext:
        context = self._contexts.get(variant.id)
        if context is None:
            context = build_variant_context(variant, self.catalog.product_for(variant))
            self._contexts[variant.id] = context
        return context

    def _shop_candidates(self, variant: Variant, product: Optional[Product]):
        shop_id = product.shop_id if product else None
        for candidate in self.catalog.variants(shop_id=shop_id):
            if candidate.id != variant.id:
                yield candidate

    def _over_budget(self, started_at: float) -> bool:
        return time.monotonic() - started_at > self.time_budget_seconds

    def _priority_candidates(
        self, variant: Variant, product: Optional[Product], base_keys: set, cap: int, started_at: float
    ) -> List[Variant]:
        """Variants sharing a normalized inspiration value with the base."""
        shop_id = product.shop_id if product else None
        found: List[Variant] = []

        for candidate in self.catalog.variants():
            if len(found) >= cap or self._over_budget(started_at):
                break
            if candidate.id == variant.id:
                continue
            candidate_product = self.catalog.product_for(candidate)
            if shop_id and candidate_product and candidate_product.shop_id and candidate_product.shop_id != shop_id:
                continue
            if base_keys & set(_normalized_inspiration(self.context_for(candidate))):
                found.append(candidate)

        return found

    def recommend(self, variant: Variant, limit: int = 6) -> List[Dict[str, Any]]:
        """Score candidate variants for ``variant``.

        Every candidate in the pool is scored before the list is sorted and
        cut to ``limit``, so a strong candidate late in the pool is never
        dropped in favour of earlier weaker ones.

        Args:
            variant: Base variant.
            limit: Maximum number of recommendations (at least 1).

        Returns:
            List of ``{variant, score, breakdown, matches}`` dicts sorted by
            score descending.
        """
        limit = max(1, int(limit))
        started_at = time.monotonic()
        settings = self.settings_store.get_configuration()

        base_product = self.catalog.product_for(variant)
        base_context = self.context_for(variant)
        base_inspiration = base_context.inspiration
        base_keys = set(_normalized_inspiration(base_context))

        pool_size = int(
            min(CANDIDATE_POOL_MAX, max(CANDIDATE_POOL_MIN, int(settings.get("candidate_limit") or 0)))
        )
        priority = []
        if base_keys:
            priority = self._priority_candidates(
                variant, base_product, base_keys, limit * PRIORITY_POOL_FACTOR, started_at
            )

        pool: List[Variant] = []
        seen = set()
        regular = []
        for candidate in self._shop_candidates(variant, base_product):
            if len(regular) >= pool_size:
                break
            regular.append(candidate)
        for candidate in priority + regular:
            if candidate.id not in seen:
                seen.add(candidate.id)
                pool.append(candidate)

        if not pool:
            return []

        base_filters = base_context.filter_parameters
        base_related = {item["guid"]: item for item in base_context.related_products}
        base_guid = base_product.external_guid if base_product else None
        base_set_items = extract_set_items(base_product)
        base_memberships = self.catalog.set_memberships(base_guid)

        descriptors_config = settings.get("descriptors") or {}
        filters_config = settings.get("filters") or {}
        related_config = settings.get("related_products") or {}
        sets_config = settings.get("sets") or {}
        stock_config = settings.get("stock") or {}
        sales_config = settings.get("sales") or {}

        inspiration_weight = max(
            float(descriptors_config.get("inspiration", 0) or 0),
            float(descriptors_config.get("inspirovano", 0) or 0),
            float(descriptors_config.get("podobne", 0) or 0),
        )

        recommendations = []
        for candidate in pool:
            if self._over_budget(started_at):
                logger.warning(
                    "Recommendation time budget exceeded",
                    extra={"variant_id": variant.id, "scored": len(recommendations)},
                )
                break

            if stock_config.get("must_have_stock") and float(candidate.stock or 0) <= 0:
                continue

            candidate_context = self.context_for(candidate)
            candidate_product = self.catalog.product_for(candidate)
            summary = self.metrics.summarize(candidate)

            score = 0.0
            breakdown = _empty_breakdown()
            matches: Dict[str, Any] = {
                "descriptors": [],
                "filters": [],
                "related_products": [],
                "sets": [],
                "name": None,
            }

            shared = [value for value in base_inspiration if value in candidate_context.inspiration]
            if shared and inspiration_weight > 0:
                part = len(shared) * inspiration_weight
                breakdown["descriptors"] += part
                score += part
                matches["descriptors"].append({"type": "inspiration", "values": shared, "score": part})

            candidate_filters = candidate_context.filter_parameters
            for slug, base_filter in base_filters.items():
                candidate_filter = candidate_filters.get(slug)
                if not candidate_filter:
                    continue

                base_values = base_filter.get("values") or []
                candidate_values = candidate_filter.get("values") or []
                if _is_gender_slug(slug):
                    intersection = intersect_gender_values(base_values, candidate_values)
                else:
                    intersection = [v for v in base_values if v in candidate_values]
                if not intersection:
                    continue

                weight, match_type = self._filter_weight(slug, filters_config)
                part = len(intersection) * weight
                breakdown["filters"] += part
                score += part
                matches["filters"].append(
                    {"name": base_filter["name"], "values": intersection, "score": part, "type": match_type}
                )

            candidate_guid = candidate_product.external_guid if candidate_product else None
            if candidate_guid and candidate_guid in base_related:
                meta = base_related[candidate_guid]
                link_type = meta.get("link_type") or "default"
                weight = float(related_config.get(link_type, related_config.get("default", 0)) or 0)
                if weight > 0:
                    breakdown["related_products"] += weight
                    score += weight
                    matches["related_products"].append(
                        {
                            "guid": candidate_guid,
                            "link_type": link_type,
                            "priority": meta.get("priority"),
                            "visibility": meta.get("visibility"),
                            "score": weight,
                        }
                    )

            candidate_set_items = extract_set_items(candidate_product)
            if candidate_set_items and set_items_contain(candidate_set_items, base_guid, variant.code):
                weight = float(sets_config.get("containing_set_weight") or 0)
                if weight > 0:
                    breakdown["sets"] += weight
                    score += weight
                    matches["sets"].append(
                        {
                            "type": "contains_base",
                            "set": {"guid": candidate_guid, "name": candidate_product.name},
                            "score": weight,
                        }
                    )

            if base_set_items and set_items_contain(base_set_items, candidate_guid, candidate.code):
                weight = float(sets_config.get("component_weight") or 0)
                if weight > 0:
                    breakdown["sets"] += weight
                    score += weight
                    matches["sets"].append(
                        {
                            "type": "is_component",
                            "set": {"guid": base_guid, "name": base_product.name if base_product else None},
                            "score": weight,
                        }
                    )

            candidate_memberships = self.catalog.set_memberships(candidate_guid)
            if base_memberships and candidate_memberships:
                weight = float(sets_config.get("shared_membership_weight") or 0)
                if weight > 0:
                    for guid, meta in base_memberships.items():
                        if guid not in candidate_memberships:
                            continue
                        breakdown["sets"] += weight
                        score += weight
                        matches["sets"].append({"type": "shared_membership", "set": meta, "score": weight})

            stock_weight = float(stock_config.get("weight") or 0)
            if stock_weight > 0:
                stock_value = max(float(candidate.stock or 0), 0.0)
                runway = float(summary.get("stock_runway_days") or 0.0)
                stock_score = stock_weight * (
                    (1.0 if stock_value > 0 else 0.0) + min(runway / RUNWAY_SATURATION_DAYS, 1.0)
                )
                if stock_score > 0:
                    breakdown["stock"] += stock_score
                    score += stock_score

            sales_score = float(sales_config.get("last_30_quantity_weight") or 0) * float(
                summary.get("last_30_quantity") or 0
            ) + float(sales_config.get("last_90_quantity_weight") or 0) * float(summary.get("last_90_quantity") or 0)
            if sales_score > 0:
                breakdown["sales"] += sales_score
                score += sales_score

            if score <= 0:
                continue

            recommendations.append(
                {
                    "variant": transform_candidate(candidate, candidate_product, summary),
                    "score": score,
                    "breakdown": breakdown,
                    "matches": matches,
                }
            )

        # Stable sort keeps pool order for equal scores
        recommendations.sort(key=lambda rec: rec["score"], reverse=True)
        return recommendations[:limit]

    @staticmethod
    def _filter_weight(slug: str, filters_config: Dict[str, float]):
        if "znacka" in slug:
            keys, fallback, match_type = (slug, "znacka", "znacka-2"), 300.0, "brand"
        elif _is_gender_slug(slug):
            keys, fallback, match_type = (slug, "pohlavi", "gender"), 200.0, "gender"
        else:
            keys, fallback, match_type = (slug, "default"), 10.0, "filter"

        for key in keys:
            weight = _as_weight(filters_config.get(key))
            if weight is not None:
                return weight, match_type
        return fallback, match_type

    def recommend_by_inspiration_type(
        self, variant: Variant, limit: int = 6, type: str = "fragrance"
    ) -> List[Dict[str, Any]]:
        """Recommend only by shared inspiration, optionally by product kind.

        Args:
            variant: Base variant.
            limit: Maximum number of recommendations (at least 1).
            type: ``fragrance``, ``nonfragrance``, ``product`` or ``any``.
                When the typed pass finds fewer than ``limit`` variants an
                ``any`` pass fills the remaining slots.

        Returns:
            At most one variant per product, sorted by score descending.
        """
        if type not in INSPIRATION_TYPES:
            raise ValueError(f"Unknown inspiration type: {type}")

        limit = max(1, int(limit))
        started_at = time.monotonic()
        settings = self.settings_store.get_configuration()
        brand_weight = float((settings.get("filters") or {}).get("znacka", 300.0))

        base_product = self.catalog.product_for(variant)
        base_context = self.context_for(variant)
        base_map = _normalized_inspiration(base_context)
        if not base_map:
            return []

        base_filters = base_context.filter_parameters
        base_brand = normalize_key(variant.brand or _payload_brand(base_product))
        needles = [value.lower() for value in base_context.inspiration if value.strip()]

        candidates = []
        for candidate in self._shop_candidates(variant, base_product):
            if len(candidates) >= INSPIRATION_POOL_LIMIT:
                break
            candidate_product = self.catalog.product_for(candidate)
            if candidate_product is None:
                continue
            haystack = json.dumps(candidate_product.base_payload, ensure_ascii=False).lower()
            if any(needle in haystack for needle in needles):
                candidates.append(candidate)

        recommendations: List[Dict[str, Any]] = []
        selected_ids = set()
        selected_products = {base_product.id} if base_product else set()

        def process(type_filter: str) -> None:
            for candidate in candidates:
                if self._over_budget(started_at) or len(recommendations) >= limit:
                    break
                if candidate.id in selected_ids or candidate.product_id in selected_products:
                    continue

                candidate_context = self.context_for(candidate)
                candidate_map = _normalized_inspiration(candidate_context)
                shared = [key for key in base_map if key in candidate_map]
                if not shared:
                    continue

                candidate_product = self.catalog.product_for(candidate)
                if type_filter in ("fragrance", "nonfragrance"):
                    fragrance = is_fragrance_context(candidate_context, candidate, candidate_product)
                    if (type_filter == "fragrance") != fragrance:
                        continue

                score = len(shared) * INSPIRATION_MATCH_SCORE
                matches: Dict[str, Any] = {
                    "descriptors": [
                        {"type": "inspiration", "values": [candidate_map[k] for k in shared], "score": score}
                    ],
                    "filters": [],
                    "related_products": [],
                    "sets": [],
                }

                candidate_brand = candidate.brand or _payload_brand(candidate_product)
                brand_values = intersect_brand_filters(base_filters, candidate_context.filter_parameters)
                if not brand_values and base_brand and normalize_key(candidate_brand) == base_brand:
                    brand_values = [candidate_brand]
                if brand_values:
                    matches["filters"].append(
                        {"name": "Značka", "values": brand_values, "score": brand_weight, "type": "brand"}
                    )
                    score += brand_weight

                breakdown = _empty_breakdown()
                breakdown["descriptors"] = score
                recommendations.append(
                    {
                        "variant": transform_candidate(candidate, candidate_product, {}),
                        "score": score,
                        "breakdown": breakdown,
                        "matches": matches,
                    }
                )
                selected_ids.add(candidate.id)
                selected_products.add(candidate.product_id)

        process(type)
        if len(recommendations) < limit and type != "any":
            process("any")

        recommendations.sort(key=lambda rec: rec["score"], reverse=True)
        return recommendations[:limit]
