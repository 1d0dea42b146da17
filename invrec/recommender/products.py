"""Product-level "related" and "recommended" lists.

Every product with variants is reduced to a feature context: brand,
inspiration values, dominant ingredients, fragrance types, seasons and
categories, all normalized. Shared-value counts between every pair of
products come from sparse incidence matrices, ``X @ X.T``, built with
scikit-learn's ``MultiLabelBinarizer``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import scipy.sparse as sp
from sklearn.preprocessing import MultiLabelBinarizer

from invrec.recommender.catalog import Catalog, Product
from invrec.recommender.context import extract_related_descriptors, filter_values
from invrec.recommender.metrics import MetricsRepository
from invrec.recommender.text import (
    contains_keyword,
    normalize_key,
    normalize_keywords,
    normalize_lower,
    slugify,
    split_values,
)

# Configure module logger
logger = logging.getLogger(__name__)

TYPE_RELATED = "related"
TYPE_RECOMMENDED = "recommended"

BRAND_SLUGS = ("znacka", "znacka-2")
FEATURES = ("inspiration", "dominant", "fragrance", "season", "category")
FEATURE_FILTERS = {
    "dominant": "dominantni-ingredience",
    "fragrance": "druh-vune",
    "season": "rocni-obdobi",
}

RELATED_MATCH_SCORE = 500.0
BRAND_MATCH_SCORE = 400.0
FEATURE_SCORES = {"dominant": 120.0, "fragrance": 80.0, "season": 40.0, "category": 60.0}
SALES_BONUS_FACTOR = 25.0
PER_BRAND_LIMIT = 3

HUB_FILTERS = "_hub.suggestedFilters.filteringParameters"
HUB_DESCRIPTORS = "_hub.suggestedFilters.descriptiveParameters"


def _dig(payload: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted path from nested dicts."""
    current: Any = payload
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def _entries(payload: Dict[str, Any], path: str) -> List[Dict[str, Any]]:
    entries = _dig(payload, path, [])
    if not isinstance(entries, list):
        return []
    return [entry for entry in entries if isinstance(entry, dict)]


def _entry_slug(entry: Dict[str, Any]) -> str:
    return slugify(str(entry.get("code") or entry.get("name") or ""))


def sales_score(last_30: float, last_90: float, lifetime: float) -> float:
    return last_30 * 3.0 + last_90 * 1.5 + lifetime * 0.1


def sales_bonus(scores):
    """Diminishing bonus for sales, ``25 * log1p(score)``."""
    return np.log1p(np.maximum(scores, 0.0)) * SALES_BONUS_FACTOR


@dataclass
class FeatureValues:
    values: List[str] = field(default_factory=list)
    normalized: List[str] = field(default_factory=list)
    lookup: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Iterable[Any]) -> "FeatureValues":
        result = cls()
        for value in raw:
            if not isinstance(value, str) or not value.strip() or value in result.values:
                continue
            result.values.append(value)
            key = normalize_key(value)
            if key is None:
                continue
            if key not in result.lookup:
                result.lookup[key] = value
                result.normalized.append(key)
        return result


@dataclass
class ProductContext:
    product_id: str
    brand: Optional[str]
    brand_normalized: Optional[str]
    features: Dict[str, FeatureValues]
    variant: Dict[str, Any]

    @property
    def sales_score(self) -> float:
        return self.variant["sales_score"]


def extract_brand(product: Product) -> Optional[str]:
    """Resolve a product brand from filters, payload brand, hub brand, then variants."""
    payloads = product.payloads

    for payload in payloads:
        for path in ("filteringParameters", HUB_FILTERS):
            for entry in _entries(payload, path):
                if _entry_slug(entry) not in BRAND_SLUGS:
                    continue
                for value in filter_values(entry):
                    if value.strip():
                        return value.strip()

    for prefix in ("", "_hub."):
        for payload in payloads:
            brand = _dig(payload, f"{prefix}brand.name")
            if brand is None:
                brand = _dig(payload, f"{prefix}brand")
            if isinstance(brand, str) and brand.strip():
                return brand.strip()

    for variant in product.variants:
        if variant.brand is not None:
            return variant.brand
    return None


def _inspiration_values(entry: Dict[str, Any]) -> List[str]:
    if normalize_lower(str(entry.get("name") or "").strip()) != "inspirovano":
        return []

    values = []
    for value_entry in entry.get("values") or []:
        if isinstance(value_entry, dict):
            candidate = next(
                (
                    value_entry[k]
                    for k in ("value", "name", "displayName", "valueIndex")
                    if value_entry.get(k) is not None
                ),
                None,
            )
            if isinstance(candidate, str) and candidate.strip():
                values.append(candidate.strip())
        elif isinstance(value_entry, str) and value_entry.strip():
            values.append(value_entry.strip())

    if not values and isinstance(entry.get("value"), str):
        values = split_values(entry["value"])
    return values


def collect_inspiration(product: Product) -> FeatureValues:
    values = []
    for payload in product.payloads:
        for path in ("descriptiveParameters", HUB_DESCRIPTORS):
            for entry in _entries(payload, path):
                values.extend(_inspiration_values(entry))

    if not values:
        descriptors, _ = extract_related_descriptors(product)
        values = descriptors["inspired"]
    return FeatureValues.from_raw(values)


def collect_filter_values(product: Product, target: str) -> FeatureValues:
    target_slug = slugify(target)
    values = []
    for payload in product.payloads:
        for path in ("filteringParameters", HUB_FILTERS):
            for entry in _entries(payload, path):
                if _entry_slug(entry) == target_slug:
                    values.extend(filter_values(entry))
    return FeatureValues.from_raw(values)


def collect_categories(product: Product) -> FeatureValues:
    values = []
    for payload in product.payloads:
        categories = payload.get("categories")
        for category in categories if isinstance(categories, list) else []:
            name = category.get("name") if isinstance(category, dict) else category
            if isinstance(name, str) and name.strip():
                values.append(name.strip())

        default_category = payload.get("defaultCategory")
        if isinstance(default_category, dict):
            name = default_category.get("name")
            if isinstance(name, str) and name.strip():
                values.append(name.strip())

        for path in ("filteringParameters", HUB_FILTERS):
            for entry in _entries(payload, path):
                slug = _entry_slug(entry)
                if "kategorie" in slug or "category" in slug:
                    values.extend(filter_values(entry))

    return FeatureValues.from_raw(values)


def incidence_matrix(label_sets: List[List[str]]) -> sp.csr_matrix:
    """Binary products x values matrix."""
    binarizer = MultiLabelBinarizer(sparse_output=True)
    matrix = binarizer.fit_transform(label_sets)
    if matrix.shape[1] == 0:
        return sp.csr_matrix((len(label_sets), 1), dtype=np.int64)
    return sp.csr_matrix(matrix, dtype=np.int64)


def shared_counts(label_sets: List[List[str]]) -> sp.csr_matrix:
    """Pairwise count of shared values, ``X @ X.T``."""
    matrix = incidence_matrix(label_sets)
    return (matrix @ matrix.T).tocsr()


def denormalize(keys: Iterable[str], primary: Dict[str, str], fallback: Dict[str, str]) -> List[str]:
    result = []
    for key in keys:
        raw = primary.get(key, fallback.get(key))
        if raw is not None and raw not in result:
            result.append(raw)
    return result


class ProductRecommendationBuilder:
    """Rebuilds related and recommended product lists for the whole catalog."""

    def __init__(self, catalog: Catalog, metrics: MetricsRepository):
        self.catalog = catalog
        self.metrics = metrics

    def _display_variant(self, product: Product, totals: Dict[str, Dict[str, float]], brand: Optional[str]):
        best = None
        for variant in product.variants:
            sales = totals.get(variant.id, {})
            score = sales_score(
                float(sales.get("last_30_quantity", 0.0)),
                float(sales.get("last_90_quantity", 0.0)),
                float(sales.get("lifetime_quantity", 0.0)),
            )
            candidate = {
                "id": variant.id,
                "code": variant.code,
                "name": variant.name,
                "brand": variant.brand or brand,
                "price": variant.price,
                "currency_code": variant.currency_code,
                "stock": variant.stock,
                "min_stock_supply": variant.min_stock_supply,
                "sales_score": score,
            }
            if best is None or score > best["sales_score"]:
                best = candidate
            elif score == best["sales_score"] and float(variant.stock or 0) > float(best["stock"] or 0):
                best = candidate
        return best

    def collect_contexts(self, exclude_keywords: Iterable[str] = ()) -> List[ProductContext]:
        """Feature contexts of all products with variants, in product id order."""
        keywords = normalize_keywords(exclude_keywords)
        totals = self.metrics.sales_totals()
        contexts = []

        for product in self.catalog.products.values():
            if not product.variants:
                continue

            brand = extract_brand(product)
            variant = self._display_variant(product, totals, brand)
            if variant is None:
                continue

            if contains_keyword([brand, product.name, variant["name"], variant["code"]], keywords):
                continue

            features = {
                "inspiration": collect_inspiration(product),
                "category": collect_categories(product),
            }
            for feature, code in FEATURE_FILTERS.items():
                features[feature] = collect_filter_values(product, code)

            contexts.append(
                ProductContext(
                    product_id=product.id,
                    brand=brand,
                    brand_normalized=normalize_key(brand),
                    features=features,
                    variant=variant,
                )
            )

        return contexts

    def rebuild(self, limit: int = 10, exclude_keywords: Iterable[str] = ()) -> Tuple[List[Dict[str, Any]], Dict[str, int]]:
        """Build related and recommended lists for every product.

        Args:
            limit: Maximum entries per list (at least 1).
            exclude_keywords: Products whose brand, name or display variant
                name/code contain one of these are left out entirely.

        Returns:
            Tuple ``(records, stats)``; stats counts products, related and
            recommended entries.
        """
        limit = max(1, int(limit))
        contexts = self.collect_contexts(exclude_keywords)
        stats = {"products": len(contexts), "related": 0, "recommended": 0}
        if not contexts:
            return [], stats

        shared = {
            feature: shared_counts([c.features[feature].normalized for c in contexts])
            for feature in FEATURES
        }
        brands = shared_counts([[c.brand_normalized] if c.brand_normalized else [] for c in contexts])
        sales = np.array([c.sales_score for c in contexts], dtype=float)
        bonus = sales_bonus(sales)

        records: List[Dict[str, Any]] = []
        for index, context in enumerate(contexts):
            rows = {feature: shared[feature][index].toarray().ravel() for feature in FEATURES}
            brand_match = brands[index].toarray().ravel() > 0

            related = self._related(index, contexts, rows, sales, bonus, limit)
            recommended = self._recommended(index, contexts, rows, brand_match, sales, bonus, limit)

            records.extend(self._records(context.product_id, TYPE_RELATED, related))
            records.extend(self._records(context.product_id, TYPE_RECOMMENDED, recommended))
            stats["related"] += len(related)
            stats["recommended"] += len(recommended)

        logger.info("Product recommendations rebuilt", extra=stats)
        return records, stats

    @staticmethod
    def _ranked(candidates: np.ndarray, scores: np.ndarray, sales: np.ndarray) -> np.ndarray:
        """Candidate indexes by score, then sales, both descending."""
        order = np.lexsort((-sales[candidates], -scores[candidates]))
        return candidates[order]

    def _related(self, index, contexts, rows, sales, bonus, limit) -> List[Dict[str, Any]]:
        inspiration = rows["inspiration"]
        candidates = np.flatnonzero(inspiration > 0)
        candidates = candidates[candidates != index]
        if candidates.size == 0:
            return []

        scores = inspiration * RELATED_MATCH_SCORE + bonus
        base = contexts[index].features["inspiration"]

        result = []
        for j in self._ranked(candidates, scores, sales)[:limit]:
            candidate = contexts[j].features["inspiration"]
            keys = [key for key in base.normalized if key in candidate.lookup]
            result.append(
                {
                    "context": contexts[j],
                    "score": float(scores[j]),
                    "matches": {"inspiration": denormalize(keys, candidate.lookup, base.lookup)},
                }
            )
        return result

    def _recommended(self, index, contexts, rows, brand_match, sales, bonus, limit) -> List[Dict[str, Any]]:
        base = contexts[index]
        mask = rows["inspiration"] == 0
        mask[index] = False

        has_features = any(base.features[f].normalized for f in FEATURE_SCORES)
        if has_features:
            mask &= sum(rows[f] for f in FEATURE_SCORES) > 0

        scores = brand_match * BRAND_MATCH_SCORE + bonus
        for feature, weight in FEATURE_SCORES.items():
            scores = scores + rows[feature] * weight

        brand_candidates = self._ranked(np.flatnonzero(mask & brand_match), scores, sales)
        other_candidates = self._ranked(np.flatnonzero(mask & ~brand_match), scores, sales)

        selected = list(brand_candidates[: min(limit, PER_BRAND_LIMIT)])
        selected.extend(other_candidates[: limit - len(selected)])

        result = []
        for j in selected:
            candidate = contexts[j]
            matches = {"brand": candidate.brand if brand_match[j] else None}
            for feature, key in (
                ("dominant", "dominant_ingredients"),
                ("fragrance", "fragrance_types"),
                ("season", "seasons"),
                ("category", "categories"),
            ):
                base_values = base.features[feature]
                candidate_values = candidate.features[feature]
                keys = [k for k in base_values.normalized if k in candidate_values.lookup]
                matches[key] = denormalize(keys, candidate_values.lookup, base_values.lookup)
            result.append({"context": candidate, "score": float(scores[j]), "matches": matches})
        return result

    @staticmethod
    def _records(product_id: str, type_: str, entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [
            {
                "product_id": product_id,
                "recommended_product_id": entry["context"].product_id,
                "recommended_variant_id": entry["context"].variant["id"],
                "type": type_,
                "position": position,
                "score": entry["score"],
                "matches": entry["matches"],
            }
            for position, entry in enumerate(entries)
        ]
