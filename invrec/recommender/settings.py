"""Runtime-editable scoring configuration for the variant recommender.

The configuration is a JSON document persisted next to the catalog. Reads
always return the defaults deep-merged with what is stored, so partial
documents are valid.
"""

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Union

from invrec.recommender.text import slugify

# Configure module logger
logger = logging.getLogger(__name__)

CANDIDATE_LIMIT_MAX = 500

DEFAULT_RECOMMENDATION_SETTINGS: Dict[str, Any] = {
    "descriptors": {
        "inspirovano": 500,
        "podobne": 500,
    },
    "filters": {
        "znacka": 300,
        "znacka-2": 300,
        "pohlavi": 200,
        "gender": 200,
        "default": 10,
        "dominantni-ingredience": 4,
        "druh-vune": 3,
        "rocni-obdobi": 2,
        "slozeni": 1,
    },
    "related_products": {
        "physical": 3,
        "reciprocal": 2,
        "default": 1,
    },
    "sets": {
        "containing_set_weight": 4,
        "component_weight": 3,
        "shared_membership_weight": 2,
    },
    "stock": {
        "must_have_stock": True,
        "weight": 1.0,
    },
    "sales": {
        "last_30_quantity_weight": 0.8,
        "last_90_quantity_weight": 0.4,
    },
    "price": {
        "allowed_diff_percent": 25,
        "match_weight": 2,
        "cheaper_bonus": 1,
    },
    "name_similarity": {
        "min_score": 0.6,
        "weight": 2,
        "number_weight": 1.5,
    },
    "candidate_limit": 120,
}


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively replace values of ``base`` with those of ``override``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        try:
            float(value)
        except ValueError:
            return False
        return True
    return False


def _number(value: Any, fallback: float) -> float:
    return float(value) if _is_numeric(value) else float(fallback)


def _section(config: Dict[str, Any], key: str) -> Dict[str, Any]:
    section = config.get(key)
    return section if isinstance(section, dict) else {}


def normalize_weight_map(items: Any) -> Dict[str, float]:
    """Slugify keys and keep only numeric weights."""
    if not isinstance(items, dict):
        return {}

    normalized = {}
    for key, value in items.items():
        if not isinstance(key, str):
            continue
        slug = slugify(key)
        if not slug or not _is_numeric(value):
            continue
        normalized[slug] = float(value)
    return normalized


def normalize_configuration(config: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce a merged configuration into its canonical, fully numeric form."""
    defaults = DEFAULT_RECOMMENDATION_SETTINGS
    sets = _section(config, "sets")
    stock = _section(config, "stock")
    sales = _section(config, "sales")
    price = _section(config, "price")
    name = _section(config, "name_similarity")

    candidate_limit = config.get("candidate_limit")
    if _is_numeric(candidate_limit):
        candidate_limit = max(1, min(int(float(candidate_limit)), CANDIDATE_LIMIT_MAX))
    else:
        candidate_limit = int(defaults["candidate_limit"])

    min_score = name.get("min_score")
    if _is_numeric(min_score):
        min_score = max(0.0, min(1.0, float(min_score)))
    else:
        min_score = float(defaults["name_similarity"]["min_score"])

    return {
        "descriptors": normalize_weight_map(config.get("descriptors")),
        "filters": normalize_weight_map(config.get("filters")),
        "related_products": normalize_weight_map(config.get("related_products")),
        "sets": {
            key: _number(sets.get(key), defaults["sets"][key])
            for key in ("containing_set_weight", "component_weight", "shared_membership_weight")
        },
        "stock": {
            "must_have_stock": bool(stock.get("must_have_stock", False)),
            "weight": _number(stock.get("weight"), 0.0),
        },
        "sales": {
            "last_30_quantity_weight": _number(sales.get("last_30_quantity_weight"), 0.0),
            "last_90_quantity_weight": _number(sales.get("last_90_quantity_weight"), 0.0),
        },
        "price": {
            "allowed_diff_percent": _number(
                price.get("allowed_diff_percent"), defaults["price"]["allowed_diff_percent"]
            ),
            "match_weight": _number(price.get("match_weight"), 0.0),
            "cheaper_bonus": _number(price.get("cheaper_bonus"), 0.0),
        },
        "name_similarity": {
            "min_score": min_score,
            "weight": _number(name.get("weight"), 0.0),
            "number_weight": _number(name.get("number_weight"), 0.0),
        },
        "candidate_limit": candidate_limit,
    }


class SettingsStore:
    """JSON-file backed store for the recommendation configuration."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        """Initialize the store.

        Args:
            path: JSON file location. ``None`` keeps the configuration in
                memory only.
        """
        self.path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._stored: Dict[str, Any] = self._read()

    def _read(self) -> Dict[str, Any]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            with self.path.open(encoding="utf-8") as fh:
                stored = json.load(fh)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring unreadable recommendation settings in {self.path}")
            return {}
        return stored if isinstance(stored, dict) else {}

    def get_configuration(self) -> Dict[str, Any]:
        """Defaults deep-merged with the stored configuration."""
        with self._lock:
            return deep_merge(DEFAULT_RECOMMENDATION_SETTINGS, self._stored)

    def save_configuration(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Merge a payload over the defaults, normalize and persist it.

        Raises:
            TypeError: If the payload is not a mapping.
        """
        if not isinstance(payload, dict):
            raise TypeError("Recommendation settings payload must be an object")

        normalized = normalize_configuration(deep_merge(DEFAULT_RECOMMENDATION_SETTINGS, payload))

        with self._lock:
            self._stored = normalized
            if self.path is not None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("w", encoding="utf-8") as fh:
                    json.dump(normalized, fh, ensure_ascii=False, indent=2)

        logger.info("Recommendation settings saved", extra={"settings_path": str(self.path)})
        return normalized
