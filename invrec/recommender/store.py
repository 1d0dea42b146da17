"""Persistence of generated recommendations.

Variant lists, product lists and the last run status are kept in memory and
written as joblib artifacts to the recommendations directory.
"""

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import joblib

# Configure module logger
logger = logging.getLogger(__name__)

# Artifact filenames
VARIANT_RECOMMENDATIONS_FILENAME = "variant_recommendations.joblib"
PRODUCT_RECOMMENDATIONS_FILENAME = "product_recommendations.joblib"
RUN_STATUS_FILENAME = "run_status.joblib"


def _dump_atomic(value: Any, path: Path) -> None:
    """Write a joblib artifact via a temporary file and an atomic rename."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    os.close(fd)
    try:
        joblib.dump(value, tmp_name)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class RecommendationStore:
    """Stored variant and product recommendations."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self._lock = threading.RLock()
        self._variants: Dict[str, List[Dict[str, Any]]] = {}
        self._products: Dict[str, List[Dict[str, Any]]] = {}

    @property
    def variant_path(self) -> Path:
        return self.directory / VARIANT_RECOMMENDATIONS_FILENAME

    @property
    def product_path(self) -> Path:
        return self.directory / PRODUCT_RECOMMENDATIONS_FILENAME

    @property
    def run_status_path(self) -> Path:
        return self.directory / RUN_STATUS_FILENAME

    @property
    def num_variants(self) -> int:
        return len(self._variants)

    @property
    def num_products(self) -> int:
        return len(self._products)

    def exists(self) -> bool:
        """True when both recommendation artifacts are on disk."""
        return self.variant_path.exists() and self.product_path.exists()

    def replace_variant_recommendations(self, variant_id: str, records: List[Dict[str, Any]]) -> None:
        """Replace the stored list of a variant; an empty list removes it."""
        with self._lock:
            if records:
                self._variants[variant_id] = list(records)
            else:
                self._variants.pop(variant_id, None)

    def clear_variant_recommendations(self) -> None:
        with self._lock:
            self._variants = {}

    def replace_product_recommendations(self, records: List[Dict[str, Any]]) -> None:
        """Replace all product-level lists with ``records``.

        An empty list clears every product list.
        """
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for record in records:
            grouped.setdefault(record["product_id"], []).append(record)

        with self._lock:
            self._products = grouped

    def variant_recommendations(self, variant_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return sorted(self._variants.get(variant_id, []), key=lambda r: r["position"])

    def product_recommendations(self, product_id: str, type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Stored lists of a product, ordered by type then position."""
        with self._lock:
            records = self._products.get(product_id, [])
            if type is not None:
                records = [r for r in records if r["type"] == type]
            return sorted(records, key=lambda r: (r["type"], r["position"]))

    def save(self) -> None:
        """Write recommendation artifacts to disk."""
        self.directory.mkdir(parents=True, exist_ok=True)
        with self._lock:
            _dump_atomic(self._variants, self.variant_path)
            _dump_atomic(self._products, self.product_path)

        logger.info(
            f"Saved recommendations to {self.directory}",
            extra={"num_variants": self.num_variants, "num_products": self.num_products},
        )

    def load(self) -> "RecommendationStore":
        """Read recommendation artifacts from disk.

        Raises:
            FileNotFoundError: If an artifact is missing.
        """
        for path in (self.variant_path, self.product_path):
            if not path.exists():
                raise FileNotFoundError(f"Recommendation artifact not found: {path}")

        with self._lock:
            self._variants = joblib.load(self.variant_path)
            self._products = joblib.load(self.product_path)

        logger.info(
            f"Loaded recommendations from {self.directory}",
            extra={"num_variants": self.num_variants, "num_products": self.num_products},
        )
        return self

    def save_run_status(self, status: Dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        with self._lock:
            _dump_atomic(dict(status), self.run_status_path)

    def load_run_status(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            if not self.run_status_path.exists():
                return None
            return joblib.load(self.run_status_path)
