"""Recommendation generation run and its background schedule.

A run recomputes the stored list of every variant, rebuilds the product
lists, persists both and records a run status.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from invrec.recommender.catalog import Catalog, Variant
from invrec.recommender.metrics import MetricsRepository
from invrec.recommender.products import ProductRecommendationBuilder
from invrec.recommender.scoring import VariantRecommender
from invrec.recommender.settings import SettingsStore
from invrec.recommender.store import RecommendationStore
from invrec.recommender.text import contains_keyword, normalize_keywords

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE_KEYWORDS = [
    "tester",
    "bez víčka",
    "bez vicka",
    "bez krabičky",
    "bez krabicky",
    "vzorek",
    "sample",
]

STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

JOB_ID = "generate_recommendations"


@dataclass
class GenerationOptions:
    """Options of a generation run; out-of-range values are clamped."""

    chunk: int = 50
    limit: int = 6
    product_limit: int = 10
    skip_variants: bool = False
    exclude_keywords: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_KEYWORDS))

    def __post_init__(self):
        self.chunk = max(10, int(self.chunk))
        self.limit = max(1, int(self.limit))
        self.product_limit = max(1, int(self.product_limit))
        self.skip_variants = bool(self.skip_variants)
        self.exclude_keywords = normalize_keywords(self.exclude_keywords or [])

    @classmethod
    def from_dict(cls, options: Optional[Dict[str, Any]]) -> "GenerationOptions":
        options = {k: v for k, v in (options or {}).items() if v is not None}
        known = {k: options[k] for k in cls.__dataclass_fields__ if k in options}
        return cls(**known)


def _dig(data: Dict[str, Any], path: str) -> Any:
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def should_skip_variant(variant: Variant, keywords: List[str]) -> bool:
    return contains_keyword(
        [
            variant.name,
            variant.code,
            variant.brand,
            _dig(variant.data, "variant.label"),
            _dig(variant.data, "variant.volume"),
        ],
        keywords,
    )


def rebuild_for_variant(
    variant: Variant,
    recommender: VariantRecommender,
    store: RecommendationStore,
    options: GenerationOptions,
) -> int:
    """Recompute and store the list of one variant; returns its length."""
    store.replace_variant_recommendations(variant.id, [])

    if should_skip_variant(variant, options.exclude_keywords):
        return 0

    records = []
    for entry in recommender.recommend(variant, options.limit * 3):
        if len(records) >= options.limit:
            break

        recommended_id = entry["variant"].get("id")
        if not recommended_id or recommended_id == variant.id:
            continue

        recommended = recommender.catalog.get_variant(recommended_id)
        volume = recommended.data.get("volume") if recommended else None
        if contains_keyword(
            [
                entry["variant"].get("name"),
                entry["variant"].get("code"),
                entry["variant"].get("brand"),
                _dig(volume, "value") if isinstance(volume, dict) else None,
                _dig(volume, "label") if isinstance(volume, dict) else None,
            ],
            options.exclude_keywords,
        ):
            continue

        records.append(
            {
                "variant_id": variant.id,
                "recommended_variant_id": recommended_id,
                "position": len(records),
                "score": entry["score"],
                "breakdown": entry["breakdown"],
                "matches": entry["matches"],
            }
        )

    store.replace_variant_recommendations(variant.id, records)
    return len(records)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def generate_recommendations(
    catalog: Catalog,
    metrics: MetricsRepository,
    settings_store: SettingsStore,
    store: RecommendationStore,
    options: Optional[GenerationOptions] = None,
    time_budget_seconds: float = 10.0,
) -> Dict[str, Any]:
    """Run a full generation and persist the results.

    Args:
        catalog: Loaded catalog.
        metrics: Sales metrics for the catalog.
        settings_store: Scoring configuration.
        store: Destination of the generated lists.
        options: Run options; defaults when omitted.
        time_budget_seconds: Scoring time budget per variant.

    Returns:
        The final run status.

    Raises:
        Exception: Whatever failed the run, after the failure was recorded.
    """
    options = options or GenerationOptions()
    status: Dict[str, Any] = {
        "status": STATUS_RUNNING,
        "started_at": _now(),
        "ended_at": None,
        "message": None,
        "options": asdict(options),
        "variants": 0,
        "products": 0,
        "related": 0,
        "recommended": 0,
    }
    store.save_run_status(status)

    start_time = time.time()
    logger.info("Starting recommendation generation", extra={"options": status["options"]})

    try:
        processed = 0
        if not options.skip_variants:
            recommender = VariantRecommender(catalog, metrics, settings_store, time_budget_seconds)
            for variant in catalog.variants():
                rebuild_for_variant(variant, recommender, store, options)
                processed += 1
                if processed % options.chunk == 0:
                    logger.info(f"Processed {processed}/{catalog.num_variants} variants")

        builder = ProductRecommendationBuilder(catalog, metrics)
        product_records, product_stats = builder.rebuild(options.product_limit, options.exclude_keywords)
        store.replace_product_recommendations(product_records)
        store.save()

        status.update(
            {
                "status": STATUS_COMPLETED,
                "ended_at": _now(),
                "message": (
                    f"Generated recommendations for {processed} variants "
                    f"and {product_stats['products']} products."
                ),
                "variants": processed,
                **product_stats,
            }
        )
    except Exception as e:
        status.update({"status": STATUS_FAILED, "ended_at": _now(), "message": str(e)})
        store.save_run_status(status)
        logger.error(f"Recommendation generation failed: {e}", exc_info=True)
        raise

    store.save_run_status(status)
    logger.info(
        status["message"],
        extra={"duration_ms": round((time.time() - start_time) * 1000, 2)},
    )
    return status


class RecommendationScheduler:
    """Runs a generation callable periodically in a background thread."""

    def __init__(self, job: Callable[[], Any], interval_minutes: int):
        self.job = job
        self.interval_minutes = interval_minutes
        self.scheduler = BackgroundScheduler(
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 60}
        )

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def _run(self) -> None:
        try:
            self.job()
        except Exception as e:
            logger.error(f"Scheduled recommendation generation failed: {e}")

    def start(self) -> bool:
        """Start the schedule; a non-positive interval leaves it disabled."""
        if self.interval_minutes <= 0:
            logger.info("Recommendation scheduler disabled")
            return False

        if not self.scheduler.running:
            self.scheduler.add_job(
                self._run,
                "interval",
                minutes=self.interval_minutes,
                id=JOB_ID,
                name="Generate inventory recommendations",
                replace_existing=True,
            )
            self.scheduler.start()
            logger.info(f"Recommendation scheduler started, every {self.interval_minutes} minutes")
        return True

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Recommendation scheduler stopped")
