"""Loaded catalog, metrics and stored recommendations shared by the routes.

The state is loaded lazily on first use and cached at module level until
``reset_state`` is called (see ``POST /recommend/reload``).
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from invrec.api.exceptions import CatalogLoadError, CatalogNotFoundError
from invrec.config import Settings, get_settings
from invrec.recommender.catalog import Catalog, load_catalog
from invrec.recommender.metrics import (
    CurrencyConverter,
    MetricsRepository,
    OrderStatusFilter,
    compute_variant_metrics,
    load_orders,
)
from invrec.recommender.scoring import VariantRecommender
from invrec.recommender.settings import SettingsStore
from invrec.recommender.store import RecommendationStore

# Configure module logger
logger = logging.getLogger(__name__)

_state_lock = threading.RLock()
_state: Optional["RecommendationState"] = None
_settings_store: Optional[SettingsStore] = None


class RecommendationState:
    """Everything a request needs to serve recommendations."""

    def __init__(
        self,
        settings: Settings,
        catalog: Catalog,
        metrics: MetricsRepository,
        settings_store: SettingsStore,
        store: RecommendationStore,
    ):
        self.settings = settings
        self.catalog = catalog
        self.metrics = metrics
        self.settings_store = settings_store
        self.store = store
        self.loaded_at = datetime.now(timezone.utc)
        self.recommendations_loaded = False

    @classmethod
    def load(cls, settings: Settings, settings_store: Optional[SettingsStore] = None) -> "RecommendationState":
        """Load catalog, orders and stored recommendations from the data directory.

        Missing orders leave every variant without metrics; missing
        recommendation artifacts leave the store empty.

        Raises:
            CatalogNotFoundError: If the catalog file does not exist.
            CatalogLoadError: If the catalog or orders cannot be parsed.
        """
        catalog_path = settings.catalog_path
        if not catalog_path.exists():
            raise CatalogNotFoundError(str(catalog_path))

        try:
            catalog = load_catalog(catalog_path)
        except ValueError as e:
            raise CatalogLoadError(str(catalog_path), e) from e

        converter = CurrencyConverter(settings.BASE_CURRENCY, settings.EXCHANGE_RATES)
        if settings.orders_path.exists():
            try:
                orders = load_orders(settings.orders_path)
            except ValueError as e:
                raise CatalogLoadError(str(settings.orders_path), e) from e
            variant_metrics = compute_variant_metrics(
                orders,
                catalog,
                status_filter=OrderStatusFilter(settings.COMPLETED_STATUSES, settings.EXCLUDED_STATUSES),
            )
        else:
            logger.warning(f"Orders file not found at {settings.orders_path}, sales metrics are empty")
            variant_metrics = {}

        state = cls(
            settings=settings,
            catalog=catalog,
            metrics=MetricsRepository(catalog, variant_metrics, converter),
            settings_store=settings_store or SettingsStore(settings.settings_path),
            store=RecommendationStore(settings.recommendations_path),
        )

        if state.store.exists():
            state.store.load()
            state.recommendations_loaded = True

        logger.info(
            "Recommendation state loaded",
            extra={
                "num_products": len(catalog),
                "num_variants": catalog.num_variants,
                "recommendations_loaded": state.recommendations_loaded,
            },
        )
        return state

    def recommender(self) -> VariantRecommender:
        return VariantRecommender(
            self.catalog,
            self.metrics,
            self.settings_store,
            self.settings.TIME_BUDGET_SECONDS,
        )


def get_settings_store() -> SettingsStore:
    """FastAPI dependency: the recommendation settings store."""
    global _settings_store
    with _state_lock:
        if _settings_store is None:
            _settings_store = SettingsStore(get_settings().settings_path)
        return _settings_store


def get_state() -> RecommendationState:
    """FastAPI dependency: the loaded recommendation state."""
    global _state
    with _state_lock:
        if _state is None:
            _state = RecommendationState.load(get_settings(), get_settings_store())
        return _state


def peek_state() -> Optional[RecommendationState]:
    """The loaded state, without triggering a load."""
    return _state


def reset_state() -> None:
    """Drop the cached state so the next request reloads it."""
    global _state, _settings_store
    with _state_lock:
        _state = None
        _settings_store = None
