"""Sales metrics per variant and shop.

Aggregates completed order items into lifetime / last 30 days / last 90 days
windows, derives average daily sales and stock runway, and summarizes a
variant across shops for the recommenders.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import pandas as pd

from invrec.recommender.catalog import Catalog, Variant

# Configure module logger
logger = logging.getLogger(__name__)

REQUIRED_ORDER_COLUMNS = [
    "order_id",
    "shop_id",
    "ordered_at",
    "status",
    "code",
    "amount",
    "price_with_vat",
]

SALES_WINDOWS = {"last_30": 30, "last_90": 90}
AVERAGE_SALES_DAYS = 30


class CurrencyConverter:
    """Converts amounts to the base currency with fixed rates."""

    def __init__(self, base_currency: str, rates: Optional[Dict[str, float]] = None):
        self.base_currency = base_currency.upper()
        self.rates = {
            code.upper(): float(rate)
            for code, rate in (rates or {}).items()
            if isinstance(code, str)
        }
        self.rates[self.base_currency] = 1.0

    def normalize_currency(self, currency: Optional[str]) -> Optional[str]:
        return currency.upper() if currency else None

    def convert_to_base(self, amount: Optional[float], currency: Optional[str]) -> Optional[float]:
        """Convert to the base currency, or ``None`` when no rate is known."""
        if amount is None:
            return None

        source = self.normalize_currency(currency) or self.base_currency
        if source == self.base_currency:
            return round(amount, 2)

        rate = self.rates.get(source)
        if rate is None or rate <= 0:
            return None

        return round(amount * rate, 2)


class OrderStatusFilter:
    """Decides which order statuses count as completed sales.

    With an explicit ``completed`` list only those statuses count; otherwise
    everything except the ``excluded`` statuses counts.
    """

    def __init__(self, completed: Iterable[str] = (), excluded: Iterable[str] = ()):
        self.completed = self._normalise(completed)
        self.excluded = self._normalise(excluded)

    @staticmethod
    def _normalise(values: Iterable[str]) -> List[str]:
        result = []
        for value in values:
            if isinstance(value, str) and value.strip() and value.strip() not in result:
                result.append(value.strip())
        return result

    def apply(self, orders: pd.DataFrame, column: str = "status") -> pd.DataFrame:
        if self.completed:
            return orders[orders[column].isin(self.completed)]
        if self.excluded:
            return orders[~orders[column].isin(self.excluded)]
        return orders


@dataclass
class VariantMetric:
    """Sales metrics of one variant in one shop."""

    variant_id: str
    shop_id: int
    lifetime_orders_count: int = 0
    lifetime_quantity: float = 0.0
    lifetime_revenue: float = 0.0
    last_30_orders_count: int = 0
    last_30_quantity: float = 0.0
    last_30_revenue: float = 0.0
    last_90_orders_count: int = 0
    last_90_quantity: float = 0.0
    last_90_revenue: float = 0.0
    average_daily_sales: float = 0.0
    stock_runway_days: Optional[float] = None
    last_sale_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def stock_runway(stock: Optional[float], average_daily_sales: float) -> Optional[float]:
    """Days of stock left at the current sales pace."""
    stock = float(stock or 0.0)
    if average_daily_sales > 0 and stock > 0:
        return stock / average_daily_sales
    return None


def load_orders(path: Union[str, Path]) -> pd.DataFrame:
    """Load order items from CSV.

    Args:
        path: CSV with columns order_id, shop_id, ordered_at, status, code,
            amount, price_with_vat.

    Returns:
        DataFrame with ``ordered_at`` parsed as UTC timestamps.

    Raises:
        FileNotFoundError: If the CSV file does not exist.
        ValueError: If required columns are missing.
    """
    csv_file = Path(path)
    if not csv_file.exists():
        raise FileNotFoundError(f"Orders file not found: {path}")

    logger.info(f"Loading orders from {path}")
    df = pd.read_csv(csv_file, dtype={"order_id": str, "code": str, "status": str})

    missing = set(REQUIRED_ORDER_COLUMNS) - set(df.columns)
    if missing:
        raise ValueError(f"Orders CSV missing required columns: {sorted(missing)}")

    df["ordered_at"] = pd.to_datetime(df["ordered_at"], utc=True, errors="coerce")
    df["amount"] = pd.to_numeric(df["amount"], errors="coerce").fillna(0.0)
    df["price_with_vat"] = pd.to_numeric(df["price_with_vat"], errors="coerce").fillna(0.0)

    logger.info(f"Loaded {len(df)} order item records")
    return df


def _aggregate_window(orders: pd.DataFrame) -> pd.DataFrame:
    return orders.groupby(["code", "shop_id"]).agg(
        orders_count=("order_id", "nunique"),
        quantity=("amount", "sum"),
        revenue=("price_with_vat", "sum"),
    )


def compute_variant_metrics(
    orders: pd.DataFrame,
    catalog: Catalog,
    now: Optional[datetime] = None,
    status_filter: Optional[OrderStatusFilter] = None,
) -> Dict[str, Dict[int, VariantMetric]]:
    """Aggregate order items into per-variant, per-shop metrics.

    Order items are matched to variants by variant code.

    Returns:
        Mapping ``variant_id -> shop_id -> VariantMetric``.
    """
    now_ts = pd.Timestamp(now) if now is not None else pd.Timestamp.now(tz="UTC")
    if now_ts.tzinfo is None:
        now_ts = now_ts.tz_localize("UTC")

    variants_by_code: Dict[str, List[Variant]] = {}
    for variant in catalog.variants():
        if variant.code:
            variants_by_code.setdefault(variant.code, []).append(variant)

    if status_filter is not None:
        orders = status_filter.apply(orders)
    orders = orders[orders["code"].isin(variants_by_code.keys())]

    if orders.empty:
        logger.info("No completed order items match catalog variants")
        return {}

    windows = {"lifetime": _aggregate_window(orders)}
    for window, days in SALES_WINDOWS.items():
        recent = orders[orders["ordered_at"] >= now_ts - pd.Timedelta(days=days)]
        windows[window] = _aggregate_window(recent)

    summary = pd.concat(windows, axis=1).fillna(0)
    summary.columns = [f"{window}_{metric}" for window, metric in summary.columns]
    summary["last_sale_at"] = orders.groupby(["code", "shop_id"])["ordered_at"].max()

    updated_at = now_ts.to_pydatetime()
    result: Dict[str, Dict[int, VariantMetric]] = {}

    for row in summary.reset_index().to_dict("records"):
        last_sale_at = row["last_sale_at"]
        last_30_quantity = float(row["last_30_quantity"])
        average_daily_sales = (
            last_30_quantity / AVERAGE_SALES_DAYS if last_30_quantity > 0 else 0.0
        )

        for variant in variants_by_code[row["code"]]:
            shop_id = int(row["shop_id"])
            result.setdefault(variant.id, {})[shop_id] = VariantMetric(
                variant_id=variant.id,
                shop_id=shop_id,
                lifetime_orders_count=int(row["lifetime_orders_count"]),
                lifetime_quantity=float(row["lifetime_quantity"]),
                lifetime_revenue=float(row["lifetime_revenue"]),
                last_30_orders_count=int(row["last_30_orders_count"]),
                last_30_quantity=last_30_quantity,
                last_30_revenue=float(row["last_30_revenue"]),
                last_90_orders_count=int(row["last_90_orders_count"]),
                last_90_quantity=float(row["last_90_quantity"]),
                last_90_revenue=float(row["last_90_revenue"]),
                average_daily_sales=average_daily_sales,
                stock_runway_days=stock_runway(variant.stock, average_daily_sales),
                last_sale_at=None if pd.isna(last_sale_at) else last_sale_at.to_pydatetime(),
                updated_at=updated_at,
            )

    logger.info(
        "Computed variant metrics",
        extra={"num_variants": len(result), "num_order_items": len(orders)},
    )
    return result


def _empty_summary(currency_code: Optional[str]) -> Dict:
    return {
        "lifetime_orders_count": 0,
        "lifetime_quantity": 0.0,
        "lifetime_revenue": 0.0,
        "last_30_orders_count": 0,
        "last_30_quantity": 0.0,
        "last_30_revenue": 0.0,
        "last_90_orders_count": 0,
        "last_90_quantity": 0.0,
        "last_90_revenue": 0.0,
        "average_daily_sales": 0.0,
        "stock_runway_days": None,
        "last_sale_at": None,
        "metrics_updated_at": None,
        "currency_code": currency_code,
    }


class MetricsRepository:
    """Read access to computed metrics for the recommenders."""

    def __init__(
        self,
        catalog: Catalog,
        metrics: Optional[Dict[str, Dict[int, VariantMetric]]] = None,
        converter: Optional[CurrencyConverter] = None,
    ):
        self.catalog = catalog
        self.metrics = metrics or {}
        self.converter = converter or CurrencyConverter("CZK")

    def _currency_for(self, variant: Variant, shop_id: Optional[int] = None) -> Optional[str]:
        product = self.catalog.product_for(variant)
        return (
            self.catalog.shop_currency(shop_id)
            or (self.catalog.shop_currency(product.shop_id) if product else None)
            or variant.currency_code
        )

    def by_shop(self, variant: Variant) -> List[VariantMetric]:
        return list(self.metrics.get(variant.id, {}).values())

    def summarize(self, variant: Variant, shop_ids: Optional[Iterable[int]] = None) -> Dict:
        """Aggregate a variant's metrics over shops.

        Revenue stays in the shop currency when all shops share one;
        otherwise every shop's revenue is converted to the base currency.
        """
        metrics = self.by_shop(variant)
        if shop_ids:
            wanted = set(shop_ids)
            metrics = [m for m in metrics if m.shop_id in wanted]

        if not metrics:
            return _empty_summary(self._currency_for(variant))

        counts = {
            "lifetime_orders_count": 0,
            "lifetime_quantity": 0.0,
            "last_30_orders_count": 0,
            "last_30_quantity": 0.0,
            "last_90_orders_count": 0,
            "last_90_quantity": 0.0,
        }
        revenue_keys = ("lifetime_revenue", "last_30_revenue", "last_90_revenue")
        currency_totals: Dict[str, Dict[str, float]] = {}
        last_sale_at = None
        updated_at = None

        for metric in metrics:
            currency = self._currency_for(variant, metric.shop_id) or self.converter.base_currency
            totals = currency_totals.setdefault(currency, dict.fromkeys(revenue_keys, 0.0))
            for key in revenue_keys:
                totals[key] += getattr(metric, key)
            for key in counts:
                counts[key] += getattr(metric, key)

            if metric.last_sale_at and (last_sale_at is None or metric.last_sale_at > last_sale_at):
                last_sale_at = metric.last_sale_at
            if metric.updated_at and (updated_at is None or metric.updated_at > updated_at):
                updated_at = metric.updated_at

        if len(currency_totals) == 1:
            currency, financial = next(iter(currency_totals.items()))
        else:
            currency = self.converter.base_currency
            financial = dict.fromkeys(revenue_keys, 0.0)
            for source, totals in currency_totals.items():
                for key in revenue_keys:
                    financial[key] += self.converter.convert_to_base(totals[key], source) or 0.0

        average_daily_sales = (
            counts["last_30_quantity"] / AVERAGE_SALES_DAYS if counts["last_30_quantity"] > 0 else 0.0
        )

        return {
            **counts,
            **{key: float(financial[key]) for key in revenue_keys},
            "average_daily_sales": average_daily_sales,
            "stock_runway_days": stock_runway(variant.stock, average_daily_sales),
            "last_sale_at": last_sale_at,
            "metrics_updated_at": updated_at,
            "currency_code": currency,
        }

    def sales_totals(self) -> Dict[str, Dict[str, float]]:
        """Per-variant quantity sums over all shops."""
        totals = {}
        for variant_id, per_shop in self.metrics.items():
            totals[variant_id] = {
                "last_30_quantity": sum(m.last_30_quantity for m in per_shop.values()),
                "last_90_quantity": sum(m.last_90_quantity for m in per_shop.values()),
                "lifetime_quantity": sum(m.lifetime_quantity for m in per_shop.values()),
            }
        return totals

    def to_records(self) -> List[Dict]:
        """Flat list of metric rows, e.g. for export."""
        return [asdict(m) for per_shop in self.metrics.values() for m in per_shop.values()]
