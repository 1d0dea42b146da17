"""Shared fixtures: a small two-shop perfume catalog and its order history.

Shop 1 (CZK) holds the interesting products:

* p-1 / v-1 (KV001)  Kvetná perfume inspired by "Chanel Coco", base variant
* p-2 / v-2 (KV002)  Lumière perfume, same inspiration, unisex, best seller
* p-3 / v-3, v-3b    Kvetná perfume inspired by "Dior Sauvage", linked from p-1
* p-4 / v-4 (KV004)  Kvetná laundry scent inspired by "Chanel Coco"
* p-5 / v-5 (KV005)  gift set containing p-1 and p-3
* p-6 / v-6 (KV006)  Kvetná tester inspired by "Chanel Coco"

Shop 2 (EUR) holds p-7 / v-7, another "Chanel Coco" product without brand.
"""

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import invrec.api.state as state_module
from invrec.api.metrics import metrics_service
from invrec.api.state import RecommendationState
from invrec.config import Settings
from invrec.recommender.catalog import catalog_from_dict
from invrec.recommender.metrics import (
    CurrencyConverter,
    MetricsRepository,
    OrderStatusFilter,
    compute_variant_metrics,
)
from invrec.recommender.settings import SettingsStore

NOW = datetime.now(timezone.utc)


def filter_param(name: str, *values: str) -> Dict[str, Any]:
    return {"name": name, "values": [{"name": value} for value in values]}


def inspiration(value: str) -> Dict[str, Any]:
    return {"name": "Inspirováno", "value": value, "priority": 1}


def make_product(
    index: int,
    name: str,
    variants: List[Dict[str, Any]],
    shop_id: int = 1,
    descriptors: Optional[List[Dict[str, Any]]] = None,
    filters: Optional[List[Dict[str, Any]]] = None,
    **payload: Any,
) -> Dict[str, Any]:
    return {
        "id": f"p-{index}",
        "external_guid": f"guid-{index}",
        "shop_id": shop_id,
        "status": "visible",
        "base_payload": {
            "name": name,
            "descriptiveParameters": descriptors or [],
            "filteringParameters": filters or [],
            **payload,
        },
        "variants": variants,
    }


def make_variant(variant_id: str, code: str, name: str, stock: float, brand: Optional[str] = "Kvetná", **extra):
    return {
        "id": variant_id,
        "code": code,
        "name": name,
        "brand": brand,
        "price": extra.pop("price", 449.0),
        "currency_code": extra.pop("currency_code", "CZK"),
        "stock": stock,
        "data": extra.pop("data", {}),
        **extra,
    }


def build_catalog_document() -> Dict[str, Any]:
    products = [
        make_product(
            1,
            "Kvetná Parfémovaná voda Coco",
            [make_variant("v-1", "KV001", "Kvetná Parfémovaná voda Coco 50 ml", 5)],
            descriptors=[inspiration("Chanel Coco")],
            filters=[
                filter_param("Značka", "Kvetná"),
                filter_param("Pohlaví", "Dámské"),
                filter_param("Druh vůně", "Květinová"),
                filter_param("Dominantní ingredience", "Vanilka", "Růže"),
            ],
            relatedProducts=[{"guid": "guid-3", "linkType": "physical", "priority": 1}],
        ),
        make_product(
            2,
            "Lumière Parfémovaná voda Coco",
            [
                make_variant(
                    "v-2",
                    "KV002",
                    "Lumière Parfémovaná voda Coco 50 ml",
                    3,
                    brand="Lumière",
                    data={"url": "https://example.cz/lumiere-coco/", "image_url": "https://cdn.example.cz/v-2.jpg"},
                )
            ],
            descriptors=[inspiration("Chanel Coco")],
            filters=[
                filter_param("Značka", "Lumière"),
                filter_param("Pohlaví", "Unisex"),
                filter_param("Druh vůně", "Květinová"),
            ],
        ),
        make_product(
            3,
            "Kvetná Parfémovaná voda Sauvage",
            [
                make_variant("v-3", "KV003", "Kvetná Parfémovaná voda Sauvage 30 ml", 0),
                make_variant("v-3b", "KV003B", "Kvetná Parfémovaná voda Sauvage 100 ml", 2),
            ],
            descriptors=[inspiration("Dior Sauvage")],
            filters=[
                filter_param("Značka", "Kvetná"),
                filter_param("Pohlaví", "Pánské"),
                filter_param("Dominantní ingredience", "Vanilka"),
            ],
        ),
        make_product(
            4,
            "Kvetná Parfém do praní Coco",
            [make_variant("v-4", "KV004", "Kvetná Parfém do praní Coco 200 ml", 10)],
            descriptors=[inspiration("Chanel Coco")],
            filters=[filter_param("Značka", "Kvetná"), filter_param("Typ prací vůně", "Aviváž")],
        ),
        make_product(
            5,
            "Kvetná Dárková sada",
            [make_variant("v-5", "KV005", "Kvetná Dárková sada", 1)],
            filters=[filter_param("Značka", "Kvetná")],
            setItems=[{"guid": "guid-1", "amount": 1}, {"guid": "guid-3", "amount": 1}],
        ),
        make_product(
            6,
            "Kvetná Parfémovaná voda Coco tester",
            [make_variant("v-6", "KV006", "Kvetná Parfémovaná voda Coco tester", 4)],
            descriptors=[inspiration("Chanel Coco")],
        ),
        make_product(
            7,
            "Eau de parfum Coco",
            [make_variant("v-7", "KV007", "Eau de parfum Coco 50 ml", 5, brand=None, currency_code="EUR")],
            shop_id=2,
            descriptors=[inspiration("Chanel Coco")],
        ),
    ]
    return {
        "shops": [{"id": 1, "currency_code": "CZK"}, {"id": 2, "currency_code": "EUR"}],
        "products": products,
    }


def order(order_id: str, days_ago: int, code: str, amount: float, price: float, status="completed", shop_id=1):
    return {
        "order_id": order_id,
        "shop_id": shop_id,
        "ordered_at": NOW - timedelta(days=days_ago),
        "status": status,
        "code": code,
        "amount": amount,
        "price_with_vat": price,
    }


def build_orders_frame() -> pd.DataFrame:
    return pd.DataFrame(
        [
            order("O1", 20, "KV002", 3, 1347.0),
            order("O2", 60, "KV002", 2, 898.0),
            order("O3", 5, "KV002", 5, 2245.0, status="cancelled"),
            order("O4", 100, "KV001", 1, 449.0),
            order("O5", 10, "KV007", 2, 40.0, shop_id=2),
        ]
    )


@pytest.fixture
def catalog_document() -> Dict[str, Any]:
    return build_catalog_document()


@pytest.fixture
def catalog(catalog_document):
    return catalog_from_dict(catalog_document)


@pytest.fixture
def orders_frame() -> pd.DataFrame:
    return build_orders_frame()


@pytest.fixture
def metrics_repo(catalog, orders_frame) -> MetricsRepository:
    variant_metrics = compute_variant_metrics(
        orders_frame,
        catalog,
        now=NOW,
        status_filter=OrderStatusFilter(excluded=["cancelled", "returned"]),
    )
    return MetricsRepository(catalog, variant_metrics, CurrencyConverter("CZK", {"EUR": 25.0}))


@pytest.fixture
def settings_store() -> SettingsStore:
    """In-memory store with the default configuration."""
    return SettingsStore(None)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Data directory with catalog.json and orders.csv."""
    with (tmp_path / "catalog.json").open("w", encoding="utf-8") as fh:
        json.dump(build_catalog_document(), fh, ensure_ascii=False)

    orders = build_orders_frame()
    orders["ordered_at"] = orders["ordered_at"].map(lambda ts: ts.isoformat())
    orders.to_csv(tmp_path / "orders.csv", index=False)
    return tmp_path


@pytest.fixture
def api_settings(data_dir, monkeypatch) -> Settings:
    """Settings pointing at the fixture data; reloads read them too."""
    settings = Settings(DATA_DIR=str(data_dir))
    monkeypatch.setattr(state_module, "get_settings", lambda: settings)
    monkeypatch.setattr(state_module, "_state", None)
    monkeypatch.setattr(state_module, "_settings_store", None)
    metrics_service.reset()
    return settings


@pytest.fixture
def api_state(api_settings) -> RecommendationState:
    """Loaded state installed as the API's cached state."""
    return state_module.get_state()
