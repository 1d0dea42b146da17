"""Tests for the product-level related and recommended lists."""

import math

import numpy as np
import pytest

from invrec.recommender.catalog import Catalog, Product, Variant
from invrec.recommender.products import (
    TYPE_RECOMMENDED,
    TYPE_RELATED,
    FeatureValues,
    ProductRecommendationBuilder,
    collect_categories,
    collect_inspiration,
    extract_brand,
    sales_bonus,
    sales_score,
    shared_counts,
)


@pytest.fixture
def records(catalog, metrics_repo):
    builder = ProductRecommendationBuilder(catalog, metrics_repo)
    records, _ = builder.rebuild(limit=10, exclude_keywords=["tester"])
    return records


def _list(records, product_id, type_):
    entries = [r for r in records if r["product_id"] == product_id and r["type"] == type_]
    return sorted(entries, key=lambda r: r["position"])


def _bonus(score):
    return 25.0 * math.log1p(score)


def test_sales_score_and_bonus():
    assert sales_score(3, 5, 5) == 17.0
    np.testing.assert_allclose(sales_bonus(np.array([0.0, -2.0, 17.0])), [0.0, 0.0, _bonus(17.0)])


def test_shared_counts():
    """Pairwise shared values come from the incidence matrix product."""
    counts = shared_counts([["A", "B"], ["B"], [], ["A", "B", "C"]]).toarray()

    assert counts[0].tolist() == [2, 1, 0, 2]
    assert counts[2].tolist() == [0, 0, 0, 0]
    assert shared_counts([[], []]).toarray().tolist() == [[0, 0], [0, 0]]


def test_feature_values_dedupe_on_normalized_key():
    values = FeatureValues.from_raw(["Růže", "RUZE", " ", None, "Vanilka", "Růže"])

    assert values.values == ["Růže", "RUZE", "Vanilka"]
    assert values.normalized == ["RUZE", "VANILKA"]
    assert values.lookup["RUZE"] == "Růže"


def test_extract_brand_resolution_order():
    """Brand filter, then payload brand, then hub brand, then variant brand."""
    variant = Variant(id="v-x", product_id="p-x", brand="Variant Brand")

    def product(**payload):
        return Product(id="p-x", base_payload=payload, variants=[variant])

    assert extract_brand(product(filteringParameters=[{"code": "znacka", "values": ["Filtr"]}])) == "Filtr"
    assert extract_brand(product(brand={"name": "Payload"})) == "Payload"
    assert extract_brand(product(_hub={"brand": "Hub"})) == "Hub"
    assert extract_brand(product()) == "Variant Brand"
    hub_filter = {"suggestedFilters": {"filteringParameters": [{"name": "Značka", "values": [{"name": "Hub F"}]}]}}
    assert extract_brand(product(brand="Payload", _hub=hub_filter)) == "Hub F"


def test_collect_inspiration_and_categories():
    product = Product(
        id="p-x",
        base_payload={
            "descriptiveParameters": [{"name": "Inspirováno", "values": [{"value": "Chanel Coco"}]}],
            "categories": [{"name": "Parfémy"}, "Dámské"],
            "defaultCategory": {"name": "Parfémy"},
        },
        overlays=[{"filteringParameters": [{"name": "Kategorie", "values": ["Novinky"]}]}],
    )

    assert collect_inspiration(product).normalized == ["CHANEL COCO"]
    assert collect_categories(product).values == ["Parfémy", "Dámské", "Novinky"]


def test_related_list(records):
    """Products sharing inspiration, ordered by the sales bonus."""
    related = _list(records, "p-1", TYPE_RELATED)

    assert [r["recommended_product_id"] for r in related] == ["p-2", "p-7", "p-4"]
    assert [r["position"] for r in related] == [0, 1, 2]
    assert related[0]["score"] == pytest.approx(500.0 + _bonus(17.0))
    assert related[1]["score"] == pytest.approx(500.0 + _bonus(9.2))
    assert related[2]["score"] == pytest.approx(500.0)
    assert related[0]["recommended_variant_id"] == "v-2"
    assert related[0]["matches"] == {"inspiration": ["Chanel Coco"]}


def test_recommended_list_requires_shared_feature(records):
    """Products sharing inspiration are excluded; a feature must be shared."""
    recommended = _list(records, "p-1", TYPE_RECOMMENDED)

    assert [r["recommended_product_id"] for r in recommended] == ["p-3"]
    assert recommended[0]["score"] == pytest.approx(400.0 + 120.0)
    assert recommended[0]["matches"] == {
        "brand": "Kvetná",
        "dominant_ingredients": ["Vanilka"],
        "fragrance_types": [],
        "seasons": [],
        "categories": [],
    }


def test_recommended_brand_matches_capped(catalog, metrics_repo):
    """At most three same-brand products, the rest filled by others."""
    builder = ProductRecommendationBuilder(catalog, metrics_repo)
    records, _ = builder.rebuild(limit=4, exclude_keywords=["tester"])

    recommended = _list(records, "p-5", TYPE_RECOMMENDED)

    assert [r["recommended_product_id"] for r in recommended] == ["p-1", "p-3", "p-4", "p-2"]
    assert [r["matches"]["brand"] for r in recommended] == ["Kvetná", "Kvetná", "Kvetná", None]


def test_unknown_brands_never_match(records):
    """Two products without a brand do not count as a brand match."""
    recommended = _list(records, "p-7", TYPE_RECOMMENDED)

    assert [r["recommended_product_id"] for r in recommended] == ["p-3", "p-5"]
    assert all(r["matches"]["brand"] is None for r in recommended)
    assert all(r["score"] < 400.0 for r in recommended)


def test_exclude_keywords_drop_products(catalog, metrics_repo):
    builder = ProductRecommendationBuilder(catalog, metrics_repo)

    _, with_tester = builder.rebuild(exclude_keywords=[])
    records, stats = builder.rebuild(exclude_keywords=["Tester"])

    assert with_tester["products"] == 7
    assert stats["products"] == 6
    assert all("p-6" not in (r["product_id"], r["recommended_product_id"]) for r in records)
    assert stats["related"] == len([r for r in records if r["type"] == TYPE_RELATED])


def test_display_variant_prefers_sales_then_stock(catalog, metrics_repo):
    """Without sales, the variant with more stock represents the product."""
    builder = ProductRecommendationBuilder(catalog, metrics_repo)
    contexts = {c.product_id: c for c in builder.collect_contexts()}

    assert contexts["p-3"].variant["id"] == "v-3b"
    assert contexts["p-2"].sales_score == 17.0


def test_empty_catalog(metrics_repo):
    builder = ProductRecommendationBuilder(Catalog([]), metrics_repo)

    assert builder.rebuild() == ([], {"products": 0, "related": 0, "recommended": 0})
