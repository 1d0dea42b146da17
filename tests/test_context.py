"""Tests for text normalization and payload context extraction."""

from invrec.recommender.catalog import Product, Variant
from invrec.recommender.context import (
    build_variant_context,
    extract_filter_parameters,
    extract_related_descriptors,
    extract_set_items,
    is_fragrance_context,
)
from invrec.recommender.text import (
    contains_keyword,
    normalize_key,
    normalize_keywords,
    slugify,
    split_values,
    to_ascii,
)


def _product(**payload) -> Product:
    return Product(id="p-x", external_guid="guid-x", shop_id=1, base_payload=payload)


def test_slugify_folds_czech_names():
    """Filter names become ASCII slugs."""
    assert slugify("Dominantní ingredience") == "dominantni-ingredience"
    assert slugify("Značka") == "znacka"
    assert slugify("  Roční   období! ") == "rocni-obdobi"
    assert slugify(None) == ""


def test_normalize_key():
    """Keys are trimmed, ASCII-folded and upper-cased."""
    assert normalize_key(" Chanel Coco ") == "CHANEL COCO"
    assert normalize_key("Růže") == "RUZE"
    assert normalize_key("   ") is None
    assert normalize_key(42) is None
    assert to_ascii("Lumière") == "Lumiere"


def test_split_values():
    """Free-text values split on commas, semicolons and newlines."""
    assert split_values("Vanilka, Růže;Pižmo\nJasmín ,") == ["Vanilka", "Růže", "Pižmo", "Jasmín"]


def test_contains_keyword():
    """Keyword search is a case-insensitive substring test over strings only."""
    keywords = normalize_keywords([" Tester ", "", None, "bez víčka"])
    assert keywords == ["tester", "bez víčka"]
    assert contains_keyword(["Coco TESTER 50 ml"], keywords)
    assert contains_keyword([None, 12, "Parfém bez víčka"], keywords)
    assert not contains_keyword(["Coco 50 ml"], keywords)
    assert not contains_keyword(["tester"], [])


def test_descriptors_merge_and_sort_by_priority():
    """Duplicate descriptor values keep the lowest priority and first description."""
    product = _product(
        descriptiveParameters=[
            {"name": "Inspirováno", "value": "Dior Sauvage, Chanel Coco", "priority": 5},
            {"name": "Inspirováno", "values": [{"value": "Chanel Coco"}], "priority": 1, "description": "Klasika"},
            {"name": "Podobné", "values": ["Lancôme Idôle"]},
            {"name": "Objem", "value": "50 ml"},
        ]
    )

    values, items = extract_related_descriptors(product)

    assert values["inspired"] == ["Dior Sauvage", "Chanel Coco"]
    assert values["similar"] == ["Lancôme Idôle"]
    assert [item["value"] for item in items["inspired"]] == ["Chanel Coco", "Dior Sauvage"]
    assert items["inspired"][0]["priority"] == 1
    assert items["inspired"][0]["description"] == "Klasika"
    assert items["similar"][0]["priority"] is None


def test_filter_parameters_keyed_by_slug():
    """Filters fall back to displayName, then to a generic name; empty filters are dropped."""
    product = _product(
        filteringParameters=[
            {"name": "Druh vůně", "values": [{"name": "Květinová"}, {"displayName": "Dřevitá"}]},
            {"displayName": "Pohlaví", "values": [{"name": "Dámské"}]},
            {"values": [{"value": "X"}]},
            {"name": "Prázdný", "values": []},
        ]
    )

    filters = extract_filter_parameters(product)

    assert set(filters) == {"druh-vune", "pohlavi", "parametr"}
    assert filters["druh-vune"]["values"] == ["Květinová", "Dřevitá"]
    assert filters["pohlavi"]["name"] == "Pohlaví"


def test_build_variant_context(catalog):
    """Context bundles descriptors, filters, related links and price."""
    variant = catalog.get_variant("v-1")
    context = build_variant_context(variant, catalog.product_for(variant))

    assert context.inspiration == ["Chanel Coco"]
    assert context.filter_parameters["znacka"]["values"] == ["Kvetná"]
    assert context.related_products == [
        {"guid": "guid-3", "link_type": "physical", "priority": 1, "visibility": None}
    ]
    assert context.base_price == 449.0


def test_extract_set_items():
    """Set items keep guid, code and numeric amount."""
    product = _product(setItems=[{"guid": "guid-1", "amount": 2}, {"code": "KV003", "amount": True}, "junk"])

    assert extract_set_items(product) == [
        {"guid": "guid-1", "code": None, "amount": 2.0},
        {"guid": None, "code": "KV003", "amount": None},
    ]


def test_is_fragrance_context(catalog):
    """Scent filters and perfume wording mark fragrances, laundry wording does not."""
    for variant_id, expected in (("v-2", True), ("v-4", False), ("v-6", True)):
        variant = catalog.get_variant(variant_id)
        product = catalog.product_for(variant)
        context = build_variant_context(variant, product)
        assert is_fragrance_context(context, variant, product) is expected, variant_id


def test_is_fragrance_context_concentration_abbreviation():
    """EDT/EDP in a name counts as a fragrance."""
    variant = Variant(id="v-x", product_id="p-x", name="Coco EDT 100 ml")
    context = build_variant_context(variant, _product(name="Coco"))

    assert is_fragrance_context(context, variant, None)
    assert not is_fragrance_context(context)
