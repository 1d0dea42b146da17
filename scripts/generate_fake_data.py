"""Generate a fake catalog and order history for development.

Writes ``catalog.json`` in the Shoptet export shape (products with
descriptive/filtering parameters, related products and variants) and
``orders.csv`` with order items for the sales metrics.

Example:
    Run the script directly to generate default data:
        $ python scripts/generate_fake_data.py

    Or import and use programmatically:
        from scripts.generate_fake_data import generate_fake_catalog
        catalog = generate_fake_catalog(num_products=20)
"""

import json
import random
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

# Default configuration constants
DEFAULT_NUM_PRODUCTS = 60
DEFAULT_NUM_ORDERS = 800
DEFAULT_DAYS_BACK = 120
SECONDS_PER_DAY = 86400

BRANDS = ["Kvetná", "Lumière", "Nordic Scent", "Aroma Praha"]
INSPIRATIONS = [
    "Chanel Coco Mademoiselle",
    "Dior Sauvage",
    "Lancôme La Vie Est Belle",
    "Paco Rabanne 1 Million",
    "YSL Black Opium",
    "Armani Acqua di Giò",
]
FRAGRANCE_TYPES = ["Květinová", "Dřevitá", "Orientální", "Citrusová"]
INGREDIENTS = ["Vanilka", "Pižmo", "Bergamot", "Růže", "Santalové dřevo", "Jasmín"]
SEASONS = ["Jaro", "Léto", "Podzim", "Zima"]
GENDERS = ["Dámské", "Pánské", "Unisex"]
VOLUMES = ["30 ml", "50 ml", "100 ml"]
STATUSES = ["completed"] * 8 + ["cancelled", "returned"]


def _filter(name: str, values: List[str]) -> Dict[str, Any]:
    return {"name": name, "values": [{"name": value} for value in values]}


def generate_fake_catalog(num_products: int = DEFAULT_NUM_PRODUCTS, seed: Optional[int] = None) -> Dict[str, Any]:
    """Generate a synthetic catalog document.

    Roughly one product in five is a laundry scent rather than a perfume,
    and every tenth product is a tester, so the exclude keywords and the
    fragrance detection have something to work with.

    Raises:
        ValueError: If ``num_products`` is not positive.
    """
    if num_products <= 0:
        raise ValueError("num_products must be positive")

    rng = random.Random(seed)
    products = []

    for index in range(1, num_products + 1):
        brand = rng.choice(BRANDS)
        inspiration = rng.choice(INSPIRATIONS)
        is_laundry = index % 5 == 0
        kind = "Parfém do praní" if is_laundry else "Parfémovaná voda"
        name = f"{brand} {kind} inspirovaná {inspiration}"
        if index % 10 == 0:
            name += " tester"

        filters = [
            _filter("Značka", [brand]),
            _filter("Pohlaví", [rng.choice(GENDERS)]),
            _filter("Druh vůně", rng.sample(FRAGRANCE_TYPES, 1)),
            _filter("Dominantní ingredience", rng.sample(INGREDIENTS, 2)),
            _filter("Roční období", rng.sample(SEASONS, 2)),
        ]
        if is_laundry:
            filters = [_filter("Značka", [brand]), _filter("Typ prací vůně", ["Aviváž"])]

        variants = []
        for volume in rng.sample(VOLUMES, rng.randint(1, len(VOLUMES))):
            code = f"KV{index:03d}-{volume.split()[0]}"
            variants.append(
                {
                    "id": f"v-{index:03d}-{volume.split()[0]}",
                    "code": code,
                    "name": f"{name} {volume}",
                    "brand": brand,
                    "price": float(rng.choice([249, 349, 449, 590])),
                    "currency_code": "CZK",
                    "stock": float(rng.choice([0, 2, 5, 12, 40])),
                    "data": {"volume": {"value": volume, "label": volume}},
                }
            )

        products.append(
            {
                "id": f"p-{index:03d}",
                "external_guid": f"guid-{index:03d}",
                "shop_id": 1,
                "status": "visible",
                "base_payload": {
                    "name": name,
                    "url": f"https://example.cz/p-{index:03d}/",
                    "images": [{"url": f"https://cdn.example.cz/p-{index:03d}.jpg"}],
                    "defaultCategory": {"name": "Prací parfémy" if is_laundry else "Parfémy"},
                    "descriptiveParameters": [{"name": "Inspirováno", "value": inspiration, "priority": 1}],
                    "filteringParameters": filters,
                    "relatedProducts": [],
                },
                "variants": variants,
            }
        )

    # A few explicit links and one gift set
    for product in products[1:6]:
        product["base_payload"]["relatedProducts"].append({"guid": products[0]["external_guid"], "linkType": "physical"})
    if len(products) >= 3:
        products[-1]["base_payload"]["setItems"] = [
            {"guid": products[0]["external_guid"], "amount": 1},
            {"guid": products[1]["external_guid"], "amount": 1},
        ]

    return {"shops": [{"id": 1, "currency_code": "CZK"}], "products": products}


def generate_fake_orders(
    catalog: Dict[str, Any],
    num_orders: int = DEFAULT_NUM_ORDERS,
    end_date: Optional[datetime] = None,
    seed: Optional[int] = None,
) -> pd.DataFrame:
    """Generate order items for variants of ``catalog``.

    Returns:
        DataFrame with columns order_id, shop_id, ordered_at, status, code,
        amount, price_with_vat, sorted by ``ordered_at``.
    """
    if num_orders <= 0:
        raise ValueError("num_orders must be positive")

    rng = random.Random(seed)
    end_date = end_date or datetime.now()
    variants = [v for p in catalog["products"] for v in p["variants"]]
    if not variants:
        raise ValueError("catalog has no variants")

    items = []
    for order_number in range(1, num_orders + 1):
        ordered_at = end_date - timedelta(
            days=rng.randrange(DEFAULT_DAYS_BACK), seconds=rng.randrange(SECONDS_PER_DAY)
        )
        status = rng.choice(STATUSES)
        for variant in rng.sample(variants, rng.randint(1, 3)):
            amount = rng.randint(1, 3)
            items.append(
                {
                    "order_id": f"O{order_number:05d}",
                    "shop_id": 1,
                    "ordered_at": ordered_at.isoformat(),
                    "status": status,
                    "code": variant["code"],
                    "amount": amount,
                    "price_with_vat": variant["price"] * amount,
                }
            )

    df = pd.DataFrame(items)
    return df.sort_values("ordered_at").reset_index(drop=True)


def main() -> None:
    """Write data/catalog.json and data/orders.csv and print a summary."""
    print(f"Generating {DEFAULT_NUM_PRODUCTS} fake products and {DEFAULT_NUM_ORDERS} orders...")

    try:
        catalog = generate_fake_catalog()
        orders = generate_fake_orders(catalog)
    except ValueError as e:
        print(f"Error generating data: {e}")
        return

    data_dir = Path(__file__).parent.parent / "data"
    data_dir.mkdir(exist_ok=True)

    catalog_path = data_dir / "catalog.json"
    with catalog_path.open("w", encoding="utf-8") as fh:
        json.dump(catalog, fh, ensure_ascii=False, indent=2)

    orders_path = data_dir / "orders.csv"
    orders.to_csv(orders_path, index=False)

    print("\nData generated successfully!")
    print(f"Catalog saved to: {catalog_path}")
    print(f"Orders saved to:  {orders_path}")
    print("\nOrders preview:")
    print(orders.head(10))
    print("\nData summary:")
    print(f"  Products: {len(catalog['products'])}")
    print(f"  Variants: {sum(len(p['variants']) for p in catalog['products'])}")
    print(f"  Order items: {len(orders)}")
    print(f"  Orders: {orders['order_id'].nunique()}")
    print(f"  Date range: {orders['ordered_at'].min()} to {orders['ordered_at'].max()}")


if __name__ == "__main__":
    main()
