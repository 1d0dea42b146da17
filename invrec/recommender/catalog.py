"""Catalog data model and loader.

The catalog is a JSON document mirroring the Shoptet product export:

.. code-block:: json

    {
        "shops": [{"id": 1, "currency_code": "CZK"}],
        "products": [
            {
                "id": "p-1",
                "external_guid": "guid-1",
                "shop_id": 1,
                "status": "visible",
                "base_payload": {"name": "...", "descriptiveParameters": []},
                "overlays": [{"filteringParameters": []}],
                "variants": [{"id": "v-1", "code": "KV001", "stock": 3}]
            }
        ]
    }

Products keep their raw ``base_payload`` so the scoring code can read the
descriptive/filtering parameters, related products and set items directly.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

# Configure module logger
logger = logging.getLogger(__name__)

# Maximum number of sets reported for a single component
SET_MEMBERSHIP_LIMIT = 25


@dataclass
class Variant:
    """A sellable variant (size, volume...) of a product."""

    id: str
    product_id: str
    code: Optional[str] = None
    name: Optional[str] = None
    brand: Optional[str] = None
    supplier: Optional[str] = None
    price: Optional[float] = None
    currency_code: Optional[str] = None
    stock: Optional[float] = None
    min_stock_supply: Optional[float] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Product:
    """A catalog product with its raw payload and variants."""

    id: str
    external_guid: Optional[str] = None
    shop_id: Optional[int] = None
    status: Optional[str] = None
    base_payload: Dict[str, Any] = field(default_factory=dict)
    overlays: List[Dict[str, Any]] = field(default_factory=list)
    variants: List[Variant] = field(default_factory=list)

    @property
    def name(self) -> Optional[str]:
        name = self.base_payload.get("name")
        return name if isinstance(name, str) else None

    @property
    def payloads(self) -> List[Dict[str, Any]]:
        """Base payload followed by shop overlay payloads."""
        return [self.base_payload, *self.overlays]


@dataclass
class Shop:
    id: int
    currency_code: Optional[str] = None


class Catalog:
    """In-memory catalog with lookup indexes."""

    def __init__(self, products: List[Product], shops: Optional[List[Shop]] = None):
        self.products: Dict[str, Product] = {}
        self.shops: Dict[int, Shop] = {shop.id: shop for shop in shops or []}
        self._variants: Dict[str, Variant] = {}
        self._variants_by_code: Dict[str, Variant] = {}
        self._products_by_guid: Dict[str, Product] = {}
        self._set_index: Dict[str, List[Product]] = {}
        self._membership_cache: Dict[str, Dict[str, Dict[str, Optional[str]]]] = {}

        for product in sorted(products, key=lambda p: p.id):
            self.products[product.id] = product
            if product.external_guid:
                self._products_by_guid[product.external_guid] = product
            for variant in product.variants:
                self._variants[variant.id] = variant
                if variant.code and variant.code not in self._variants_by_code:
                    self._variants_by_code[variant.code] = variant

            set_items = product.base_payload.get("setItems")
            if isinstance(set_items, list):
                for item in set_items:
                    if isinstance(item, dict) and isinstance(item.get("guid"), str):
                        self._set_index.setdefault(item["guid"], []).append(product)

        logger.info(
            "Catalog indexed",
            extra={
                "num_products": len(self.products),
                "num_variants": len(self._variants),
                "num_shops": len(self.shops),
            },
        )

    def __len__(self) -> int:
        return len(self.products)

    @property
    def num_variants(self) -> int:
        return len(self._variants)

    def get_variant(self, variant_id: str) -> Optional[Variant]:
        return self._variants.get(variant_id)

    def find_variant(self, id_or_code: Union[str, int]) -> Optional[Variant]:
        """Look up a variant by id, falling back to its code."""
        key = str(id_or_code)
        return self._variants.get(key) or self._variants_by_code.get(key)

    def get_product(self, product_id: str) -> Optional[Product]:
        return self.products.get(product_id)

    def get_product_by_guid(self, guid: Optional[str]) -> Optional[Product]:
        if not guid:
            return None
        return self._products_by_guid.get(guid)

    def product_for(self, variant: Variant) -> Optional[Product]:
        return self.products.get(variant.product_id)

    def variants(self, shop_id: Optional[int] = None) -> Iterator[Variant]:
        """Iterate variants in id order, optionally limited to one shop."""
        for variant_id in sorted(self._variants):
            variant = self._variants[variant_id]
            if shop_id is not None:
                product = self.products.get(variant.product_id)
                if product is None or product.shop_id != shop_id:
                    continue
            yield variant

    def shop_currency(self, shop_id: Optional[int]) -> Optional[str]:
        shop = self.shops.get(shop_id) if shop_id is not None else None
        return shop.currency_code if shop else None

    def set_memberships(self, product_guid: Optional[str]) -> Dict[str, Dict[str, Optional[str]]]:
        """Sets (bundles) whose ``setItems`` reference the given product guid.

        Returns:
            Mapping of set guid to ``{"guid": ..., "name": ...}``, at most
            ``SET_MEMBERSHIP_LIMIT`` entries.
        """
        if not product_guid:
            return {}

        if product_guid in self._membership_cache:
            return self._membership_cache[product_guid]

        memberships: Dict[str, Dict[str, Optional[str]]] = {}
        for product in self._set_index.get(product_guid, [])[:SET_MEMBERSHIP_LIMIT]:
            if not product.external_guid:
                continue
            memberships[product.external_guid] = {
                "guid": product.external_guid,
                "name": product.name,
            }

        self._membership_cache[product_guid] = memberships
        return memberships


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def _parse_variant(raw: Dict[str, Any], product_id: str) -> Variant:
    if "id" not in raw:
        raise ValueError(f"Variant of product {product_id} is missing 'id'")

    data = raw.get("data") or {}
    if not isinstance(data, dict):
        raise ValueError(f"Variant {raw['id']} has non-object 'data'")

    return Variant(
        id=str(raw["id"]),
        product_id=product_id,
        code=raw.get("code"),
        name=raw.get("name"),
        brand=raw.get("brand"),
        supplier=raw.get("supplier"),
        price=_optional_float(raw.get("price")),
        currency_code=raw.get("currency_code"),
        stock=_optional_float(raw.get("stock")),
        min_stock_supply=_optional_float(raw.get("min_stock_supply")),
        data=data,
    )


def _parse_product(raw: Dict[str, Any]) -> Product:
    if not isinstance(raw, dict) or "id" not in raw:
        raise ValueError("Every product must be an object with an 'id'")

    product_id = str(raw["id"])
    payload = raw.get("base_payload") or {}
    if not isinstance(payload, dict):
        raise ValueError(f"Product {product_id} has non-object 'base_payload'")

    overlays = [o for o in raw.get("overlays") or [] if isinstance(o, dict)]
    shop_id = raw.get("shop_id")

    return Product(
        id=product_id,
        external_guid=raw.get("external_guid"),
        shop_id=int(shop_id) if shop_id is not None else None,
        status=raw.get("status"),
        base_payload=payload,
        overlays=overlays,
        variants=[_parse_variant(v, product_id) for v in raw.get("variants") or []],
    )


def catalog_from_dict(document: Dict[str, Any]) -> Catalog:
    """Build a :class:`Catalog` from an already decoded JSON document.

    Raises:
        ValueError: If the document does not have the expected shape.
    """
    if not isinstance(document, dict):
        raise ValueError("Catalog document must be a JSON object")

    products_raw = document.get("products")
    if not isinstance(products_raw, list):
        raise ValueError("Catalog document must contain a 'products' list")

    shops = [
        Shop(id=int(s["id"]), currency_code=s.get("currency_code"))
        for s in document.get("shops") or []
        if isinstance(s, dict) and "id" in s
    ]

    return Catalog([_parse_product(p) for p in products_raw], shops)


def load_catalog(path: Union[str, Path]) -> Catalog:
    """Load the catalog JSON file.

    Args:
        path: Path to the catalog document.

    Returns:
        Indexed catalog.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not valid JSON or has the wrong shape.
    """
    catalog_file = Path(path)
    if not catalog_file.exists():
        raise FileNotFoundError(f"Catalog file not found: {path}")

    logger.info(f"Loading catalog from {path}")
    try:
        with catalog_file.open(encoding="utf-8") as fh:
            document = json.load(fh)
    except json.JSONDecodeError as e:
        raise ValueError(f"Catalog file is not valid JSON: {e}") from e

    return catalog_from_dict(document)
