"""Normalized scoring context extracted from product payloads.

A variant's context bundles the payload data the recommenders compare:
inspiration descriptors ("Inspirováno" / "Podobné"), filtering parameters
keyed by slug, related product links and the variant price.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from invrec.recommender.catalog import Product, Variant
from invrec.recommender.text import normalize_lower, slugify, split_values, unique

# Descriptor names (ASCII lower-case) mapped to context buckets
DESCRIPTOR_TARGETS = {
    "inspirovano": "inspired",
    "podobne": "similar",
}

FRAGRANCE_FILTER_MARKERS = ("vune", "parfum", "parfem")
FRAGRANCE_NAME_MARKERS = ("parfum", "parfem", "toalet", "kolin", "eau de p", "eau de t", "vune")
NON_FRAGRANCE_MARKERS = (
    "pran",
    "praci",
    "laundr",
    "wash",
    "aviv",
    "soft",
    "auto",
    "auta",
    "car",
    "mlek",
    "milk",
    "osvez",
    "osvie",
    "candle",
    "svick",
    "gel",
    "sprch",
    "bath",
    "mydl",
    "soap",
)
_CONCENTRATION_RE = re.compile(r"\b(edp|edt|edc)\b", re.IGNORECASE)

_MISSING_PRIORITY = float("inf")


@dataclass
class VariantContext:
    descriptors: Dict[str, List[str]] = field(
        default_factory=lambda: {"inspired": [], "similar": []}
    )
    descriptor_items: Dict[str, List[Dict[str, Any]]] = field(
        default_factory=lambda: {"inspired": [], "similar": []}
    )
    filter_parameters: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    related_products: List[Dict[str, Any]] = field(default_factory=list)
    base_price: Optional[float] = None

    @property
    def inspiration(self) -> List[str]:
        """Inspired and similar values merged, without duplicates."""
        return unique(self.descriptors["inspired"] + self.descriptors["similar"])


def build_variant_context(variant: Variant, product: Optional[Product]) -> VariantContext:
    """Build the scoring context for a variant."""
    descriptors, items = extract_related_descriptors(product)
    return VariantContext(
        descriptors=descriptors,
        descriptor_items=items,
        filter_parameters=extract_filter_parameters(product),
        related_products=extract_related_products_meta(product),
        base_price=variant.price,
    )


def _int_or_none(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return None
    return None


def _text_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _entry_values(entry: Dict[str, Any], keys: tuple) -> List[str]:
    """Collect values from ``entry["values"]`` or a delimited ``entry["value"]``."""
    values: List[str] = []

    raw_values = entry.get("values")
    if isinstance(raw_values, list):
        for value_entry in raw_values:
            if isinstance(value_entry, dict):
                candidate = next(
                    (value_entry[k] for k in keys if value_entry.get(k) is not None),
                    None,
                )
                if isinstance(candidate, str) and candidate.strip():
                    values.append(candidate.strip())
            elif isinstance(value_entry, str) and value_entry.strip():
                values.append(value_entry.strip())

    if not values and isinstance(entry.get("value"), str):
        values = split_values(entry["value"])

    return unique(values)


def descriptor_values(entry: Dict[str, Any]) -> List[str]:
    return _entry_values(entry, ("value", "name", "displayName", "valueIndex"))


def filter_values(entry: Dict[str, Any]) -> List[str]:
    return _entry_values(entry, ("name", "displayName", "value", "valueIndex"))


def _descriptor_label(entry: Dict[str, Any]) -> str:
    for key in ("displayName", "name", "title", "label"):
        candidate = entry.get(key)
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return ""


def extract_related_descriptors(product: Optional[Product]):
    """Extract "Inspirováno" and "Podobné" descriptor values.

    Returns:
        Tuple ``(values, items)``. ``values`` maps ``inspired``/``similar`` to
        plain value lists; ``items`` keeps label, priority and description
        per value, sorted by priority then value.
    """
    values: Dict[str, List[str]] = {"inspired": [], "similar": []}
    items: Dict[str, List[Dict[str, Any]]] = {"inspired": [], "similar": []}
    seen: Dict[str, Dict[str, int]] = {"inspired": {}, "similar": {}}

    if product is None:
        return values, items

    entries = product.base_payload.get("descriptiveParameters")
    if not isinstance(entries, list):
        return values, items

    for entry in entries:
        if not isinstance(entry, dict):
            continue

        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            continue
        target = DESCRIPTOR_TARGETS.get(normalize_lower(name.strip()))
        if target is None:
            continue

        entry_values = descriptor_values(entry)
        if not entry_values:
            continue

        priority = _int_or_none(entry.get("priority"))
        description = _text_or_none(entry.get("description"))
        label = _descriptor_label(entry)

        for value in entry_values:
            if value not in values[target]:
                values[target].append(value)

            if value not in seen[target]:
                seen[target][value] = len(items[target])
                items[target].append(
                    {
                        "label": label or value,
                        "value": value,
                        "priority": priority,
                        "description": description,
                    }
                )
                continue

            existing = items[target][seen[target][value]]
            if existing["priority"] is None or (
                priority is not None and priority < existing["priority"]
            ):
                existing["priority"] = priority
            if existing["description"] is None and description is not None:
                existing["description"] = description

    for key in ("inspired", "similar"):
        items[key].sort(
            key=lambda item: (
                item["priority"] if item["priority"] is not None else _MISSING_PRIORITY,
                item["value"],
            )
        )

    return values, items


def extract_filter_parameters(product: Optional[Product]) -> Dict[str, Dict[str, Any]]:
    """Filtering parameters keyed by slug of their name."""
    if product is None:
        return {}

    entries = product.base_payload.get("filteringParameters")
    if not isinstance(entries, list):
        return {}

    normalized: Dict[str, Dict[str, Any]] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            continue

        name = str(entry.get("name") or "").strip()
        if not name and entry.get("displayName"):
            name = str(entry["displayName"]).strip()
        if not name:
            name = "Parametr"

        values = filter_values(entry)
        if not values:
            continue

        slug = slugify(name)
        normalized[slug] = {
            "slug": slug,
            "name": name,
            "values": values,
            "priority": _int_or_none(entry.get("priority")),
            "description": _text_or_none(entry.get("description")),
        }

    return normalized


def extract_related_products_meta(product: Optional[Product]) -> List[Dict[str, Any]]:
    """Links from ``relatedProducts`` as ``{guid, link_type, priority, visibility}``."""
    if product is None:
        return []

    related = product.base_payload.get("relatedProducts")
    if not isinstance(related, list):
        return []

    return [
        {
            "guid": str(item["guid"]),
            "link_type": str(item["linkType"]) if item.get("linkType") is not None else None,
            "priority": _int_or_none(item.get("priority")),
            "visibility": str(item["visibility"]) if item.get("visibility") is not None else None,
        }
        for item in related
        if isinstance(item, dict) and item.get("guid") is not None
    ]


def extract_set_items(product: Optional[Product]) -> List[Dict[str, Any]]:
    """Components of a set (bundle) product."""
    if product is None:
        return []

    items = product.base_payload.get("setItems")
    if not isinstance(items, list):
        return []

    result = []
    for item in items:
        if not isinstance(item, dict):
            continue
        amount = item.get("amount")
        result.append(
            {
                "guid": item["guid"] if isinstance(item.get("guid"), str) else None,
                "code": item["code"] if isinstance(item.get("code"), str) else None,
                "amount": float(amount)
                if isinstance(amount, (int, float)) and not isinstance(amount, bool)
                else None,
            }
        )
    return result


def set_items_contain(
    set_items: List[Dict[str, Any]],
    product_guid: Optional[str],
    variant_code: Optional[str],
) -> bool:
    for item in set_items:
        if product_guid and item.get("guid") == product_guid:
            return True
        if variant_code and item.get("code") == variant_code:
            return True
    return False


def _is_non_fragrance(value: str) -> bool:
    return any(marker in value for marker in NON_FRAGRANCE_MARKERS)


def is_fragrance_context(
    context: VariantContext,
    variant: Optional[Variant] = None,
    product: Optional[Product] = None,
) -> bool:
    """Guess whether a variant is a perfume rather than a home/laundry scent.

    Filters named after scent or perfume win first. Otherwise variant and
    product names/subtitles are searched for perfume wording such as
    "parfém", "toaletní voda" or "EDT".
    """
    for slug, meta in context.filter_parameters.items():
        slug_text = normalize_lower(slug)
        name_text = normalize_lower(meta.get("name"))
        if any(m in slug_text or m in name_text for m in FRAGRANCE_FILTER_MARKERS):
            if _is_non_fragrance(slug_text) or _is_non_fragrance(name_text):
                continue
            return True

    if variant is None:
        return False

    payload = product.base_payload if product else {}
    metadata = payload.get("metadata") if isinstance(payload.get("metadata"), dict) else {}
    names = [
        variant.name,
        product.name if product else None,
        metadata.get("product_subtitle"),
        metadata.get("subtitle"),
        variant.data.get("product_subtitle"),
        variant.data.get("subtitle"),
    ]

    for raw_name in names:
        if not raw_name:
            continue
        normalized = normalize_lower(str(raw_name))
        if not normalized or _is_non_fragrance(normalized):
            continue
        if any(m in normalized for m in FRAGRANCE_NAME_MARKERS) or _CONCENTRATION_RE.search(
            normalized
        ):
            return True

    return False
