"""Text normalization helpers used when matching payload values.

Catalog payloads are written in Czech and Slovak, so all comparisons run on
ASCII-folded values.
"""

import re
import unicodedata
from typing import Any, Iterable, List, Optional

# Letters NFKD does not decompose into ASCII base + combining mark
_EXTRA_ASCII = str.maketrans(
    {
        "ß": "ss",
        "ø": "o",
        "Ø": "O",
        "ł": "l",
        "Ł": "L",
        "đ": "d",
        "Đ": "D",
        "æ": "ae",
        "Æ": "AE",
        "œ": "oe",
        "Œ": "OE",
    }
)

_VALUE_SEPARATORS = re.compile(r"[,;\r\n]+")
_SLUG_STRIP = re.compile(r"[^\-\w\s]+", re.UNICODE)
_SLUG_COLLAPSE = re.compile(r"[\-\s_]+")


def to_ascii(value: str) -> str:
    """Fold diacritics, e.g. ``"Značka" -> "Znacka"``."""
    value = value.translate(_EXTRA_ASCII)
    decomposed = unicodedata.normalize("NFKD", value)
    return decomposed.encode("ascii", "ignore").decode("ascii")


def slugify(value: Any) -> str:
    """Build a URL slug the way the Shoptet admin does.

    ASCII-folds and lowercases the value, drops punctuation, and joins word
    runs with ``-``. ``"Dominantní ingredience" -> "dominantni-ingredience"``.
    """
    if value is None:
        return ""
    text = to_ascii(str(value)).replace("@", "-at-").lower()
    text = _SLUG_STRIP.sub("", text)
    text = _SLUG_COLLAPSE.sub("-", text)
    return text.strip("-")


def normalize_key(value: Any) -> Optional[str]:
    """Return the ASCII upper-case form of a non-blank string, else None."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    return to_ascii(trimmed).upper()


def normalize_lower(value: Any) -> str:
    """ASCII lower-case form of a value; empty string for non-strings."""
    if not isinstance(value, str):
        return ""
    return to_ascii(value).lower()


def split_values(raw: str) -> List[str]:
    """Split a free-text parameter value on commas, semicolons and newlines."""
    return [part.strip() for part in _VALUE_SEPARATORS.split(raw.strip()) if part.strip()]


def unique(values: Iterable[Any]) -> List[Any]:
    """Order-preserving de-duplication."""
    seen = set()
    result = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def normalize_keywords(keywords: Iterable[Any]) -> List[str]:
    """Lowercase and trim exclude keywords, dropping blanks."""
    return [k.strip().lower() for k in keywords if isinstance(k, str) and k.strip()]


def contains_keyword(candidates: Iterable[Any], keywords: Iterable[str]) -> bool:
    """True when any string candidate contains one of the keywords.

    Keywords are expected to be lower-cased already (see
    :func:`normalize_keywords`).
    """
    keywords = [k for k in keywords if k]
    if not keywords:
        return False

    for value in candidates:
        if not isinstance(value, str):
            continue
        lowered = value.lower()
        if any(keyword in lowered for keyword in keywords):
            return True

    return False
