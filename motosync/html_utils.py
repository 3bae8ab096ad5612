"""HTML parsing and field normalization utilities shared by all sources."""

import re
import unicodedata
from typing import Iterable, Optional, Sequence, Tuple, Union

from bs4 import BeautifulSoup, Tag

__all__ = [
    "slugify",
    "parse_price",
    "price_in_bounds",
    "find_price_in_text",
    "parse_number",
    "find_displacement_in_text",
    "extract_year",
    "clean_model_name",
    "first_text",
    "first_paragraph",
    "srcset_first",
    "background_image_url",
    "has_ancestor_class",
]

Number = Union[int, float]

NUMBER_RUN_RE = re.compile(r"\d[\d.,]*")
YEAR_RE = re.compile(r"\b(19\d{2}|20\d{2})\b")

# Regex fallbacks over the raw body, tried in order
PRICE_PATTERNS = [
    re.compile(r"(?:EUR|€|&euro;)\s*([\d.,]+)", re.IGNORECASE),
    re.compile(r"([\d.,]+)\s*(?:EUR|€|&euro;)", re.IGNORECASE),
    re.compile(r"price[\"']?\s*:\s*[\"']?([\d.,]+)[\"']?", re.IGNORECASE),
    re.compile(r"content=[\"']([\d.,]+)[\"']\s*itemprop=[\"']price[\"']", re.IGNORECASE),
]

DISPLACEMENT_RE = re.compile(r"(\d{2,4}(?:[.,]\d+)?)\s*(?:cm³|cm3|cc)(?![a-z])", re.IGNORECASE)
# Anything outside this range is a stray number (cookie scripts, dimensions)
DISPLACEMENT_BOUNDS = (50, 2000)

PROMO_SUFFIX_RE = re.compile(
    r"\s*[-–|]\s*(?:promo\w*|in promozione|offerta\b.*|novit[àa])\s*$", re.IGNORECASE
)


def slugify(text: str) -> str:
    """Lower-case ASCII slug with hyphens ("Ténéré 700" -> "tenere-700")."""
    normalized = unicodedata.normalize("NFKD", text)
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii").lower()
    return re.sub(r"[^a-z0-9]+", "-", ascii_text).strip("-")


def _to_number(value: float) -> Number:
    return int(value) if float(value).is_integer() else value


def parse_price(text: Optional[str]) -> Optional[Number]:
    """Parse a locale-formatted price into a number.

    Dots are thousands separators and a comma introduces the decimals
    ("14.220" -> 14220, "14.220,00" -> 14220, "5.990,50" -> 5990.5).
    A dot followed by something other than groups of three digits is a
    decimal point ("14.22" -> 14.22).

    Returns:
        The value, or None if the text holds no number
    """
    if not text:
        return None
    match = NUMBER_RUN_RE.search(text)
    if not match:
        return None
    raw = match.group(0).rstrip(".,")

    try:
        if "," in raw:
            int_part, _, decimals = raw.rpartition(",")
            if len(decimals) == 3 and "." not in raw:
                # "14,220": comma used as thousands separator
                return int(raw.replace(",", ""))
            int_part = int_part.replace(".", "").replace(",", "")
            return _to_number(float(f"{int_part or '0'}.{decimals}"))

        if "." in raw:
            groups = raw.split(".")
            if all(len(g) == 3 for g in groups[1:]):
                return int("".join(groups))
            return _to_number(float(raw))

        return int(raw)
    except ValueError:
        return None


def price_in_bounds(price: Optional[Number], bounds: Tuple[float, float]) -> Optional[Number]:
    """Return the price if it lies within bounds (inclusive), else None."""
    if price is None:
        return None
    low, high = bounds
    return price if low <= price <= high else None


def find_price_in_text(raw: str, bounds: Tuple[float, float]) -> Optional[Number]:
    """Scan a raw body for the first plausible price.

    Each pattern is tried over all its matches before moving to the next;
    matches outside bounds are ignored.
    """
    for pattern in PRICE_PATTERNS:
        for match in pattern.finditer(raw):
            value = price_in_bounds(parse_price(match.group(1)), bounds)
            if value is not None:
                return value
    return None


def parse_number(text: Optional[str]) -> Optional[int]:
    """Parse an integer quantity such as "57.871 km" or "1.301 cc"."""
    value = parse_price(text)
    if value is None:
        return None
    return int(round(value))


def find_displacement_in_text(raw: str) -> Optional[int]:
    """Regex fallback for displacement ("449,3 cm³", "125 cc")."""
    low, high = DISPLACEMENT_BOUNDS
    for match in DISPLACEMENT_RE.finditer(raw):
        value = parse_number(match.group(1).replace(",", "."))
        if value is not None and low <= value <= high:
            return value
    return None


def extract_year(text: Optional[str]) -> Optional[int]:
    """Return the first 19xx/20xx token in text."""
    if not text:
        return None
    match = YEAR_RE.search(text)
    return int(match.group(1)) if match else None


def clean_model_name(text: str, brand_names: Iterable[str] = ()) -> str:
    """Strip years, brand prefixes and promotional suffixes from a title.

    "2026 KTM 450 SX-F" -> "450 SX-F"
    "CB 500 X (2017 - 20)" -> "CB 500 X"
    "Norden 901 Expedition | 2026" -> "Norden 901 Expedition"
    """
    model = " ".join(text.split())
    model = re.sub(r"\s*\(\s*\d{4}(?:\s*-\s*\d{2,4})?\s*\)\s*$", "", model)
    model = re.sub(r"^(?:19|20)\d{2}\s+", "", model)
    model = re.sub(r"\s*\|?\s*(?:19|20)\d{2}$", "", model)
    for brand in brand_names:
        model = re.sub(rf"^{re.escape(brand)}\b\s*", "", model, flags=re.IGNORECASE)
    model = PROMO_SUFFIX_RE.sub("", model)
    return model.strip(" |-–")


def first_text(soup: Union[BeautifulSoup, Tag], selectors: Sequence[str]) -> str:
    """Text of the first selector that matches a non-empty element."""
    for selector in selectors:
        el = soup.select_one(selector)
        if el:
            text = el.get_text(" ", strip=True)
            if text:
                return " ".join(text.split())
    return ""


def first_paragraph(
    soup: Union[BeautifulSoup, Tag],
    selector: str = "p",
    min_length: int = 50,
    excluded: Sequence[str] = ("IVA", "Prezzo", "Cookie"),
    excluded_prefixes: Sequence[str] = ("*",),
) -> str:
    """First paragraph that reads like prose rather than legal boilerplate."""
    for el in soup.select(selector):
        text = " ".join(el.get_text(" ", strip=True).split())
        if len(text) <= min_length:
            continue
        if any(text.startswith(prefix) for prefix in excluded_prefixes):
            continue
        if any(word in text for word in excluded):
            continue
        return text
    return ""


def srcset_first(srcset: Optional[str]) -> Optional[str]:
    """First URL of a srcset attribute."""
    if not srcset:
        return None
    first = srcset.split(",")[0].strip()
    return first.split(" ")[0] if first else None


def background_image_url(style: Optional[str]) -> Optional[str]:
    """URL inside a CSS background(-image): url(...) declaration."""
    if not style:
        return None
    match = re.search(r"url\(\s*['\"]?(.*?)['\"]?\s*\)", style)
    return match.group(1) if match and match.group(1) else None


def has_ancestor_class(el: Tag, classes: Iterable[str]) -> bool:
    """Whether any ancestor of el carries one of the CSS classes."""
    wanted = set(classes)
    for parent in el.parents:
        if isinstance(parent, Tag) and wanted.intersection(parent.get("class") or ()):
            return True
    return False
