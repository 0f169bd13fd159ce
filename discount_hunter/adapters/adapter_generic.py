import json
import math
import re
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup


CURRENCY_SYMBOLS = {
    "₹": "INR",
    "Rs.": "INR",
    "C$": "CAD",
    "A$": "AUD",
    "$": "USD",
    "£": "GBP",
    "€": "EUR",
    "¥": "JPY",
}

TLD_CURRENCIES = {
    ".in": "INR",
    ".co.uk": "GBP",
    ".de": "EUR",
    ".fr": "EUR",
    ".it": "EUR",
    ".es": "EUR",
    ".co.jp": "JPY",
    ".ca": "CAD",
    ".com.au": "AUD",
    ".com": "USD",
}

_NUMBER_RE = re.compile(r"\d[\d.,]*")


def _safe_json_loads(text: str):
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def parse_price(value: Any) -> Optional[float]:
    """
    "₹1,29,999.00" -> 129999.0, "1.299,00 €" -> 1299.0, 499 -> 499.0.
    Returns None when no number is present.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            value = float(value)
        except OverflowError:
            return None
        return value if math.isfinite(value) and value >= 0 else None
    m = _NUMBER_RE.search(str(value))
    if not m:
        return None
    num = m.group(0).rstrip(".,")
    if "," in num and "." in num:
        # whichever separator comes last is the decimal point
        if num.rfind(",") > num.rfind("."):
            num = num.replace(".", "").replace(",", ".")
        else:
            num = num.replace(",", "")
    elif "," in num:
        head, _, tail = num.rpartition(",")
        # "12,50" is a decimal comma; "1,299" / "1,29,999" are grouping
        num = f"{head.replace(',', '')}.{tail}" if len(tail) == 2 else num.replace(",", "")
    try:
        return float(num)
    except ValueError:
        return None


def infer_currency(text: Optional[str]) -> Optional[str]:
    for sym, cur in CURRENCY_SYMBOLS.items():
        if text and sym in text:
            return cur
    return None


def currency_for_url(url: Optional[str]) -> Optional[str]:
    host = urlparse(url or "").hostname or ""
    for tld, cur in TLD_CURRENCIES.items():
        if host.endswith(tld):
            return cur
    return None


def _is_product(node: Any) -> bool:
    if not isinstance(node, dict):
        return False
    t = node.get("@type")
    return t == "Product" or (isinstance(t, list) and "Product" in t)


def _pick_product_node(data: Any) -> Optional[Dict[str, Any]]:
    """
    Given parsed JSON-LD data (dict or list), try to find a node
    that looks like a schema.org Product.
    """
    if isinstance(data, dict):
        # Some sites use @graph
        for node in data.get("@graph", []):
            if _is_product(node):
                return node
        if _is_product(data):
            return data
    if isinstance(data, list):
        for node in data:
            if _is_product(node):
                return node
    return None


def _extract_from_ld_json(soup: BeautifulSoup) -> Dict[str, Any]:
    result: Dict[str, Any] = {"title": None, "image_url": None, "current_price": None, "currency": None}

    for script in soup.find_all("script", type="application/ld+json"):
        data = _safe_json_loads(script.string or "")
        prod = _pick_product_node(data)
        if not prod:
            continue

        name = prod.get("name")
        if not result["title"] and isinstance(name, str):
            result["title"] = name.strip()

        img = prod.get("image")
        if isinstance(img, list) and img:
            img = img[0]
        if not result["image_url"] and isinstance(img, str):
            result["image_url"] = img.strip()

        offers = prod.get("offers")
        if isinstance(offers, list):
            offers = offers[0] if offers else None
        if isinstance(offers, dict):
            if result["current_price"] is None:
                result["current_price"] = parse_price(offers.get("price") or offers.get("lowPrice"))
            currency = offers.get("priceCurrency")
            if result["currency"] is None and isinstance(currency, str):
                result["currency"] = currency.strip()

        if result["title"] and result["current_price"] is not None:
            break

    return result


def extract_generic(html: str, url: Optional[str] = None) -> Dict[str, Any]:
    """JSON-LD Product first, then Open Graph / <title> / itemprop fallbacks."""
    soup = BeautifulSoup(html, "lxml")
    data = _extract_from_ld_json(soup)

    if not data["title"]:
        og_title = soup.select_one("meta[property='og:title']")
        if og_title and og_title.get("content"):
            data["title"] = og_title["content"].strip()

    if not data["image_url"]:
        og_img = soup.select_one("meta[property='og:image'], meta[property='og:image:secure_url']")
        if og_img and og_img.get("content"):
            data["image_url"] = og_img["content"].strip()

    if data["current_price"] is None:
        node = soup.select_one("meta[itemprop='price'], [itemprop='price'], meta[property='product:price:amount']")
        if node:
            text = node.get("content") or node.get_text(" ", strip=True)
            data["current_price"] = parse_price(text)
            if not data["currency"]:
                data["currency"] = infer_currency(node.get_text(" ", strip=True))

    if not data["currency"]:
        data["currency"] = currency_for_url(url)

    return data


_FALSE_STRINGS = {"false", "0", "no", "n", "off", ""}


def _as_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def _text_field(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {type(value).__name__}")
    return value.strip() or None


def _price_field(data: Dict[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    if isinstance(value, (list, dict)):
        raise ValueError(f"{key} must be a number or string, got {type(value).__name__}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"{key} is not a finite number")
    return parse_price(value)


def extract_json_document(body: str) -> Dict[str, Any]:
    """
    Product JSON as served by a scraping backend:
    {"title", "currentPrice", "mrp", "hasCoupon", "couponValue", "dealType",
     "promoText", "isValid", "imageUrl", "currency"}.

    Raises ValueError when the body is not a JSON object or a field has the
    wrong type.
    """
    data = json.loads(body)
    if not isinstance(data, dict):
        raise ValueError("product document is not a JSON object")
    coupon_text = data.get("couponValue")
    if isinstance(coupon_text, (list, dict)):
        raise ValueError("couponValue must be a number or string")
    if not _as_bool(data.get("hasCoupon")):
        coupon_text = None
    return {
        "valid": _as_bool(data.get("isValid")),
        "title": _text_field(data, "title"),
        "current_price": _price_field(data, "currentPrice"),
        "mrp": _price_field(data, "mrp"),
        "currency": _text_field(data, "currency"),
        "coupon_text": str(coupon_text) if coupon_text not in (None, "") else None,
        "badge_text": _text_field(data, "dealType"),
        "promo_text": _text_field(data, "promoText"),
        "image_url": _text_field(data, "imageUrl"),
    }
