import logging
import re
from typing import Optional, Tuple

from pydantic import ValidationError

from .adapters import adapter_amazon, adapter_generic
from .errors import ParseError
from .schema import Coupon, CouponKind, DealType, ParsedProduct, RawDocument

logger = logging.getLogger(__name__)

_PERCENT_RE = re.compile(r"(?<![\d.,])(\d{1,3}(?:[.,]\d+)?)\s*%")

# checked in order; first match wins
_DEAL_KEYWORDS = [
    (DealType.LIGHTNING, ("lightning",)),
    (DealType.DEAL_OF_DAY, ("deal of the day", "deal of day", "dotd")),
    (DealType.PRIME_EXCLUSIVE, ("prime exclusive", "prime early access", "prime day", "exclusive prime", "prime member")),
    (DealType.LIMITED_TIME, ("limited time", "limited-time")),
]


def classify_deal(badge_text: Optional[str]) -> Tuple[DealType, Optional[str]]:
    """
    Map free-form badge text to a DealType.

    Returns (deal_type, promo_text). Unrecognized wording maps to
    DealType.NONE and is handed back as promo_text so it is not lost.
    """
    if not isinstance(badge_text, str):
        return DealType.NONE, None
    text = " ".join(badge_text.split())
    if not text:
        return DealType.NONE, None
    for deal in DealType:
        if text.lower() == deal.value.lower():
            return deal, None
    lowered = text.lower()
    for deal, keywords in _DEAL_KEYWORDS:
        if any(k in lowered for k in keywords):
            return deal, None
    return DealType.NONE, text


def parse_coupon(text: Optional[str]) -> Optional[Coupon]:
    """'Save 5% with coupon' -> 5 %, 'Apply ₹500 coupon' -> 500 absolute. Percent wins."""
    if not text:
        return None
    m = _PERCENT_RE.search(text)
    if m:
        value = float(m.group(1).replace(",", "."))
        if value > 100:
            return None
        return Coupon(kind=CouponKind.PERCENTAGE, value=value, text=f"{m.group(1)}%")
    if "%" in text:
        # a percentage we could not read; do not mistake it for an amount
        return None
    amount = adapter_generic.parse_price(text)
    if amount is None or amount <= 0:
        return None
    symbol = next((s for s in adapter_generic.CURRENCY_SYMBOLS if s in text), "")
    shown = int(amount) if amount.is_integer() else amount
    return Coupon(kind=CouponKind.ABSOLUTE, value=amount, text=f"{symbol}{shown}")


def _merge(base: dict, specific: dict) -> dict:
    merged = dict(base)
    merged.update({k: v for k, v in specific.items() if v not in (None, "")})
    return merged


def extract_product(doc: RawDocument) -> ParsedProduct:
    """
    Turn a fetched document into a ParsedProduct.

    Raises ParseError when the title or current price cannot be located,
    or when the document is unreadable.
    """
    if doc.is_json:
        try:
            raw = adapter_generic.extract_json_document(doc.body)
        except ValueError as exc:
            raise ParseError(ParseError.MALFORMED, f"Malformed product document: {exc}",
                             identifier=doc.identifier, original_error=exc) from exc
        if not raw.pop("valid"):
            raise ParseError(ParseError.MALFORMED, "Invalid ASIN or product not found",
                             identifier=doc.identifier)
    else:
        raw = adapter_generic.extract_generic(doc.body, url=doc.url)
        raw = _merge(raw, adapter_amazon.extract_amazon(doc.body))

    for field in ("title", "current_price"):
        if raw.get(field) in (None, ""):
            raise ParseError(ParseError.MISSING_FIELD, f"Could not locate {field}",
                             identifier=doc.identifier, field=field)

    deal_type, promo = classify_deal(raw.get("badge_text"))
    promo_text = raw.get("promo_text") or promo
    coupon = parse_coupon(raw.get("coupon_text"))
    if raw.get("coupon_text") and coupon is None:
        logger.debug("[PARSE] %s unreadable coupon text %r", doc.identifier, raw["coupon_text"])

    try:
        return ParsedProduct(
            title=raw["title"],
            current_price=raw["current_price"],
            mrp=raw.get("mrp"),
            currency=raw.get("currency"),
            coupon=coupon,
            deal_type=deal_type,
            promo_text=promo_text,
            image_url=raw.get("image_url"),
        )
    except ValidationError as exc:
        raise ParseError(ParseError.MALFORMED, f"Extracted fields are inconsistent: {exc.errors()[0]['msg']}",
                         identifier=doc.identifier, original_error=exc) from exc
