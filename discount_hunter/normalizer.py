import logging
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Optional

from .errors import NormalizationError, ScrapeError
from .schema import Coupon, CouponKind, DealType, ParsedProduct, ProductRecord, RecordStatus, utcnow

logger = logging.getLogger(__name__)

ERROR_TITLE = "Failed to load product"
_HUNDRED = Decimal(100)


def _dec(value) -> Decimal:
    # str() first so 0.1 stays 0.1 instead of its binary expansion
    return Decimal(str(value))


def compute_final_price(current_price: float, mrp: Optional[float] = None, coupon: Optional[Coupon] = None) -> int:
    """
    Effective price after the coupon, floored to a whole currency unit.

    A percentage coupon scales the price; an absolute coupon is subtracted
    and the result clamped at zero. mrp does not take part in the price,
    it only feeds derive_status.
    """
    try:
        final = _dec(current_price)
        if coupon is not None and coupon.kind == CouponKind.PERCENTAGE:
            final = final * (1 - _dec(coupon.value) / _HUNDRED)
        elif coupon is not None and coupon.kind == CouponKind.ABSOLUTE:
            final = max(Decimal(0), final - _dec(coupon.value))
        final = int(final.to_integral_value(rounding=ROUND_FLOOR))
    except (InvalidOperation, ValueError, TypeError, OverflowError) as exc:
        raise NormalizationError(f"Cannot compute final price from {current_price!r}", original_error=exc) from exc
    return max(0, final)


def derive_status(has_coupon: bool, deal_type: DealType, current_price: float, mrp: float) -> RecordStatus:
    if has_coupon or deal_type != DealType.NONE or current_price < mrp:
        return RecordStatus.ACTIVE_DISCOUNT
    return RecordStatus.NO_DISCOUNT


def build_record(
    identifier: str,
    parsed: ParsedProduct,
    checked_at: Optional[datetime] = None,
    currency: str = "INR",
    currency_symbol: str = "₹",
) -> ProductRecord:
    current = parsed.current_price
    mrp = parsed.mrp if parsed.mrp else current
    if mrp < current:
        # a list price below the selling price is not a visible discount
        logger.debug("[NORM] %s mrp %.2f below price %.2f, using price", identifier, mrp, current)
        mrp = current

    final_price = compute_final_price(current, mrp, parsed.coupon)
    has_coupon = parsed.coupon is not None
    return ProductRecord(
        asin=identifier.strip().upper(),
        title=parsed.title,
        current_price=current,
        mrp=mrp,
        currency=parsed.currency or currency,
        currency_symbol=currency_symbol if (parsed.currency or currency) == currency else "",
        coupon=parsed.coupon,
        coupon_value=parsed.coupon.text if has_coupon else None,
        deal_type=parsed.deal_type,
        promo_text=parsed.promo_text,
        final_price=final_price,
        status=derive_status(has_coupon, parsed.deal_type, current, mrp),
        image_url=parsed.image_url,
        last_checked=checked_at or utcnow(),
    )


def error_record(identifier: str, exc: BaseException, currency: str = "INR", currency_symbol: str = "₹") -> ProductRecord:
    """Zeroed record for a failed pipeline; the identifier is kept exactly as submitted."""
    if isinstance(exc, ScrapeError):
        reason, kind = exc.reason, exc.kind
    else:
        reason, kind = f"Unexpected error: {exc}", "unexpected"
    return ProductRecord(
        asin=identifier,
        title=ERROR_TITLE,
        current_price=0,
        mrp=0,
        currency=currency,
        currency_symbol=currency_symbol,
        final_price=0,
        status=RecordStatus.ERROR,
        error=reason,
        error_kind=kind,
    )
