from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DealType(str, Enum):
    NONE = "None"
    LIGHTNING = "Lightning Deal"
    DEAL_OF_DAY = "Deal of the Day"
    PRIME_EXCLUSIVE = "Prime Exclusive"
    LIMITED_TIME = "Limited Time Deal"


class RecordStatus(str, Enum):
    ACTIVE_DISCOUNT = "active_discount"
    NO_DISCOUNT = "no_discount"
    ERROR = "error"


class CouponKind(str, Enum):
    ABSOLUTE = "absolute"
    PERCENTAGE = "percentage"


class Coupon(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: CouponKind
    value: float = Field(ge=0)
    text: Optional[str] = None       # as shown on the page, e.g. "₹500" or "5%"

    @model_validator(mode="after")
    def _check_percentage(self) -> "Coupon":
        if self.kind == CouponKind.PERCENTAGE and self.value > 100:
            raise ValueError("percentage coupon cannot exceed 100")
        return self


class RawDocument(BaseModel):
    identifier: str
    url: str
    body: str
    content_type: str = "text/html"
    status_code: int = 200
    fetched_at: datetime = Field(default_factory=utcnow)
    duration_ms: float = 0.0

    @property
    def is_json(self) -> bool:
        return "json" in self.content_type.lower() or self.body.lstrip().startswith("{")


class ParsedProduct(BaseModel):
    """Fields pulled off a product document, before price normalization."""
    title: str
    current_price: float = Field(ge=0, allow_inf_nan=False)
    mrp: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    currency: Optional[str] = None
    coupon: Optional[Coupon] = None
    deal_type: DealType = DealType.NONE
    promo_text: Optional[str] = None
    image_url: Optional[str] = None


class ProductRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)   # internal list key
    asin: str
    title: str
    current_price: float = Field(ge=0)
    mrp: float = Field(ge=0)
    currency: str = "INR"
    currency_symbol: str = "₹"
    coupon: Optional[Coupon] = None
    coupon_value: Optional[str] = None
    deal_type: DealType = DealType.NONE
    promo_text: Optional[str] = None
    final_price: int = Field(ge=0)
    status: RecordStatus
    image_url: Optional[str] = None
    last_checked: datetime = Field(default_factory=utcnow)
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @computed_field
    @property
    def has_coupon(self) -> bool:
        return self.coupon is not None


class Stats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    discounts_found: int = 0

    @computed_field
    @property
    def progress(self) -> int:
        """Completed share of the batch, in whole percent."""
        if not self.total:
            return 0
        return round(self.processed / self.total * 100)

    @classmethod
    def from_records(cls, records: Iterable[ProductRecord], total: int) -> "Stats":
        records = list(records)
        failed = sum(1 for r in records if r.status == RecordStatus.ERROR)
        return cls(
            total=total,
            processed=len(records),
            succeeded=len(records) - failed,
            failed=failed,
            discounts_found=sum(1 for r in records if r.status == RecordStatus.ACTIVE_DISCOUNT),
        )


class BatchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    records: Tuple[ProductRecord, ...] = ()
    stats: Stats = Field(default_factory=Stats)
    cancelled: bool = False
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    @property
    def complete(self) -> bool:
        return self.finished_at is not None
