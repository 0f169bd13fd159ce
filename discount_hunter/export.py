import csv
import io
from datetime import date
from pathlib import Path
from typing import Iterable, Union

import orjson

from .schema import BatchResult, ProductRecord

CSV_COLUMNS = ["ASIN", "Title", "CurrentPrice", "MRP", "HasCoupon", "CouponValue", "DealType", "FinalPrice", "Status"]


def _number(value: float):
    return int(value) if float(value).is_integer() else value


def csv_row(record: ProductRecord) -> list:
    return [
        record.asin,
        record.title,
        _number(record.current_price),
        _number(record.mrp),
        "Yes" if record.has_coupon else "No",
        record.coupon_value or "",
        record.deal_type.value,
        record.final_price,
        record.status.value,
    ]


def to_csv(result: Union[BatchResult, Iterable[ProductRecord]]) -> str:
    """CSV text with a fixed header; fields holding , " or newlines are quoted, quotes doubled."""
    records = result.records if isinstance(result, BatchResult) else result
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for record in records:
        writer.writerow(csv_row(record))
    return buf.getvalue()


def export_filename(day: date = None) -> str:
    return f"amazon_discounts_{(day or date.today()).isoformat()}.csv"


def record_json(record: ProductRecord) -> bytes:
    return orjson.dumps(record.model_dump(mode="json"))


def append_jsonl(path: Union[str, Path], record: ProductRecord):
    with open(path, "ab") as f:
        f.write(record_json(record) + b"\n")
