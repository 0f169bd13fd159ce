import csv
import io
from datetime import date

import orjson

from discount_hunter.errors import FetchError
from discount_hunter.export import CSV_COLUMNS, append_jsonl, export_filename, to_csv
from discount_hunter.normalizer import build_record, error_record
from discount_hunter.schema import BatchResult, Coupon, CouponKind, DealType, ParsedProduct, Stats


def sample_records():
    ok = build_record("B0C1234567", ParsedProduct(
        title='Kettle 1.5L, Steel "Pro"',
        current_price=1299.0,
        mrp=1999.5,
        coupon=Coupon(kind=CouponKind.PERCENTAGE, value=10, text="10%"),
        deal_type=DealType.LIGHTNING,
    ))
    plain = build_record("B0C7654321", ParsedProduct(title="Mug", current_price=250.0))
    err = error_record("b0bad", FetchError(FetchError.NOT_FOUND, "Product not found (HTTP 404)"))
    return [ok, plain, err]


def test_header_and_rows():
    text = to_csv(sample_records())
    lines = text.splitlines()
    assert lines[0] == ",".join(CSV_COLUMNS)
    assert lines[1] == 'B0C1234567,"Kettle 1.5L, Steel ""Pro""",1299,1999.5,Yes,10%,Lightning Deal,1169,active_discount'
    assert lines[2] == "B0C7654321,Mug,250,250,No,,None,250,no_discount"
    assert lines[3] == "b0bad,Failed to load product,0,0,No,,None,0,error"


def test_csv_reads_back_with_standard_reader():
    rows = list(csv.reader(io.StringIO(to_csv(sample_records()))))
    assert rows[1][1] == 'Kettle 1.5L, Steel "Pro"'
    assert len(rows) == 4
    assert all(len(r) == len(CSV_COLUMNS) for r in rows)


def test_accepts_batch_result():
    recs = sample_records()
    result = BatchResult(records=tuple(recs), stats=Stats.from_records(recs, total=3))
    assert to_csv(result) == to_csv(recs)


def test_empty_export_is_header_only():
    assert to_csv([]) == ",".join(CSV_COLUMNS) + "\n"


def test_export_filename():
    assert export_filename(date(2024, 11, 3)) == "amazon_discounts_2024-11-03.csv"


def test_append_jsonl(tmp_path):
    path = tmp_path / "out.jsonl"
    for record in sample_records():
        append_jsonl(path, record)
    rows = [orjson.loads(line) for line in path.read_bytes().splitlines()]
    assert [r["asin"] for r in rows] == ["B0C1234567", "B0C7654321", "b0bad"]
    assert rows[0]["has_coupon"] is True
    assert rows[0]["deal_type"] == "Lightning Deal"
    assert rows[2]["status"] == "error"
    assert rows[2]["error_kind"] == "not_found"
