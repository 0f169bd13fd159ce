import json

import pytest

from conftest import product_html
from discount_hunter.adapters.adapter_generic import parse_price
from discount_hunter.errors import ParseError
from discount_hunter.parser import classify_deal, extract_product, parse_coupon
from discount_hunter.schema import CouponKind, DealType, RawDocument

URL = "https://www.amazon.in/dp/B0C1234567"


def doc(body, content_type="text/html; charset=utf-8"):
    return RawDocument(identifier="B0C1234567", url=URL, body=body, content_type=content_type)


@pytest.mark.parametrize("text,expected", [
    ("₹1,299.00", 1299.0),
    ("₹1,29,999.00", 129999.0),
    ("1,299", 1299.0),
    ("1.299,00 €", 1299.0),
    ("12,50", 12.5),
    ("1,299.", 1299.0),
    ("Rs. 499", 499.0),
    (799, 799.0),
    ("no price here", None),
    (None, None),
])
def test_parse_price(text, expected):
    assert parse_price(text) == expected


@pytest.mark.parametrize("badge,deal,promo", [
    ("Lightning Deal", DealType.LIGHTNING, None),
    ("Deal of the Day", DealType.DEAL_OF_DAY, None),
    ("Limited time deal", DealType.LIMITED_TIME, None),
    ("Prime Exclusive Deal", DealType.PRIME_EXCLUSIVE, None),
    ("Prime Day Deal", DealType.PRIME_EXCLUSIVE, None),
    ("None", DealType.NONE, None),
    ("Great Indian Festival", DealType.NONE, "Great Indian Festival"),
    ("", DealType.NONE, None),
    (None, DealType.NONE, None),
])
def test_classify_deal(badge, deal, promo):
    assert classify_deal(badge) == (deal, promo)


def test_parse_coupon_percentage_wins():
    c = parse_coupon("Apply ₹50 coupon or Save 5% with coupon")
    assert c.kind == CouponKind.PERCENTAGE
    assert c.value == 5.0
    assert c.text == "5%"


def test_parse_coupon_absolute():
    c = parse_coupon("Apply ₹1,000 coupon Terms")
    assert c.kind == CouponKind.ABSOLUTE
    assert c.value == 1000.0
    assert c.text == "₹1000"


def test_parse_coupon_without_amount():
    assert parse_coupon("Apply coupon") is None
    assert parse_coupon(None) is None


class TestAmazonPage:

    def test_core_fields(self):
        p = extract_product(doc(product_html()))
        assert p.title == "boAt Airdopes 141 Bluetooth TWS Earbuds"
        assert p.current_price == 1299.0
        assert p.mrp == 4490.0
        assert p.currency == "INR"
        assert p.coupon is None
        assert p.deal_type == DealType.NONE
        assert p.image_url == "https://m.media-amazon.com/images/I/61abc.jpg"

    def test_coupon_and_badge(self):
        p = extract_product(doc(product_html(coupon="Apply 5% coupon", badge="Lightning Deal")))
        assert p.coupon.kind == CouponKind.PERCENTAGE
        assert p.coupon.value == 5.0
        assert p.deal_type == DealType.LIGHTNING
        assert p.promo_text is None

    def test_unknown_badge_kept_as_promo_text(self):
        p = extract_product(doc(product_html(badge="Great Indian Festival")))
        assert p.deal_type == DealType.NONE
        assert p.promo_text == "Great Indian Festival"

    def test_missing_mrp_is_tolerated(self):
        p = extract_product(doc(product_html(mrp=None)))
        assert p.mrp is None

    def test_missing_title_raises(self):
        with pytest.raises(ParseError) as exc:
            extract_product(doc(product_html(title=None)))
        assert exc.value.kind == ParseError.MISSING_FIELD
        assert exc.value.field == "title"

    def test_missing_price_raises(self):
        with pytest.raises(ParseError) as exc:
            extract_product(doc(product_html(price=None)))
        assert exc.value.field == "current_price"

    def test_json_ld_fallback(self):
        ld = {"@context": "https://schema.org", "@type": "Product", "name": "Steel Bottle 1L",
              "image": ["https://example.in/b.jpg"],
              "offers": {"@type": "Offer", "price": "349.00", "priceCurrency": "INR"}}
        html = f'<html><head><script type="application/ld+json">{json.dumps(ld)}</script></head><body></body></html>'
        p = extract_product(doc(html))
        assert p.title == "Steel Bottle 1L"
        assert p.current_price == 349.0
        assert p.currency == "INR"
        assert p.image_url == "https://example.in/b.jpg"


class TestJsonDocument:

    def test_backend_json(self):
        body = json.dumps({"title": "Trimmer", "currentPrice": 1200, "mrp": 1500, "hasCoupon": True,
                           "couponValue": "10%", "dealType": "Deal of the Day", "promoText": "Bank offer",
                           "isValid": True})
        p = extract_product(doc(body, "application/json"))
        assert p.title == "Trimmer"
        assert p.current_price == 1200.0
        assert p.mrp == 1500.0
        assert p.coupon.kind == CouponKind.PERCENTAGE
        assert p.deal_type == DealType.DEAL_OF_DAY
        assert p.promo_text == "Bank offer"

    def test_has_coupon_false_ignores_coupon_value(self):
        body = json.dumps({"title": "Trimmer", "currentPrice": 1200, "hasCoupon": False, "couponValue": "500"})
        assert extract_product(doc(body, "application/json")).coupon is None

    def test_invalid_flag(self):
        body = json.dumps({"isValid": False})
        with pytest.raises(ParseError) as exc:
            extract_product(doc(body, "application/json"))
        assert exc.value.kind == ParseError.MALFORMED

    def test_broken_json(self):
        with pytest.raises(ParseError) as exc:
            extract_product(doc('{"title": "x", ', "application/json"))
        assert exc.value.kind == ParseError.MALFORMED

    def test_wrongly_typed_fields_are_malformed(self):
        for body in ({"title": 123, "currentPrice": 1200},
                     {"title": "Trimmer", "currentPrice": 1200, "dealType": ["Lightning Deal"]},
                     {"title": "Trimmer", "currentPrice": [1200]}):
            with pytest.raises(ParseError) as exc:
                extract_product(doc(json.dumps(body), "application/json"))
            assert exc.value.kind == ParseError.MALFORMED

    def test_non_finite_price_is_malformed(self):
        with pytest.raises(ParseError) as exc:
            extract_product(doc('{"title": "Kettle", "currentPrice": 1e400}', "application/json"))
        assert exc.value.kind == ParseError.MALFORMED

    def test_invalid_flag_as_string(self):
        body = json.dumps({"title": "Trimmer", "currentPrice": 1200, "isValid": "false"})
        with pytest.raises(ParseError) as exc:
            extract_product(doc(body, "application/json"))
        assert exc.value.kind == ParseError.MALFORMED


def test_overlong_html_price_is_malformed():
    with pytest.raises(ParseError) as exc:
        extract_product(doc(product_html(price="₹" + "9" * 400)))
    assert exc.value.kind == ParseError.MALFORMED


def test_classify_deal_ignores_non_text():
    assert classify_deal(["Lightning Deal"]) == (DealType.NONE, None)
    assert classify_deal(5) == (DealType.NONE, None)


def test_parse_coupon_ignores_unreadable_percentage():
    assert parse_coupon("1000% off") is None
    assert parse_coupon("Save 12.5% with coupon").value == 12.5


def test_parse_price_rejects_non_finite():
    assert parse_price(float("inf")) is None
    assert parse_price(float("nan")) is None
    assert parse_price(10 ** 400) is None
