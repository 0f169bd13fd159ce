import httpx
import pytest

from discount_hunter.config import make_settings
from discount_hunter.fetcher import FetchClient, HttpBackend


def product_html(
    title="boAt Airdopes 141 Bluetooth TWS Earbuds",
    price="₹1,299.00",
    mrp="₹4,490.00",
    coupon=None,
    badge=None,
):
    parts = ["<html><head><title>Amazon.in: Electronics</title></head><body>"]
    if title:
        parts.append(f'<span id="productTitle" class="a-size-large"> {title} </span>')
    parts.append('<div id="corePriceDisplay_desktop_feature_div">')
    if price:
        parts.append(f'<span class="a-price priceToPay"><span class="a-offscreen">{price}</span>'
                     f'<span class="a-price-whole">{price.lstrip("₹").split(".")[0]}.</span></span>')
    if mrp:
        parts.append(f'<span class="a-price a-text-price" data-a-strike="true"><span class="a-offscreen">{mrp}</span></span>')
    parts.append("</div>")
    if coupon:
        parts.append(f'<div id="promoPriceBlockMessage_feature_div"><label id="couponTextpctch">{coupon}</label></div>')
    if badge:
        parts.append(f'<div id="dealBadge_feature_div"><span class="a-badge-text">{badge}</span></div>')
    parts.append('<img id="landingImage" data-old-hires="https://m.media-amazon.com/images/I/61abc.jpg" src="x.jpg">')
    parts.append("</body></html>")
    return "\n".join(parts)


def asin_from(request: httpx.Request) -> str:
    return request.url.path.rsplit("/", 1)[-1]


def make_client(settings, handler) -> FetchClient:
    backend = HttpBackend(settings.user_agent, settings.request_timeout, transport=httpx.MockTransport(handler))
    return FetchClient(settings, backend=backend)


@pytest.fixture
def settings():
    return make_settings(
        concurrency=3,
        request_timeout=2.0,
        max_attempts=3,
        backoff_base=0.001,
        backoff_jitter=0.0,
        backoff_max=0.01,
        min_request_interval=0.0,
    )
