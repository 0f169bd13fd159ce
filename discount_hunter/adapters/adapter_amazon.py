# adapter_amazon.py
from typing import Dict, Iterable, Optional

from bs4 import BeautifulSoup

from .adapter_generic import infer_currency, parse_price

TITLE_SELECTORS = ["#productTitle", "#title span", "h1#title"]

PRICE_SELECTORS = [
    "#corePriceDisplay_desktop_feature_div .priceToPay .a-offscreen",
    "#corePriceDisplay_desktop_feature_div .a-price:not([data-a-strike]) .a-offscreen",
    "#corePrice_feature_div .a-price .a-offscreen",
    ".apexPriceToPay .a-offscreen",
    "#priceblock_dealprice",
    "#priceblock_ourprice",
    "#price_inside_buybox",
    ".priceToPay span.a-price-whole",
    "span.a-price-whole",
]

MRP_SELECTORS = [
    ".basisPrice .a-offscreen",
    "span.a-price.a-text-price[data-a-strike='true'] .a-offscreen",
    ".a-text-price[data-a-strike] .a-offscreen",
    "#corePriceDisplay_desktop_feature_div span.a-price.a-text-price .a-offscreen",
    "#priceblock_listprice",
    "#listPrice",
]

COUPON_SELECTORS = [
    "#couponBadgeRegularVpc",
    "label[id^='couponText']",
    "#couponText",
    "#promoPriceBlockMessage_feature_div .couponLabelText",
    ".couponBadge",
    "[data-csa-c-content-id='coupon']",
]

BADGE_SELECTORS = [
    "#dealBadge_feature_div .a-badge-text",
    "#dealBadgeSupportingText",
    "#dealBadge_feature_div",
    ".a-badge-limited-time-deal",
    ".dealBadge",
    "#deal_badge",
    "#primeExclusiveBadge_feature_div",
    "#lightningDealBadge",
]

IMAGE_SELECTORS = ["#landingImage", "#imgBlkFront", "#main-image"]


def _text(soup: BeautifulSoup, selectors: Iterable[str]) -> Optional[str]:
    for sel in selectors:
        node = soup.select_one(sel)
        if node:
            txt = " ".join(node.get_text(" ", strip=True).split())
            if txt:
                return txt
    return None


def _price(soup: BeautifulSoup, selectors: Iterable[str]):
    for sel in selectors:
        node = soup.select_one(sel)
        if not node:
            continue
        txt = node.get("content") or node.get_text(" ", strip=True)
        price = parse_price(txt)
        if price is not None:
            return price, txt
    return None, None


def _coupon_text(soup: BeautifulSoup) -> Optional[str]:
    for sel in COUPON_SELECTORS:
        for node in soup.select(sel):
            txt = " ".join(node.get_text(" ", strip=True).split())
            # hidden coupon templates ship without an amount
            if txt and "coupon" in txt.lower() and any(ch.isdigit() for ch in txt):
                return txt
    return None


def extract_amazon(html: str) -> Dict:
    """
    Amazon product detail page (/dp/<ASIN>). Reads the buy-box price, the
    struck-through list price (MRP), clipped-coupon wording and deal badges.
    Missing nodes come back as None.
    """
    soup = BeautifulSoup(html, "lxml")

    price, price_txt = _price(soup, PRICE_SELECTORS)
    mrp, _ = _price(soup, MRP_SELECTORS)

    image_url = None
    for sel in IMAGE_SELECTORS:
        img = soup.select_one(sel)
        if img:
            image_url = img.get("data-old-hires") or img.get("src")
            if image_url:
                break

    return {
        "title": _text(soup, TITLE_SELECTORS),
        "current_price": price,
        "mrp": mrp,
        "currency": infer_currency(price_txt),
        "coupon_text": _coupon_text(soup),
        "badge_text": _text(soup, BADGE_SELECTORS),
        "image_url": image_url,
    }
