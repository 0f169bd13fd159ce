import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import urlparse

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .config import Settings, get_settings
from .errors import FetchError
from .identifiers import canonical_asin
from .ratelimit import RateLimiter, backoff_delay
from .schema import RawDocument, utcnow

logger = logging.getLogger(__name__)

# robot-check interstitial served with HTTP 200
CAPTCHA_MARKERS = (
    "/errors/validatecaptcha",
    "<title>robot check</title>",
    "type the characters you see in this image",
    "api-services-support@amazon.com",
)


@dataclass
class BackendResponse:
    status_code: int
    body: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "text/html")


class HttpBackend:
    """Plain HTTP GET through an httpx.AsyncClient."""

    def __init__(self, user_agent: str, timeout: float, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.user_agent = user_agent
        self.timeout = timeout
        self.transport = transport
        self.client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self.client = httpx.AsyncClient(
            headers={
                "User-Agent": self.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-IN,en;q=0.9",
            },
            timeout=self.timeout,
            follow_redirects=True,
            transport=self.transport,
        )
        logger.debug("HttpBackend client opened")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.debug("HttpBackend client closed")

    async def get(self, url: str) -> BackendResponse:
        if self.client is None:
            raise RuntimeError("HttpBackend used outside of 'async with'")
        try:
            resp = await self.client.get(url)
        except httpx.TimeoutException as e:
            raise FetchError(FetchError.TIMEOUT, f"Timed out fetching {url}", url=url, original_error=e) from e
        except httpx.RequestError as e:
            raise FetchError(FetchError.TRANSPORT_ERROR, f"Network error fetching {url}: {e}",
                             url=url, original_error=e) from e
        return BackendResponse(resp.status_code, resp.text, {k.lower(): v for k, v in resp.headers.items()})


async def init_browser():
    pw = await async_playwright().start()
    browser = await pw.chromium.launch(headless=True)
    return pw, browser


class BrowserBackend:
    """
    Renders the page in headless Chromium. Slower than HttpBackend but gets
    past pages that only fill the price block with JavaScript.
    A browser may be passed in; otherwise one is launched on enter.
    """

    def __init__(self, user_agent: str, timeout: float, browser=None, settle_ms: int = 500):
        self.user_agent = user_agent
        self.timeout = timeout
        self.settle_ms = settle_ms
        self._browser = browser
        self._pw = None

    async def __aenter__(self):
        if self._browser is None:
            self._pw, self._browser = await init_browser()
            logger.debug("BrowserBackend launched chromium")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._pw is not None:
            await self._browser.close()
            await self._pw.stop()
            self._pw = self._browser = None

    async def get(self, url: str) -> BackendResponse:
        if self._browser is None:
            raise RuntimeError("BrowserBackend used outside of 'async with'")
        ctx = await self._browser.new_context(user_agent=self.user_agent)
        try:
            page = await ctx.new_page()
            response = await page.goto(url, timeout=self.timeout * 1000, wait_until="domcontentloaded")
            await page.wait_for_timeout(self.settle_ms + random.randint(0, self.settle_ms))
            html = await page.content()
        except PlaywrightTimeoutError as e:
            raise FetchError(FetchError.TIMEOUT, f"Timed out loading {url}", url=url, original_error=e) from e
        except PlaywrightError as e:
            raise FetchError(FetchError.TRANSPORT_ERROR, f"Browser error loading {url}: {e}",
                             url=url, original_error=e) from e
        finally:
            await ctx.close()
        if response is None:
            return BackendResponse(200, html, {})
        return BackendResponse(response.status, html, {k.lower(): v for k, v in response.headers.items()})


def _retry_after(headers: Dict[str, str]) -> Optional[float]:
    value = headers.get("retry-after")
    try:
        return float(value) if value else None
    except ValueError:
        # HTTP-date form; fall back to our own backoff
        return None


def classify_response(identifier: str, url: str, resp: BackendResponse) -> None:
    """Raise the matching FetchError for an unusable response."""
    status = resp.status_code
    if status in (404, 410):
        raise FetchError(FetchError.NOT_FOUND, f"Product not found (HTTP {status})",
                         identifier=identifier, status_code=status, url=url)
    if status in (429, 503):
        raise FetchError(FetchError.RATE_LIMITED, f"Rate limited (HTTP {status})", identifier=identifier,
                         status_code=status, url=url, retry_after=_retry_after(resp.headers))
    if status >= 400:
        raise FetchError(FetchError.TRANSPORT_ERROR, f"HTTP {status}",
                         identifier=identifier, status_code=status, url=url)
    lowered = resp.body[:20000].lower()
    if any(marker in lowered for marker in CAPTCHA_MARKERS):
        raise FetchError(FetchError.RATE_LIMITED, "Robot check page served",
                         identifier=identifier, status_code=status, url=url)


class FetchClient:
    """
    Fetches one product document per call, with per-host request spacing,
    a hard per-request timeout and backoff retries for transient failures.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        backend=None,
        limiter: Optional[RateLimiter] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or get_settings()
        self.backend = backend or HttpBackend(self.settings.user_agent, self.settings.request_timeout)
        self.limiter = limiter or RateLimiter(self.settings.min_request_interval)
        self._rng = rng or random.Random()

    async def __aenter__(self):
        await self.backend.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.backend.__aexit__(exc_type, exc_val, exc_tb)

    def product_url(self, asin: str) -> str:
        return f"{self.settings.product_base}/dp/{asin}"

    async def fetch(self, identifier: str) -> RawDocument:
        asin = canonical_asin(identifier)
        url = self.product_url(asin)
        s = self.settings

        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._fetch_once(identifier, asin, url)
            except FetchError as e:
                e.identifier = e.identifier or identifier
                e.attempts = attempt
                if not e.retryable or attempt >= s.max_attempts:
                    raise
                delay = backoff_delay(attempt, s.backoff_base, s.backoff_jitter, s.backoff_max,
                                      retry_after=e.retry_after, rng=self._rng)
                logger.warning("[FETCH] %s %s, retrying in %.2fs (attempt %d/%d)",
                               asin, e.kind, delay, attempt, s.max_attempts)
                await asyncio.sleep(delay)

    async def _fetch_once(self, identifier: str, asin: str, url: str) -> RawDocument:
        await self.limiter.acquire(urlparse(url).netloc)
        logger.debug("[FETCH] GET %s", url)
        started = time.monotonic()
        fetched_at = utcnow()
        try:
            resp = await asyncio.wait_for(self.backend.get(url), timeout=self.settings.request_timeout)
        except asyncio.TimeoutError as e:
            raise FetchError(FetchError.TIMEOUT, f"Timed out after {self.settings.request_timeout:g}s",
                             identifier=identifier, url=url, original_error=e) from e
        duration_ms = (time.monotonic() - started) * 1000

        classify_response(identifier, url, resp)
        logger.debug("[FETCH] %s HTTP %d in %.0fms", asin, resp.status_code, duration_ms)
        return RawDocument(
            identifier=asin,
            url=url,
            body=resp.body,
            content_type=resp.content_type,
            status_code=resp.status_code,
            fetched_at=fetched_at,
            duration_ms=duration_ms,
        )
