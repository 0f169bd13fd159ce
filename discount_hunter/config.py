import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, HttpUrl, ValidationError

from .errors import ConfigurationError

DEFAULT_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    concurrency: int = Field(default=3, gt=0, alias="SCRAPE_CONCURRENCY")
    request_timeout: float = Field(default=20.0, gt=0, alias="SCRAPE_REQUEST_TIMEOUT")
    max_attempts: int = Field(default=3, gt=0, alias="SCRAPE_MAX_ATTEMPTS")
    backoff_base: float = Field(default=1.0, gt=0, alias="SCRAPE_BACKOFF_BASE")
    backoff_jitter: float = Field(default=0.5, ge=0, alias="SCRAPE_BACKOFF_JITTER")
    backoff_max: float = Field(default=30.0, gt=0, alias="SCRAPE_BACKOFF_MAX")
    # spacing between requests to the same host; 0 disables the limiter
    min_request_interval: float = Field(default=1.0, ge=0, alias="SCRAPE_MIN_INTERVAL")
    base_url: HttpUrl = Field(default="https://www.amazon.in", alias="SCRAPE_BASE_URL")
    user_agent: str = Field(default=DEFAULT_UA, alias="SCRAPE_USER_AGENT")
    currency: str = Field(default="INR", alias="SCRAPE_CURRENCY")
    currency_symbol: str = Field(default="₹", alias="SCRAPE_CURRENCY_SYMBOL")
    case_insensitive_dedup: bool = Field(default=False, alias="SCRAPE_CASE_INSENSITIVE")
    abort_in_flight: bool = Field(default=False, alias="SCRAPE_ABORT_IN_FLIGHT")

    @property
    def product_base(self) -> str:
        return str(self.base_url).rstrip("/")


def make_settings(**values) -> Settings:
    """Build Settings from field names or env aliases, failing fast on bad values."""
    try:
        return Settings(**values)
    except ValidationError as exc:
        first = exc.errors()[0]
        key = str(first["loc"][0]) if first.get("loc") else None
        detail = "; ".join(f"{e['loc'][0] if e.get('loc') else '?'}: {e['msg']}" for e in exc.errors())
        raise ConfigurationError(f"Invalid scrape configuration: {detail}", config_key=key) from exc


def _load_dotenv():
    # Load from repo root if present, otherwise rely on environment variables.
    root_env = Path(__file__).resolve().parents[1] / ".env"
    if root_env.exists():
        load_dotenv(root_env)
    else:
        load_dotenv()


@lru_cache()
def get_settings() -> Settings:
    _load_dotenv()
    env = {k: v for k, v in os.environ.items() if k.startswith("SCRAPE_")}
    return make_settings(**env)
