from __future__ import annotations

import os


def env_int(name: str, default: int, *, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if min_value is not None:
        value = max(min_value, value)
    if max_value is not None:
        value = min(max_value, value)
    return value


def env_float(name: str, default: float, *, min_value: float | None = None, max_value: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if min_value is not None:
        value = max(min_value, value)
    if max_value is not None:
        value = min(max_value, value)
    return value


CAPTURE_TIMEOUT_MS = env_int("CAPTURE_TIMEOUT_MS", 30000, min_value=5000, max_value=120000)
REPLAY_TIMEOUT_SEC = env_float("REPLAY_TIMEOUT_SEC", 20.0, min_value=1.0, max_value=120.0)
BATCH_TIMEOUT_SEC = env_float("BATCH_TIMEOUT_SEC", 180.0, min_value=10.0, max_value=900.0)
MAX_CONCURRENT_ITEMS = env_int("MAX_CONCURRENT_ITEMS", 4, min_value=1, max_value=16)
TOP_N = env_int("TOP_N", 5, min_value=1, max_value=50)
HEADLESS = os.getenv("PLAYWRIGHT_HEADLESS", "1") != "0"
SCRAPER_MODE = os.getenv("SCRAPER_MODE", "shared").strip().lower()

DEFAULT_LAT = "28.65420"
DEFAULT_LNG = "77.23730"
DEFAULT_ITEM = "Biryani"
MAX_ITEM_LENGTH = env_int("MAX_ITEM_LENGTH", 80, min_value=10, max_value=200)

SEARCH_URL = "https://www.swiggy.com/search?query={query}"
# Substring identifying the platform's internal search API among the page's requests.
API_MARKER = "v3?"
LAT_PARAM = "lat"
LNG_PARAM = "lng"
TERM_PARAM = "str"

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/123.0.0.0 Safari/537.36"
)
BROWSER_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]

IMAGE_CDN_PREFIX = (
    "https://media-assets.swiggy.com/swiggy/image/upload/"
    "fl_lossy,f_auto,q_auto,w_208,h_208,c_fit/"
)

# Platform prices are in paise.
PRICE_MINOR_UNITS = 100
