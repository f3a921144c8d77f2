# config.py
import os

BASE_URL = os.getenv("BASE_URL", "https://ccios.cc").rstrip("/")

HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36",
    "Referer": f"{BASE_URL}/",
}

REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT_SECONDS", 8))
MAX_REDIRECTS = int(os.getenv("MAX_REDIRECTS", 5))

# Site strings that are never real content
BRAND = "策驰影院"
# listing titles containing this are site promo tiles
BRAND_MARKER = "策驰"
SKIP_SECTION_MARKERS = ("公告", "永不")
CATEGORIES = ["tv", "movie", "anime", "playlet"]

# --- Redis ---
REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST", "127.0.0.1")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD") or None
REDIS_DB = int(os.getenv("REDIS_DB", 0))
CACHE_NAMESPACE = os.getenv("CACHE_NAMESPACE", "ccios")

# --- Prefetch ---
MAX_CONCURRENT_PREFETCH = int(os.getenv("MAX_CONCURRENT_PREFETCH", 3))
PREFETCH_MAX_QUEUED = int(os.getenv("PREFETCH_MAX_QUEUED", 200))
DETAIL_EPISODE_PREFETCH = 3   # episodes warmed after a background detail prefetch
NEXT_EPISODE_PREFETCH = 5     # episodes warmed after the current one is played
HOME_PREFETCH_ITEMS = 10
CATEGORY_PREFETCH_ITEMS = 5
MAX_BULK_DETAIL = 20
MAX_BULK_PLAY = 50

# --- Refresh jobs ---
HOME_REFRESH_INTERVAL = int(os.getenv("HOME_REFRESH_SECONDS", 25 * 60))
CATEGORY_REFRESH_INTERVAL = int(os.getenv("CATEGORY_REFRESH_SECONDS", 12 * 60))
CATEGORY_REFRESH_PAGES = int(os.getenv("CATEGORY_REFRESH_PAGES", 3))
HOME_REFRESH_ITEMS = 15
STARTUP_DELAY = float(os.getenv("STARTUP_DELAY_SECONDS", 5))
PREFETCH_DELAY = 0.5
PAGE_DELAY = 0.3

PORT = int(os.getenv("PORT", 8080))
