import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "render-proxy")
HOST = os.environ.get("HOSTNAME", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8080"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "info").lower()

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

# Retry loop
FETCH_MAX_ATTEMPTS = int(os.getenv("FETCH_MAX_ATTEMPTS", "3"))
FETCH_BACKOFF_BASE = float(os.getenv("FETCH_BACKOFF_BASE", "1.0"))
# Overall budget for one fetch including backoff, 0 disables it
FETCH_DEADLINE = float(os.getenv("FETCH_DEADLINE", "0"))

# Renderer waits, in milliseconds as the renderer expects them
NAVIGATION_TIMEOUT_MS = int(os.getenv("NAVIGATION_TIMEOUT_MS", "30000"))
NETWORK_IDLE_TIMEOUT_MS = int(os.getenv("NETWORK_IDLE_TIMEOUT_MS", "10000"))
CHALLENGE_DELAY_MS = int(os.getenv("CHALLENGE_DELAY_MS", "5000"))
CHALLENGE_IDLE_TIMEOUT_MS = int(os.getenv("CHALLENGE_IDLE_TIMEOUT_MS", "15000"))
SETTLE_IDLE_TIMEOUT_MS = int(os.getenv("SETTLE_IDLE_TIMEOUT_MS", "15000"))

RENDER_HEADLESS = os.getenv("RENDER_HEADLESS", "true").lower() == "true"
RENDER_MAX_SESSIONS = int(os.getenv("RENDER_MAX_SESSIONS", "8"))
RENDER_QUEUE_TIMEOUT = float(os.getenv("RENDER_QUEUE_TIMEOUT", "30"))

ASSET_CACHE_TTL = float(os.getenv("ASSET_CACHE_TTL", "3600"))
ASSET_TIMEOUT = float(os.getenv("ASSET_TIMEOUT", "10"))
ASSET_MAX_REDIRECTS = int(os.getenv("ASSET_MAX_REDIRECTS", "5"))

COOKIE_JAR = os.getenv("COOKIE_JAR", "InMemoryCookieJar")
ASSET_CACHE = os.getenv("ASSET_CACHE", "InMemoryAssetCache")

TRUST_FORWARDED_HEADERS = (
    os.getenv("TRUST_FORWARDED_HEADERS", "false").lower() == "true"
)

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Edge/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Safari/605.1.15",
]

# Substrings of the interstitial shown while an anti-bot check runs
CHALLENGE_MARKERS = ("cf-browser-verification", "cf_chl_prog")
