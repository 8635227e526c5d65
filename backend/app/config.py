import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_flag(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


CACHE_TTL_SECONDS = _env_int("TRAILER_CACHE_TTL_SECONDS", 24 * 60 * 60)  # 24 hours
FETCH_TIMEOUT_SECONDS = _env_float("TRAILER_FETCH_TIMEOUT_SECONDS", 8.0)
TITLE_LOOKUP_ENABLED = _env_flag("TRAILER_TITLE_LOOKUP", True)
EDGE_LOCATION = (os.getenv("EDGE_LOCATION") or "").strip() or None
LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()

USER_AGENT = (os.getenv("TRAILER_USER_AGENT") or "TrailerResolver/1.0").strip()
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

PLEX_CLIENT_IDENTIFIER = (os.getenv("PLEX_CLIENT_IDENTIFIER") or "trailer-resolver").strip()
PLEX_PRODUCT = (os.getenv("PLEX_PRODUCT") or "Plex Web").strip()
PLEX_VERSION = (os.getenv("PLEX_VERSION") or "4.141.1").strip()

MANIFEST = {
    "id": "io.trailerresolver.lite",
    "version": "1.1.0",
    "name": "Trailer Resolver",
    "description": "Trailer addon - Apple TV, Plex, Rotten Tomatoes, Digital Digest, IMDb",
    "logo": "https://raw.githubusercontent.com/trailer-resolver/trailer-resolver/main/icon.png",
    "resources": ["meta", "stream"],
    "types": ["movie", "series"],
    "idPrefixes": ["tt"],
    "catalogs": [],
}
