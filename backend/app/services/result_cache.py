import threading
import time
from typing import Protocol

try:
    from backend.app.config import CACHE_TTL_SECONDS
    from backend.app.services.trailer_models import CACHE_SCHEMA_VERSION
except ModuleNotFoundError:
    from app.config import CACHE_TTL_SECONDS
    from app.services.trailer_models import CACHE_SCHEMA_VERSION

CACHE_URL_PREFIX = "https://cache/"


class TrailerCache(Protocol):
    def match(self, key: str) -> str | None: ...

    def put(self, key: str, value: str) -> None: ...


def cache_key(identifier: str, media_type: str = "movie", version: int = CACHE_SCHEMA_VERSION) -> str:
    # movie and series resolve through different upstream lookups
    return f"trailer:v{version}:{media_type}:{identifier}"


def cache_url(identifier: str, media_type: str = "movie", version: int = CACHE_SCHEMA_VERSION) -> str:
    return f"{CACHE_URL_PREFIX}{cache_key(identifier, media_type, version)}"


class MemoryTrailerCache:
    """
    In-process key/value store with a fixed TTL per entry.
    Expiry is passive: a stale entry is dropped when read, and every write
    sweeps out whatever else has expired.
    """

    def __init__(self, ttl_seconds: int = CACHE_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        self._entries: dict[str, tuple[float, str]] = {}
        self._lock = threading.Lock()

    def match(self, key: str) -> str | None:
        with self._lock:
            hit = self._entries.get(key)
            if not hit:
                return None
            expires_at, value = hit
            if time.time() > expires_at:
                self._entries.pop(key, None)
                return None
            return value

    def put(self, key: str, value: str) -> None:
        now = time.time()
        with self._lock:
            stale = [k for k, (expires_at, _) in self._entries.items() if now > expires_at]
            for k in stale:
                del self._entries[k]
            self._entries[key] = (now + self.ttl_seconds, value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
