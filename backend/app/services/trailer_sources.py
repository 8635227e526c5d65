import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

import httpx

try:
    from backend.app.config import (
        BROWSER_USER_AGENT,
        PLEX_CLIENT_IDENTIFIER,
        PLEX_PRODUCT,
        PLEX_VERSION,
    )
    from backend.app.services.http_fetch import FetchError, fetch_json, fetch_text
    from backend.app.services.trailer_models import TrailerDescriptor
    from backend.app.services.wikidata import (
        APPLE_TV_MOVIE_ID_PROPERTY,
        ROTTEN_TOMATOES_ID_PROPERTY,
        lookup_cross_reference,
    )
except ModuleNotFoundError:
    from app.config import (
        BROWSER_USER_AGENT,
        PLEX_CLIENT_IDENTIFIER,
        PLEX_PRODUCT,
        PLEX_VERSION,
    )
    from app.services.http_fetch import FetchError, fetch_json, fetch_text
    from app.services.trailer_models import TrailerDescriptor
    from app.services.wikidata import (
        APPLE_TV_MOVIE_ID_PROPERTY,
        ROTTEN_TOMATOES_ID_PROPERTY,
        lookup_cross_reference,
    )

logger = logging.getLogger(__name__)

Resolver = Callable[[httpx.AsyncClient, str, str], Awaitable[TrailerDescriptor | None]]

APPLE_TV_SHOW_ID_PROPERTY = "P9751"
APPLE_TV_URL = "https://tv.apple.com/us/{kind}/{apple_id}"
APPLE_HLS_RE = re.compile(r'https://[^"\s]*\.m3u8[^"\s]*')

PLEX_ANONYMOUS_USER = "https://plex.tv/api/v2/users/anonymous"
PLEX_METADATA = "https://metadata.provider.plex.tv/library/metadata"
PLEX_MEDIA_TYPES = {"movie": 1, "series": 2}

ROTTEN_TOMATOES_BASE = "https://www.rottentomatoes.com/"
RT_PATH_RE = re.compile(r"(?:^|/)((?:m|tv)/.+)")
THEPLATFORM_RE = re.compile(r'https://link\.theplatform\.com/s/[^"\'\s<>]+')
RT_VIDEO_PAGE_RE = re.compile(
    r'"((?:https://www\.rottentomatoes\.com)?/(?:m|tv)/[^"\s]+/videos/[^"\s]*)"'
)
SMIL_VIDEO_TAG_RE = re.compile(r"<video\b([^>]*)>", re.IGNORECASE)
XML_ATTR_RE = re.compile(r'([\w:-]+)\s*=\s*"([^"]*)"')

DIGITAL_DIGEST_API = "https://trailers.digitaldigest.com/api/v1"

IMDB_TITLE_URL = "https://www.imdb.com/title/{imdb_id}/"
IMDB_VIDEO_URL = "https://www.imdb.com/video/{video_id}/"
IMDB_VIDEO_ID_RE = re.compile(r"/video/(vi\d+)")
IMDB_MP4_RE = re.compile(r'"url":"(https://imdb-video\.media-imdb\.com[^"]+\.mp4[^"]*)"')


@dataclass(frozen=True)
class SourceOutcome:
    source: str
    priority: int
    descriptor: TrailerDescriptor | None = None

    @property
    def found(self) -> bool:
        return self.descriptor is not None


@dataclass(frozen=True)
class TrailerSource:
    name: str
    priority: int
    resolver: Resolver

    async def resolve(self, client: httpx.AsyncClient, imdb_id: str, media_type: str = "movie") -> SourceOutcome:
        """
        Run the resolver and fold every failure into a not-found outcome.
        One broken source must never take the others down with it.
        """
        try:
            descriptor = await self.resolver(client, imdb_id, media_type)
        except Exception as exc:
            logger.debug("%s: no trailer for %s (%s: %s)", self.name, imdb_id, type(exc).__name__, exc)
            descriptor = None
        return SourceOutcome(source=self.name, priority=self.priority, descriptor=descriptor)


def _browser_headers() -> dict[str, str]:
    return {"User-Agent": BROWSER_USER_AGENT, "Accept-Language": "en-US,en"}


def _with_query(url: str, **params: str) -> str:
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def _unescape_url(raw: str) -> str:
    return raw.replace("\\u0026", "&").replace("&amp;", "&").replace("\\/", "/")


# ---------------------------
# Apple TV: wikidata -> page -> HLS
# ---------------------------

async def resolve_apple_tv(client: httpx.AsyncClient, imdb_id: str, media_type: str = "movie") -> TrailerDescriptor | None:
    if media_type == "series":
        prop, kind = APPLE_TV_SHOW_ID_PROPERTY, "show"
    else:
        prop, kind = APPLE_TV_MOVIE_ID_PROPERTY, "movie"

    apple_id = await lookup_cross_reference(client, imdb_id, prop)
    if not apple_id:
        return None

    page = await fetch_text(client, APPLE_TV_URL.format(kind=kind, apple_id=apple_id), headers=_browser_headers())
    match = APPLE_HLS_RE.search(page)
    if not match:
        return None
    return TrailerDescriptor(url=_unescape_url(match.group(0)), provider="Apple TV", quality="4K")


# ---------------------------
# Plex: anonymous token -> match -> extras
# ---------------------------

def _plex_headers(token: str | None = None) -> dict[str, str]:
    headers = {
        "Accept": "application/json",
        "X-Plex-Client-Identifier": PLEX_CLIENT_IDENTIFIER,
        "X-Plex-Product": PLEX_PRODUCT,
        "X-Plex-Version": PLEX_VERSION,
    }
    if token:
        headers["X-Plex-Token"] = token
    return headers


async def resolve_plex(client: httpx.AsyncClient, imdb_id: str, media_type: str = "movie") -> TrailerDescriptor | None:
    auth = await fetch_json(client, PLEX_ANONYMOUS_USER, method="POST", headers=_plex_headers())
    token = auth.get("authToken")
    if not token:
        return None

    matches = await fetch_json(
        client,
        f"{PLEX_METADATA}/matches",
        params={"type": PLEX_MEDIA_TYPES.get(media_type, 1), "guid": f"imdb://{imdb_id}"},
        headers=_plex_headers(token),
    )
    metadata = (matches.get("MediaContainer") or {}).get("Metadata") or []
    rating_key = metadata[0].get("ratingKey") if metadata else None
    if not rating_key:
        return None

    extras = await fetch_json(client, f"{PLEX_METADATA}/{rating_key}/extras", headers=_plex_headers(token))
    for item in (extras.get("MediaContainer") or {}).get("Metadata") or []:
        if item.get("subtype") != "trailer":
            continue
        media = item.get("Media") or []
        url = media[0].get("url") if media else None
        if url:
            return TrailerDescriptor(url=url, provider="Plex", quality="1080p")
        return None
    return None


# ---------------------------
# Rotten Tomatoes: wikidata -> page (-> video page) -> SMIL
# ---------------------------

def _rotten_tomatoes_path(slug: str) -> str:
    match = RT_PATH_RE.search(slug)
    path = match.group(1) if match else slug
    return path.strip("/")


def _find_theplatform_url(page: str) -> str | None:
    match = THEPLATFORM_RE.search(page)
    if not match:
        return None
    return _unescape_url(match.group(0))


def pick_best_smil_video(smil: str) -> tuple[str, int] | None:
    """Return ``(src, height)`` of the tallest ``<video>`` entry in a SMIL playlist."""
    candidates: list[tuple[str, int]] = []
    for tag in SMIL_VIDEO_TAG_RE.finditer(smil or ""):
        attrs = dict(XML_ATTR_RE.findall(tag.group(1)))
        src = attrs.get("src")
        if not src:
            continue
        try:
            height = int(attrs.get("height") or 0)
        except ValueError:
            height = 0
        candidates.append((src.replace("&amp;", "&"), height))
    if not candidates:
        return None
    candidates.sort(key=lambda item: item[1], reverse=True)
    return candidates[0]


async def _best_rendition(client: httpx.AsyncClient, platform_url: str) -> TrailerDescriptor | None:
    smil_url = _with_query(platform_url, formats="MPEG4", format="SMIL")
    try:
        smil = await fetch_text(client, smil_url, headers=_browser_headers())
    except FetchError as exc:
        logger.debug("Rotten Tomatoes SMIL unavailable (%s), using redirect form", exc)
        smil = ""
    best = pick_best_smil_video(smil)
    if best and best[0].startswith("http"):
        src, height = best
        return TrailerDescriptor(
            url=src,
            provider="Rotten Tomatoes",
            quality=f"{height}p" if height else "1080p",
        )
    redirect_url = _with_query(platform_url, formats="MPEG4", format="redirect")
    return TrailerDescriptor(url=redirect_url, provider="Rotten Tomatoes", quality="1080p")


async def resolve_rotten_tomatoes(client: httpx.AsyncClient, imdb_id: str, media_type: str = "movie") -> TrailerDescriptor | None:
    slug = await lookup_cross_reference(client, imdb_id, ROTTEN_TOMATOES_ID_PROPERTY)
    if not slug:
        return None

    page_url = f"{ROTTEN_TOMATOES_BASE}{_rotten_tomatoes_path(slug)}/"
    page = await fetch_text(client, page_url, headers=_browser_headers())
    platform_url = _find_theplatform_url(page)

    if not platform_url:
        video_link = RT_VIDEO_PAGE_RE.search(page)
        if not video_link:
            return None
        video_page = await fetch_text(client, urljoin(page_url, video_link.group(1)), headers=_browser_headers())
        platform_url = _find_theplatform_url(video_page)
        if not platform_url:
            return None

    return await _best_rendition(client, platform_url)


# ---------------------------
# Digital Digest: PeerTube search -> video -> best file
# ---------------------------

def _resolution_id(file_entry: dict) -> int:
    try:
        return int((file_entry.get("resolution") or {}).get("id") or 0)
    except (TypeError, ValueError):
        return 0


async def resolve_digital_digest(client: httpx.AsyncClient, imdb_id: str, media_type: str = "movie") -> TrailerDescriptor | None:
    headers = {"Accept": "application/json"}
    search = await fetch_json(
        client,
        f"{DIGITAL_DIGEST_API}/search/videos",
        params={"search": imdb_id, "count": 5},
        headers=headers,
    )
    hits = search.get("data") or []
    if not hits or not hits[0].get("uuid"):
        return None

    video = await fetch_json(client, f"{DIGITAL_DIGEST_API}/videos/{hits[0]['uuid']}", headers=headers)
    files = video.get("files") or []
    if not files:
        playlists = video.get("streamingPlaylists") or []
        files = (playlists[0].get("files") or []) if playlists else []
    if not files:
        return None

    best = sorted(files, key=_resolution_id, reverse=True)[0]
    url = best.get("fileUrl") or best.get("fileDownloadUrl")
    if not url:
        return None
    label = (best.get("resolution") or {}).get("label") or "1080p"
    return TrailerDescriptor(url=url, provider="Digital Digest", quality=label)


# ---------------------------
# IMDb: title page -> video page -> mp4
# ---------------------------

async def resolve_imdb(client: httpx.AsyncClient, imdb_id: str, media_type: str = "movie") -> TrailerDescriptor | None:
    page = await fetch_text(client, IMDB_TITLE_URL.format(imdb_id=imdb_id), headers=_browser_headers())
    video_match = IMDB_VIDEO_ID_RE.search(page)
    if not video_match:
        return None

    video_page = await fetch_text(
        client,
        IMDB_VIDEO_URL.format(video_id=video_match.group(1)),
        headers=_browser_headers(),
    )
    url_match = IMDB_MP4_RE.search(video_page)
    if not url_match:
        return None
    return TrailerDescriptor(url=url_match.group(1).replace("\\u0026", "&"), provider="IMDb", quality="1080p")


TRAILER_SOURCES: list[TrailerSource] = [
    TrailerSource(name="apple_tv", priority=0, resolver=resolve_apple_tv),
    TrailerSource(name="plex", priority=1, resolver=resolve_plex),
    TrailerSource(name="rotten_tomatoes", priority=2, resolver=resolve_rotten_tomatoes),
    TrailerSource(name="digital_digest", priority=3, resolver=resolve_digital_digest),
    TrailerSource(name="imdb", priority=4, resolver=resolve_imdb),
]

