from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

try:
    from backend.app.config import CACHE_TTL_SECONDS, EDGE_LOCATION, LOG_LEVEL, MANIFEST
    from backend.app.logging_setup import configure_logging
    from backend.app.services.result_cache import MemoryTrailerCache
    from backend.app.services.trailer_models import ResolutionResult, TrailerDescriptor
    from backend.app.services.trailer_resolver import resolve_all
except ModuleNotFoundError:
    from app.config import CACHE_TTL_SECONDS, EDGE_LOCATION, LOG_LEVEL, MANIFEST
    from app.logging_setup import configure_logging
    from app.services.result_cache import MemoryTrailerCache
    from app.services.trailer_models import ResolutionResult, TrailerDescriptor
    from app.services.trailer_resolver import resolve_all


# ---------------------------
# Helpers
# ---------------------------

SUPPORTED_TYPES = {"movie", "series"}
BINGE_GROUP = "trailer-resolver"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def parse_identifier(raw_id: str) -> str:
    """``tt0111161:1:2`` -> ``tt0111161``. Anything after the first colon is ignored."""
    return (raw_id or "").split(":", 1)[0].strip()


def edge_location(request: Request) -> str | None:
    # cf-ray looks like "8a1b2c3d4e5f6789-LHR"
    ray = (request.headers.get("cf-ray") or "").strip()
    if "-" in ray:
        return ray.rsplit("-", 1)[1] or EDGE_LOCATION
    return EDGE_LOCATION


def provider_label(descriptor: TrailerDescriptor, preferred: bool = False) -> str:
    label = descriptor.provider
    if descriptor.quality:
        label = f"{label} {descriptor.quality}"
    if preferred:
        label = f"{label} (preferred)"
    return label


def build_meta_links(result: ResolutionResult) -> list[dict[str, str]]:
    return [
        {"trailers": link.url, "provider": provider_label(link, preferred=index == 0)}
        for index, link in enumerate(result.links)
    ]


def build_streams(result: ResolutionResult) -> list[dict[str, Any]]:
    streams = []
    for index, link in enumerate(result.links):
        streams.append(
            {
                "url": link.url,
                "name": link.quality or "Trailer",
                "title": f"Trailer ({provider_label(link, preferred=index == 0)})",
                "behaviorHints": {
                    "notWebReady": ".m3u8" in link.url,
                    "bingeGroup": BINGE_GROUP,
                },
            }
        )
    return streams


def trailer_json(content: dict[str, Any], result: ResolutionResult) -> JSONResponse:
    # an empty answer must not be pinned by downstream caches
    headers = {"Cache-Control": f"max-age={CACHE_TTL_SECONDS}"} if result.links else None
    return JSONResponse(content=content, headers=headers)


def require_request_target(media_type: str, raw_id: str) -> str:
    if media_type not in SUPPORTED_TYPES:
        raise HTTPException(status_code=404, detail="Not found")
    identifier = parse_identifier(raw_id)
    if not identifier:
        raise HTTPException(status_code=404, detail="Not found")
    return identifier


# ---------------------------
# App setup
# ---------------------------

configure_logging(LOG_LEVEL)

RESULT_CACHE = MemoryTrailerCache(CACHE_TTL_SECONDS)

app = FastAPI(title=MANIFEST["name"], version=MANIFEST["version"])


@app.middleware("http")
async def cors_middleware(request: Request, call_next):
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(_request: Request, exc: StarletteHTTPException):
    message = "Not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": message})


# ---------------------------
# Routes
# ---------------------------

@app.get("/manifest.json")
def manifest():
    return MANIFEST


@app.get("/health")
def health(request: Request):
    return {"status": "ok", "edge": edge_location(request)}


@app.get("/meta/{media_type}/{meta_id}.json")
async def meta(media_type: str, meta_id: str):
    identifier = require_request_target(media_type, meta_id)
    result = await resolve_all(identifier, RESULT_CACHE, media_type=media_type)
    return trailer_json(
        {
            "meta": {
                "id": identifier,
                "type": media_type,
                "name": result.title,
                "links": build_meta_links(result),
            }
        },
        result,
    )


@app.get("/stream/{media_type}/{stream_id}.json")
async def stream(media_type: str, stream_id: str):
    identifier = require_request_target(media_type, stream_id)
    result = await resolve_all(identifier, RESULT_CACHE, media_type=media_type)
    return trailer_json({"streams": build_streams(result)}, result)
