import asyncio
import logging
from typing import Sequence

import httpx
from pydantic import ValidationError

try:
    from backend.app.config import TITLE_LOOKUP_ENABLED
    from backend.app.logging_setup import record_source_outcome
    from backend.app.services import trailer_sources, wikidata
    from backend.app.services.http_fetch import new_client
    from backend.app.services.result_cache import TrailerCache, cache_url
    from backend.app.services.trailer_models import (
        CACHE_SCHEMA_VERSION,
        CachedResolution,
        ResolutionResult,
        TrailerDescriptor,
    )
    from backend.app.services.trailer_sources import SourceOutcome, TrailerSource
except ModuleNotFoundError:
    from app.config import TITLE_LOOKUP_ENABLED
    from app.logging_setup import record_source_outcome
    from app.services import trailer_sources, wikidata
    from app.services.http_fetch import new_client
    from app.services.result_cache import TrailerCache, cache_url
    from app.services.trailer_models import (
        CACHE_SCHEMA_VERSION,
        CachedResolution,
        ResolutionResult,
        TrailerDescriptor,
    )
    from app.services.trailer_sources import SourceOutcome, TrailerSource

logger = logging.getLogger(__name__)


def read_cached_result(cache: TrailerCache, identifier: str, media_type: str = "movie") -> ResolutionResult | None:
    key = cache_url(identifier, media_type)
    try:
        raw = cache.match(key)
    except Exception as exc:
        logger.warning("cache read failed for %s: %s", key, exc)
        return None
    if raw is None:
        return None
    try:
        entry = CachedResolution.model_validate_json(raw)
    except ValidationError:
        logger.info("discarding unreadable cache entry %s", key)
        return None
    if entry.schema_version != CACHE_SCHEMA_VERSION:
        return None
    return entry.result


def write_cached_result(cache: TrailerCache, identifier: str, result: ResolutionResult, media_type: str = "movie") -> None:
    key = cache_url(identifier, media_type)
    payload = CachedResolution(schema_version=CACHE_SCHEMA_VERSION, result=result).model_dump_json()
    try:
        cache.put(key, payload)
    except Exception as exc:
        logger.warning("cache write failed for %s: %s", key, exc)


def rank_outcomes(outcomes: Sequence[SourceOutcome]) -> list[TrailerDescriptor]:
    """Found descriptors ordered by source priority, first occurrence of a URL wins."""
    found = sorted((o for o in outcomes if o.found), key=lambda o: o.priority)
    seen_urls: set[str] = set()
    links: list[TrailerDescriptor] = []
    for outcome in found:
        if outcome.descriptor.url in seen_urls:
            continue
        seen_urls.add(outcome.descriptor.url)
        links.append(outcome.descriptor)
    return links


async def _no_title() -> None:
    return None


async def _gather_outcomes(
    client: httpx.AsyncClient,
    identifier: str,
    media_type: str,
    sources: Sequence[TrailerSource],
    with_title: bool,
) -> tuple[list[SourceOutcome], str | None]:
    title_task = wikidata.lookup_title(client, identifier) if with_title else _no_title()
    results = await asyncio.gather(
        title_task,
        *(source.resolve(client, identifier, media_type) for source in sources),
    )
    return list(results[1:]), results[0]


async def resolve_all(
    identifier: str,
    cache: TrailerCache,
    *,
    media_type: str = "movie",
    sources: Sequence[TrailerSource] | None = None,
    client: httpx.AsyncClient | None = None,
    with_title: bool | None = None,
) -> ResolutionResult:
    """
    Resolve every trailer source for ``identifier`` and merge the results.

    A cached result short-circuits everything else. On a miss all sources
    (plus the title lookup) run concurrently and every one of them is
    awaited, so ordering only depends on source priority. Results with no
    links are returned but not cached.
    """
    cached = read_cached_result(cache, identifier, media_type)
    if cached is not None:
        logger.debug("cache hit for %s %s", media_type, identifier)
        return cached

    if sources is None:
        sources = trailer_sources.TRAILER_SOURCES
    if with_title is None:
        with_title = TITLE_LOOKUP_ENABLED

    if client is None:
        async with new_client() as own_client:
            outcomes, title = await _gather_outcomes(own_client, identifier, media_type, sources, with_title)
    else:
        outcomes, title = await _gather_outcomes(client, identifier, media_type, sources, with_title)

    for outcome in outcomes:
        record_source_outcome(outcome.source, "found" if outcome.found else "not_found")

    result = ResolutionResult(title=title or identifier, links=rank_outcomes(outcomes))
    logger.info(
        "resolved %s: found=%s missed=%s",
        identifier,
        [o.source for o in outcomes if o.found],
        [o.source for o in outcomes if not o.found],
    )

    if result.links:
        write_cached_result(cache, identifier, result, media_type)
    return result
