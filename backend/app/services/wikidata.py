import logging

import httpx

try:
    from backend.app.config import USER_AGENT
    from backend.app.services.http_fetch import fetch_json
except ModuleNotFoundError:
    from app.config import USER_AGENT
    from app.services.http_fetch import fetch_json

logger = logging.getLogger(__name__)

WIKIDATA_SPARQL = "https://query.wikidata.org/sparql"

IMDB_ID_PROPERTY = "P345"
APPLE_TV_MOVIE_ID_PROPERTY = "P9586"
ROTTEN_TOMATOES_ID_PROPERTY = "P1258"


def _escape_literal(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _first_binding(payload: dict, name: str) -> str | None:
    bindings = (payload.get("results") or {}).get("bindings") or []
    if not bindings:
        return None
    value = (bindings[0].get(name) or {}).get("value")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


async def sparql_first_value(client: httpx.AsyncClient, query: str, name: str) -> str | None:
    payload = await fetch_json(
        client,
        WIKIDATA_SPARQL,
        params={"format": "json", "query": query},
        headers={"User-Agent": USER_AGENT, "Accept": "application/sparql-results+json"},
    )
    if not isinstance(payload, dict):
        return None
    return _first_binding(payload, name)


async def lookup_cross_reference(client: httpx.AsyncClient, imdb_id: str, prop: str) -> str | None:
    """Return the value of ``prop`` on the item whose IMDb id is ``imdb_id``."""
    query = (
        f'SELECT ?id WHERE {{ ?item wdt:{IMDB_ID_PROPERTY} "{_escape_literal(imdb_id)}" . '
        f"?item wdt:{prop} ?id . }} LIMIT 1"
    )
    return await sparql_first_value(client, query, "id")


async def lookup_title(client: httpx.AsyncClient, imdb_id: str) -> str | None:
    """English label for the title, or None. Never raises."""
    query = (
        f'SELECT ?label WHERE {{ ?item wdt:{IMDB_ID_PROPERTY} "{_escape_literal(imdb_id)}" . '
        '?item rdfs:label ?label . FILTER(LANG(?label) = "en") } LIMIT 1'
    )
    try:
        return await sparql_first_value(client, query, "label")
    except Exception as exc:
        logger.debug("title lookup failed for %s: %s", imdb_id, exc)
        return None
