import asyncio
import json
from typing import Any

import httpx

try:
    from backend.app.config import FETCH_TIMEOUT_SECONDS
except ModuleNotFoundError:
    from app.config import FETCH_TIMEOUT_SECONDS


class FetchError(Exception):
    """Any failed upstream call: network error, timeout, bad status or bad body."""


def new_client() -> httpx.AsyncClient:
    # httpx defaults to a 5s timeout; the deadline in bounded_fetch is the only one
    return httpx.AsyncClient(follow_redirects=True, timeout=None)


async def bounded_fetch(
    client: httpx.AsyncClient,
    url: str,
    *,
    method: str = "GET",
    timeout: float | None = None,
    **kwargs: Any,
) -> httpx.Response:
    """
    Single request with a hard deadline. When the deadline passes the
    in-flight request is cancelled. No retries.
    """
    deadline = FETCH_TIMEOUT_SECONDS if timeout is None else timeout
    try:
        response = await asyncio.wait_for(client.request(method, url, **kwargs), timeout=deadline)
    except asyncio.TimeoutError:
        raise FetchError(f"{method} {url} timed out after {deadline}s")
    except httpx.HTTPError as exc:
        raise FetchError(f"{method} {url} failed: {type(exc).__name__}: {exc}")

    if response.status_code < 200 or response.status_code >= 300:
        raise FetchError(f"{method} {url} returned {response.status_code}")
    return response


async def fetch_json(client: httpx.AsyncClient, url: str, **kwargs: Any) -> Any:
    response = await bounded_fetch(client, url, **kwargs)
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise FetchError(f"{url} did not return JSON")


async def fetch_text(client: httpx.AsyncClient, url: str, **kwargs: Any) -> str:
    response = await bounded_fetch(client, url, **kwargs)
    return response.text
