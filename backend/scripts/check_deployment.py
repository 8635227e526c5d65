from __future__ import annotations

import argparse
import os
import time
from typing import Any, Mapping

import requests

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_IDS = ["tt0111161", "tt0903747"]


def get_json(session: requests.Session, url: str, timeout: int) -> tuple[int, dict[str, Any], Mapping[str, str]]:
    response = session.get(url, timeout=timeout)
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    return response.status_code, payload, response.headers


def check_health(session: requests.Session, base_url: str, timeout: int) -> list[str]:
    status, payload, _headers = get_json(session, f"{base_url}/health", timeout)
    if status != 200 or payload.get("status") != "ok":
        return [f"/health returned {status}: {payload}"]
    print(f"health ok (edge={payload.get('edge')})")
    return []


def check_manifest(session: requests.Session, base_url: str, timeout: int) -> list[str]:
    status, payload, headers = get_json(session, f"{base_url}/manifest.json", timeout)
    problems = []
    if status != 200:
        problems.append(f"/manifest.json returned {status}")
    if payload.get("idPrefixes") != ["tt"]:
        problems.append(f"/manifest.json idPrefixes unexpected: {payload.get('idPrefixes')}")
    if headers.get("Access-Control-Allow-Origin") != "*":
        problems.append("/manifest.json missing permissive CORS header")
    if not problems:
        print(f"manifest ok ({payload.get('id')} {payload.get('version')})")
    return problems


def check_meta(session: requests.Session, base_url: str, imdb_id: str, media_type: str, timeout: int) -> list[str]:
    url = f"{base_url}/meta/{media_type}/{imdb_id}.json"
    started = time.time()
    status, payload, headers = get_json(session, url, timeout)
    elapsed = time.time() - started
    meta = payload.get("meta") or {}
    if status != 200 or meta.get("id") != imdb_id:
        return [f"{url} returned {status}: {payload}"]
    links = meta.get("links") or []
    cache_control = headers.get("Cache-Control") or ""
    if links and "max-age" not in cache_control:
        return [f"{url} missing Cache-Control max-age"]
    if not links and "max-age" in cache_control:
        return [f"{url} caches an empty answer ({cache_control})"]

    print(f"{imdb_id} ({meta.get('name')}): {len(links)} trailer(s) in {elapsed:.2f}s")
    for link in links:
        print(f"  - {link.get('provider')}: {link.get('trailers')}")
    return []


def main() -> int:
    parser = argparse.ArgumentParser(description="Probe a running trailer resolver deployment.")
    parser.add_argument("--base-url", default=os.getenv("TRAILER_BASE_URL", DEFAULT_BASE_URL))
    parser.add_argument("--ids", default=",".join(DEFAULT_IDS), help="Comma separated IMDb ids")
    parser.add_argument("--type", default="movie", choices=["movie", "series"])
    parser.add_argument("--timeout", type=int, default=30)
    args = parser.parse_args()

    base_url = args.base_url.rstrip("/")
    ids = [value.strip() for value in args.ids.split(",") if value.strip()]

    problems: list[str] = []
    with requests.Session() as session:
        try:
            problems.extend(check_health(session, base_url, args.timeout))
            problems.extend(check_manifest(session, base_url, args.timeout))
            for imdb_id in ids:
                problems.extend(check_meta(session, base_url, imdb_id, args.type, args.timeout))
        except requests.RequestException as exc:
            problems.append(f"request failed: {exc}")

    if problems:
        print(f"\n{len(problems)} problem(s):")
        for problem in problems:
            print(f"- {problem}")
        return 1
    print("\nDeployment looks healthy.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
