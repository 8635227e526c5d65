from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import patch

from fastapi.testclient import TestClient

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import backend.main as main_module
from backend.app.services import trailer_resolver, wikidata
from backend.app.services.trailer_models import TrailerDescriptor
from backend.app.services.trailer_sources import TrailerSource

client = TestClient(main_module.app)


def assert_true(condition: bool, message: str) -> None:
    if not condition:
        raise AssertionError(message)


def reset_state() -> None:
    main_module.RESULT_CACHE.clear()


def make_sources(call_count: dict[str, int], found: set[int]) -> list[TrailerSource]:
    def make(priority: int) -> TrailerSource:
        name = f"source_{priority}"

        async def resolver(_client, imdb_id: str, _media_type: str):
            call_count[name] = call_count.get(name, 0) + 1
            if priority not in found:
                return None
            return TrailerDescriptor(url=f"https://smoke.test/{imdb_id}/{priority}.mp4", provider=name, quality="1080p")

        return TrailerSource(name=name, priority=priority, resolver=resolver)

    return [make(priority) for priority in range(5)]


async def fake_title(_client, _imdb_id: str) -> str:
    return "Smoke Title"


def test_health() -> None:
    payload = client.get("/health").json()
    assert_true(payload.get("status") == "ok", "/health should return status=ok")


def test_manifest() -> None:
    payload = client.get("/manifest.json").json()
    assert_true(payload.get("idPrefixes") == ["tt"], "/manifest.json should advertise tt ids")


def test_meta_cache() -> None:
    reset_state()
    call_count: dict[str, int] = {}
    sources = make_sources(call_count, found={1, 4})

    with (
        patch.object(trailer_resolver.trailer_sources, "TRAILER_SOURCES", sources),
        patch.object(wikidata, "lookup_title", side_effect=fake_title),
    ):
        payload_1 = client.get("/meta/movie/tt0111161.json").json()
        payload_2 = client.get("/meta/movie/tt0111161:1.json").json()

    links = payload_1["meta"]["links"]
    assert_true([link["trailers"] for link in links] == [
        "https://smoke.test/tt0111161/1.mp4",
        "https://smoke.test/tt0111161/4.mp4",
    ], "/meta links should be ordered by source priority")
    assert_true(payload_1 == payload_2, "/meta cached response should be identical")
    assert_true(sum(call_count.values()) == 5, "/meta should hit each source once then cache")


def test_meta_empty_not_cached() -> None:
    reset_state()
    call_count: dict[str, int] = {}
    sources = make_sources(call_count, found=set())

    with (
        patch.object(trailer_resolver.trailer_sources, "TRAILER_SOURCES", sources),
        patch.object(wikidata, "lookup_title", side_effect=fake_title),
    ):
        client.get("/meta/movie/tt0000001.json")
        response = client.get("/meta/movie/tt0000001.json")
        payload = response.json()

    assert_true(payload["meta"]["links"] == [], "/meta should return empty links when nothing resolves")
    assert_true(sum(call_count.values()) == 10, "empty results should not be cached")
    assert_true("cache-control" not in response.headers, "empty results should not carry Cache-Control")


def test_not_found() -> None:
    response = client.get("/foo")
    assert_true(response.status_code == 404, "unknown path should 404")
    assert_true(response.json() == {"error": "Not found"}, "404 body should be {error: Not found}")


def run() -> int:
    checks = [
        ("health", test_health),
        ("manifest", test_manifest),
        ("meta cache", test_meta_cache),
        ("meta empty not cached", test_meta_empty_not_cached),
        ("not found", test_not_found),
    ]
    failures = []

    for check_name, check_fn in checks:
        try:
            check_fn()
            print(f"[PASS] {check_name}")
        except Exception as exc:  # pragma: no cover - smoke script output path
            failures.append((check_name, str(exc)))
            print(f"[FAIL] {check_name}: {exc}")

    if failures:
        print(f"\nSmoke checks failed: {len(failures)}")
        for check_name, message in failures:
            print(f"- {check_name}: {message}")
        return 1

    print("\nAll smoke checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(run())
