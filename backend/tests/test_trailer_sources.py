import asyncio

import httpx

from backend.app.services import trailer_sources
from backend.app.services.trailer_sources import (
    TRAILER_SOURCES,
    TrailerSource,
    pick_best_smil_video,
    resolve_apple_tv,
    resolve_digital_digest,
    resolve_imdb,
    resolve_plex,
    resolve_rotten_tomatoes,
)


def sparql_binding(value: str | None) -> dict:
    bindings = [{"id": {"type": "literal", "value": value}}] if value else []
    return {"head": {"vars": ["id"]}, "results": {"bindings": bindings}}


def make_upstream(routes: dict, wikidata: dict | None = None, log: list | None = None):
    """
    ``routes`` maps ``(method, host, path)`` to an httpx.Response or a callable
    taking the request. ``wikidata`` maps a property id to the SPARQL value.
    Anything else is a 404.
    """
    wikidata = wikidata or {}

    def handler(request: httpx.Request) -> httpx.Response:
        if log is not None:
            log.append((request.method, request.url.host, request.url.path))
        if request.url.host == "query.wikidata.org":
            query = request.url.params.get("query", "")
            for prop, value in wikidata.items():
                if f"wdt:{prop} ?id" in query:
                    return httpx.Response(200, json=sparql_binding(value))
            return httpx.Response(200, json=sparql_binding(None))

        route = routes.get((request.method, request.url.host, request.url.path))
        if route is None:
            return httpx.Response(404, text="missing")
        if callable(route):
            return route(request)
        return route

    return handler


def run_resolver(resolver, handler, imdb_id="tt0111161", media_type="movie"):
    async def runner():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await resolver(client, imdb_id, media_type)

    return asyncio.run(runner())


# ---------------------------
# Apple TV
# ---------------------------

def test_apple_tv_extracts_hls_manifest(sample_apple_tv_html):
    handler = make_upstream(
        {("GET", "tv.apple.com", "/us/movie/umc.cmc.459n2v8xkcvqsw1dqp5tkkvie"): httpx.Response(200, text=sample_apple_tv_html)},
        wikidata={"P9586": "umc.cmc.459n2v8xkcvqsw1dqp5tkkvie"},
    )
    descriptor = run_resolver(resolve_apple_tv, handler)
    assert descriptor.provider == "Apple TV"
    assert descriptor.quality == "4K"
    assert descriptor.url == "https://play-edge.itunes.apple.com/WebObjects/MZPlayLocal.woa/hls/trailer/master.m3u8?cc=US&a=1"


def test_apple_tv_series_uses_show_page():
    handler = make_upstream(
        {
            ("GET", "tv.apple.com", "/us/show/umc.cmc.show"): httpx.Response(
                200, text='<script>{"url":"https://hls.apple.test/show.m3u8"}</script>'
            )
        },
        wikidata={"P9751": "umc.cmc.show"},
    )
    descriptor = run_resolver(resolve_apple_tv, handler, imdb_id="tt0903747", media_type="series")
    assert descriptor.url == "https://hls.apple.test/show.m3u8"


def test_apple_tv_missing_cross_reference():
    log: list = []
    handler = make_upstream({}, wikidata={}, log=log)
    assert run_resolver(resolve_apple_tv, handler) is None
    assert [entry[1] for entry in log] == ["query.wikidata.org"]


def test_apple_tv_page_without_manifest():
    handler = make_upstream(
        {("GET", "tv.apple.com", "/us/movie/umc.x"): httpx.Response(200, text="<html>no video</html>")},
        wikidata={"P9586": "umc.x"},
    )
    assert run_resolver(resolve_apple_tv, handler) is None


# ---------------------------
# Plex
# ---------------------------

def plex_routes(extras: list) -> dict:
    def anonymous(request: httpx.Request) -> httpx.Response:
        assert request.headers["X-Plex-Client-Identifier"]
        return httpx.Response(201, json={"authToken": "anon-token"})

    def matches(request: httpx.Request) -> httpx.Response:
        assert request.headers["X-Plex-Token"] == "anon-token"
        assert request.url.params["guid"] == "imdb://tt0111161"
        return httpx.Response(200, json={"MediaContainer": {"Metadata": [{"ratingKey": "5d7768"}]}})

    return {
        ("POST", "plex.tv", "/api/v2/users/anonymous"): anonymous,
        ("GET", "metadata.provider.plex.tv", "/library/metadata/matches"): matches,
        ("GET", "metadata.provider.plex.tv", "/library/metadata/5d7768/extras"): httpx.Response(
            200, json={"MediaContainer": {"Metadata": extras}}
        ),
    }


def test_plex_picks_first_trailer_extra():
    extras = [
        {"subtype": "behindTheScenes", "Media": [{"url": "https://vod.plex.test/bts.mp4"}]},
        {"subtype": "trailer", "Media": [{"url": "https://vod.plex.test/trailer.mp4"}]},
        {"subtype": "trailer", "Media": [{"url": "https://vod.plex.test/teaser.mp4"}]},
    ]
    descriptor = run_resolver(resolve_plex, make_upstream(plex_routes(extras)))
    assert descriptor.url == "https://vod.plex.test/trailer.mp4"
    assert descriptor.provider == "Plex"


def test_plex_series_match_type():
    seen = {}

    def matches(request: httpx.Request) -> httpx.Response:
        seen["type"] = request.url.params["type"]
        return httpx.Response(200, json={"MediaContainer": {"Metadata": []}})

    routes = plex_routes([])
    routes[("GET", "metadata.provider.plex.tv", "/library/metadata/matches")] = matches
    assert run_resolver(resolve_plex, make_upstream(routes), media_type="series") is None
    assert seen["type"] == "2"


def test_plex_without_token_stops_early():
    log: list = []
    routes = {("POST", "plex.tv", "/api/v2/users/anonymous"): httpx.Response(201, json={})}
    assert run_resolver(resolve_plex, make_upstream(routes, log=log)) is None
    assert len(log) == 1


def test_plex_no_trailer_extra():
    extras = [{"subtype": "featurette", "Media": [{"url": "https://vod.plex.test/f.mp4"}]}]
    assert run_resolver(resolve_plex, make_upstream(plex_routes(extras))) is None


# ---------------------------
# Rotten Tomatoes
# ---------------------------

def rt_routes(page_html: str, video_html: str | None = None, smil: httpx.Response | None = None) -> dict:
    routes = {
        ("GET", "www.rottentomatoes.com", "/m/shawshank_redemption/"): httpx.Response(200, text=page_html),
        ("GET", "link.theplatform.com", "/s/NGweTC/media/abc123"): smil or httpx.Response(404),
    }
    if video_html is not None:
        routes[("GET", "www.rottentomatoes.com", "/m/shawshank_redemption/videos/trailer-1")] = httpx.Response(
            200, text=video_html
        )
    return routes


def test_rotten_tomatoes_follows_video_page_and_picks_tallest_rendition(sample_smil):
    page = '<a href="/m/shawshank_redemption/videos/trailer-1">Trailer</a>'
    video_page = '<div data-src="https://link.theplatform.com/s/NGweTC/media/abc123?formats=M3U&amp;format=redirect"></div>'

    def smil(request: httpx.Request) -> httpx.Response:
        assert request.url.params["format"] == "SMIL"
        assert request.url.params["formats"] == "MPEG4"
        return httpx.Response(200, text=sample_smil)

    handler = make_upstream(
        rt_routes(page, video_page, smil=smil),
        wikidata={"P1258": "https://www.rottentomatoes.com/m/shawshank_redemption"},
    )
    descriptor = run_resolver(resolve_rotten_tomatoes, handler)
    assert descriptor.url == "https://video.fandango.test/abc123_1080.mp4"
    assert descriptor.quality == "1080p"
    assert descriptor.provider == "Rotten Tomatoes"


def test_rotten_tomatoes_falls_back_to_redirect_url():
    page = '<script>var v = "https://link.theplatform.com/s/NGweTC/media/abc123?formats=M3U";</script>'
    handler = make_upstream(rt_routes(page), wikidata={"P1258": "m/shawshank_redemption"})
    descriptor = run_resolver(resolve_rotten_tomatoes, handler)
    assert descriptor.url == "https://link.theplatform.com/s/NGweTC/media/abc123?formats=MPEG4&format=redirect"
    assert descriptor.quality == "1080p"


def test_rotten_tomatoes_no_video_anywhere():
    handler = make_upstream(
        rt_routes("<html>nothing here</html>"),
        wikidata={"P1258": "m/shawshank_redemption"},
    )
    assert run_resolver(resolve_rotten_tomatoes, handler) is None


def test_pick_best_smil_video(sample_smil):
    assert pick_best_smil_video(sample_smil) == ("https://video.fandango.test/abc123_1080.mp4", 1080)
    assert pick_best_smil_video("<smil><body></body></smil>") is None
    assert pick_best_smil_video('<video src="https://v.test/a.mp4" height="tall"/>') == ("https://v.test/a.mp4", 0)


# ---------------------------
# Digital Digest
# ---------------------------

def test_digital_digest_picks_highest_resolution():
    video = {
        "files": [],
        "streamingPlaylists": [
            {
                "files": [
                    {"resolution": {"id": 720, "label": "720p"}, "fileUrl": "https://dd.test/720.mp4"},
                    {"resolution": {"id": 2160, "label": "2160p"}, "fileDownloadUrl": "https://dd.test/2160.mp4"},
                    {"resolution": {"id": 1080, "label": "1080p"}, "fileUrl": "https://dd.test/1080.mp4"},
                ]
            }
        ],
    }
    routes = {
        ("GET", "trailers.digitaldigest.com", "/api/v1/search/videos"): httpx.Response(200, json={"data": [{"uuid": "u-1"}]}),
        ("GET", "trailers.digitaldigest.com", "/api/v1/videos/u-1"): httpx.Response(200, json=video),
    }
    descriptor = run_resolver(resolve_digital_digest, make_upstream(routes))
    assert descriptor.url == "https://dd.test/2160.mp4"
    assert descriptor.quality == "2160p"


def test_digital_digest_empty_search():
    routes = {("GET", "trailers.digitaldigest.com", "/api/v1/search/videos"): httpx.Response(200, json={"data": []})}
    assert run_resolver(resolve_digital_digest, make_upstream(routes)) is None


def test_digital_digest_no_files():
    routes = {
        ("GET", "trailers.digitaldigest.com", "/api/v1/search/videos"): httpx.Response(200, json={"data": [{"uuid": "u-1"}]}),
        ("GET", "trailers.digitaldigest.com", "/api/v1/videos/u-1"): httpx.Response(200, json={"files": []}),
    }
    assert run_resolver(resolve_digital_digest, make_upstream(routes)) is None


# ---------------------------
# IMDb
# ---------------------------

def test_imdb_follows_video_page_and_unescapes(sample_imdb_video_html):
    routes = {
        ("GET", "www.imdb.com", "/title/tt0111161/"): httpx.Response(
            200, text='<a href="/video/vi3877612057/?ref_=tt_vi_i_1">Trailer</a>'
        ),
        ("GET", "www.imdb.com", "/video/vi3877612057/"): httpx.Response(200, text=sample_imdb_video_html),
    }
    descriptor = run_resolver(resolve_imdb, make_upstream(routes))
    assert descriptor.url == "https://imdb-video.media-imdb.com/vi3877612057/1434659607842-pgv4ql-1.mp4?Expires=1700000000&Signature=abc"
    assert descriptor.provider == "IMDb"


def test_imdb_title_without_video():
    routes = {("GET", "www.imdb.com", "/title/tt0111161/"): httpx.Response(200, text="<html></html>")}
    assert run_resolver(resolve_imdb, make_upstream(routes)) is None


# ---------------------------
# Failure isolation
# ---------------------------

def test_trailer_source_folds_errors_into_not_found():
    async def broken(client, imdb_id, media_type):
        raise KeyError("MediaContainer")

    source = TrailerSource(name="broken", priority=9, resolver=broken)

    async def runner():
        async with httpx.AsyncClient(transport=httpx.MockTransport(make_upstream({}))) as client:
            return await source.resolve(client, "tt0111161")

    outcome = asyncio.run(runner())
    assert outcome.found is False
    assert outcome.source == "broken"
    assert outcome.priority == 9


def test_every_source_survives_upstream_outage():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="down")

    async def runner():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return [await source.resolve(client, "tt0111161") for source in TRAILER_SOURCES]

    outcomes = asyncio.run(runner())
    assert [o.found for o in outcomes] == [False] * 5


def test_source_priorities_are_distinct_and_ordered():
    assert [s.name for s in trailer_sources.TRAILER_SOURCES] == [
        "apple_tv",
        "plex",
        "rotten_tomatoes",
        "digital_digest",
        "imdb",
    ]
    assert [s.priority for s in trailer_sources.TRAILER_SOURCES] == [0, 1, 2, 3, 4]
