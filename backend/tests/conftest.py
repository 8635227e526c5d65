"""
Shared fixtures: upstream page samples and a clean resolver state per test.
"""

import pytest

import backend.main as main_module
from backend.app.logging_setup import reset_source_outcomes


@pytest.fixture(autouse=True)
def clean_state():
    main_module.RESULT_CACHE.clear()
    reset_source_outcomes()
    yield
    main_module.RESULT_CACHE.clear()


@pytest.fixture
def sample_apple_tv_html() -> str:
    return r"""
    <html>
    <head><title>The Shawshank Redemption - Apple TV</title></head>
    <body>
        <script type="application/json" id="shoebox-uts-api">
        {"trailers":[{"title":"Trailer","hlsUrl":"https://play-edge.itunes.apple.com/WebObjects/MZPlayLocal.woa/hls/trailer/master.m3u8?cc=US\u0026a=1"}]}
        </script>
    </body>
    </html>
    """


@pytest.fixture
def sample_smil() -> str:
    return """<?xml version="1.0" encoding="UTF-8"?>
    <smil xmlns="http://www.w3.org/2005/SMIL21/Language">
      <body>
        <seq>
          <switch>
            <video src="https://video.fandango.test/abc123_480.mp4" title="Trailer" width="854" height="480" system-bitrate="1200000"/>
            <video height="1080" src="https://video.fandango.test/abc123_1080.mp4" title="Trailer" width="1920"/>
            <video src="https://video.fandango.test/abc123_720.mp4" title="Trailer" width="1280" height="720"/>
          </switch>
        </seq>
      </body>
    </smil>
    """


@pytest.fixture
def sample_imdb_video_html() -> str:
    return r"""
    <html><body>
    <script id="__NEXT_DATA__" type="application/json">
    {"props":{"pageProps":{"videoPlaybackData":{"video":{"playbackURLs":[
    {"displayName":{"value":"1080p"},"mimeType":"video/mp4","url":"https://imdb-video.media-imdb.com/vi3877612057/1434659607842-pgv4ql-1.mp4?Expires=1700000000\u0026Signature=abc"}
    ]}}}}}
    </script>
    </body></html>
    """
