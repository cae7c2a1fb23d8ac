"""
Music Box - Cloud API Client Tests

Runs HttpCloudMusicApi against an httpx.MockTransport.
"""

import httpx
import pytest

from musicbox.cloud_api import CloudApiError, HttpCloudMusicApi
from tests.conftest import run


def _api(handler) -> HttpCloudMusicApi:
    return HttpCloudMusicApi(
        base_url="https://cloud.example.com/v1",
        token="secret",
        transport=httpx.MockTransport(handler),
    )


class TestFetchMusicList:
    def test_page_params_and_auth(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json=[{"id": 1, "name": "Canon", "extra": True}])

        entries = run(_api(handler).fetch_music_list(0, 10000))

        assert entries == [{"id": 1, "name": "Canon"}]
        assert seen["url"].path == "/v1/music"
        assert seen["url"].params["offset"] == "0"
        assert seen["url"].params["limit"] == "10000"
        assert "filter" not in seen["url"].params
        assert seen["auth"] == "Bearer secret"

    def test_data_envelope(self):
        def handler(request):
            return httpx.Response(200, json={"data": [{"id": 2, "name": "Elise"}, {"bad": 1}]})

        assert run(_api(handler).fetch_music_list(0, 10, "piano")) == [{"id": 2, "name": "Elise"}]

    def test_http_error_status(self):
        def handler(request):
            return httpx.Response(503, text="down")

        with pytest.raises(CloudApiError):
            run(_api(handler).fetch_music_list(0, 10))

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(CloudApiError):
            run(_api(handler).fetch_music_list(0, 10))

    def test_not_configured(self):
        with pytest.raises(CloudApiError):
            run(HttpCloudMusicApi(base_url="").fetch_music_list(0, 10))


class TestFetchMusicFile:
    def test_returns_raw_bytes(self):
        def handler(request):
            assert request.url.path == "/v1/music/42"
            return httpx.Response(200, content=b'{"notes": []}')

        assert run(_api(handler).fetch_music_file_by_id(42)) == b'{"notes": []}'

    def test_missing_file(self):
        def handler(request):
            return httpx.Response(404)

        with pytest.raises(CloudApiError):
            run(_api(handler).fetch_music_file_by_id(42))
