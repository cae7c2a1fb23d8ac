"""
Music Box - API Tests

Exercises the FastAPI routes against a library built on a temporary music
directory and a fake cloud API.
"""

import pytest
from fastapi.testclient import TestClient

from musicbox.main import create_app
from tests.conftest import (
    CLOUD_PREFIX,
    UNDECODABLE_RAW,
    build_zip,
    build_zip_raw_names,
    write_midi,
)

CANON = f"{CLOUD_PREFIX}/Canon in D.json"


@pytest.fixture
def client(library):
    with TestClient(create_app(library)) as c:
        yield c


@pytest.fixture
def songs(music_dir):
    write_midi(music_dir / "loose.mid", [(60, 0, 500, 127)], program=3)
    build_zip(music_dir / "pack.zip", {"inner.mid": (music_dir / "loose.mid").read_bytes()})
    (music_dir / "broken.mid").write_bytes(b"not midi at all")
    return music_dir


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestMusicRoutes:
    def test_list(self, client, songs):
        response = client.get("/api/music")
        assert response.status_code == 200
        assert response.json()["music"] == ["broken.mid", "loose.mid", "pack.zip/inner.mid"]

    def test_refresh_picks_up_new_files(self, client, songs):
        client.get("/api/music")
        (songs / "zzz.mid").write_bytes(b"new")

        assert "zzz.mid" not in client.get("/api/music").json()["music"]
        assert "zzz.mid" in client.post("/api/music/refresh").json()["music"]

    def test_list_unknown_encoding(self, client, music_dir):
        build_zip_raw_names(music_dir / "bad.zip", {UNDECODABLE_RAW: b"x"})
        response = client.get("/api/music")
        assert response.status_code == 422
        assert "bad.zip" in response.json()["detail"]

    def test_list_archive_corrupted_after_listing(self, client, songs):
        client.get("/api/music")
        (songs / "pack.zip").write_bytes(b"garbage")

        response = client.post("/api/music/refresh")

        assert response.status_code == 422
        assert "pack.zip" in response.json()["detail"]

    def test_tracks_archive_corrupted_after_listing(self, client, songs):
        client.get("/api/music")
        (songs / "pack.zip").write_bytes(b"garbage")

        response = client.get("/api/music/tracks", params={"id": "pack.zip/inner.mid"})

        assert response.status_code == 422

    def test_resolve_zip(self, client, songs):
        response = client.get("/api/music/resolve", params={"id": "pack.zip/inner.mid"})
        assert response.status_code == 200
        assert response.json() == {"id": "pack.zip/inner.mid", "origin": "zip", "path": "tmp/inner.mid"}

    def test_resolve_missing(self, client, songs):
        response = client.get("/api/music/resolve", params={"id": "pack.zip/none.mid"})
        assert response.status_code == 404

    def test_tracks_from_zip(self, client, songs):
        response = client.get("/api/music/tracks", params={"id": "pack.zip/inner.mid"})
        assert response.status_code == 200
        body = response.json()
        assert body["trackCount"] == 2
        assert body["tracks"][1]["instrumentId"] == 3
        assert body["tracks"][1]["notes"] == [[60, 0.0, {"duration": 500.0, "velocity": 1.0}]]

    def test_tracks_decode_failure(self, client, songs):
        response = client.get("/api/music/tracks", params={"id": "broken.mid"})
        assert response.status_code == 422

    def test_tracks_missing_loose_file(self, client, songs):
        response = client.get("/api/music/tracks", params={"id": "ghost.mid"})
        assert response.status_code == 404

    def test_clear_cache(self, client, songs):
        client.get("/api/music/resolve", params={"id": "pack.zip/inner.mid"})
        assert client.delete("/api/cache").status_code == 200
        assert list((songs / "tmp").iterdir()) == []


class TestCloudRoutes:
    def test_refresh_then_list(self, client, fake_api):
        response = client.post("/api/cloud/refresh")
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert CANON in client.get("/api/music").json()["music"]

    def test_refresh_failure(self, client, fake_api):
        fake_api.fail_list = True
        response = client.post("/api/cloud/refresh", params={"force": True})
        assert response.status_code == 502

    def test_fetch_then_resolve(self, client, fake_api):
        client.post("/api/cloud/refresh")
        assert client.get("/api/music/resolve", params={"id": CANON}).status_code == 404

        response = client.post("/api/cloud/fetch", params={"id": CANON})
        assert response.status_code == 200

        resolved = client.get("/api/music/resolve", params={"id": CANON}).json()
        assert resolved["origin"] == "cloud"
        assert resolved["path"] == "tmp/Canon in D.json"

    def test_cloud_entry_tracks_unsupported(self, client, fake_api):
        client.post("/api/cloud/refresh")
        client.post("/api/cloud/fetch", params={"id": CANON})
        response = client.get("/api/music/tracks", params={"id": CANON})
        assert response.status_code == 415

    def test_fetch_unknown(self, client, fake_api):
        client.post("/api/cloud/refresh")
        response = client.post("/api/cloud/fetch", params={"id": f"{CLOUD_PREFIX}/Nope.json"})
        assert response.status_code == 404


class TestPlaylistRoutes:
    def test_crud(self, client):
        assert client.get("/api/playlists").json() == {"playlists": ["collection"]}
        assert client.post("/api/playlists", json={"name": "Night"}).status_code == 201
        assert client.post("/api/playlists", json={"name": "Night"}).status_code == 409

        assert client.post("/api/playlists/Night/music", json={"id": "a.mid"}).status_code == 200
        assert client.get("/api/playlists/Night").json()["music_files"] == ["a.mid"]

        assert client.put("/api/playlists/Night", json={"new_name": "Late"}).status_code == 200
        assert client.delete("/api/playlists/Late/music", params={"id": "a.mid"}).status_code == 200
        assert client.delete("/api/playlists/Late").status_code == 200
        assert client.get("/api/playlists/Late").status_code == 404
