"""
HTTP tests for the FastAPI app.

Verifies:
- Startup runs the initial composite
- GET /composite downloads the current PNG
- POST /pattern swaps the runner pattern and stores the result
- Rejected uploads map to 422 and keep the previous composite
- A missing background leaves the service up with no composite
"""
import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

import main
from compositing import config

FULL_QUAD = ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0))


def _decode(content: bytes) -> Image.Image:
    return Image.open(io.BytesIO(content)).convert("RGBA")


@pytest.fixture
def scene(monkeypatch, asset_dir):
    monkeypatch.setattr(config, "BACKGROUND_PATH", str(asset_dir / "background.png"))
    monkeypatch.setattr(config, "MASK_PATH", str(asset_dir / "mask.png"))
    monkeypatch.setattr(config, "HIGHLIGHTS_PATH", None)
    monkeypatch.setattr(config, "PATTERN_PATH", None)
    monkeypatch.setattr(config, "RENDER_WIDTH", 32)
    monkeypatch.setattr(config, "RENDER_HEIGHT", 32)
    monkeypatch.setattr(config, "MESH_QUAD", FULL_QUAD)
    monkeypatch.delenv("PUBLIC_BASE_URL", raising=False)
    return asset_dir


@pytest.fixture
def client(scene):
    with TestClient(main.app) as c:
        yield c


# ══════════════════════════════════════════════════════════════════════════
# Startup
# ══════════════════════════════════════════════════════════════════════════

class TestStartup:

    def test_status_after_initial_composite(self, client):
        r = client.get("/status")
        assert r.status_code == 200
        body = r.json()
        assert body["sequence"] == 1
        assert body["latest_sequence"] == 1
        assert body["has_composite"] is True
        assert body["pattern"] is None
        assert (body["width"], body["height"]) == (32, 32)

    def test_download_composite(self, client):
        r = client.get("/composite")
        assert r.status_code == 200
        assert r.headers["content-type"] == "image/png"
        assert r.headers["x-composite-sequence"] == "1"
        assert 'filename="composite-1.png"' in r.headers["content-disposition"]
        img = _decode(r.content)
        assert img.size == (32, 32)
        # blank runner: background shows through unchanged
        assert img.getpixel((16, 16)) == (128, 128, 128, 255)

    def test_initial_pattern_from_config(self, scene, monkeypatch, make_png):
        pattern = scene / "pattern.png"
        pattern.write_bytes(make_png((0, 255, 0)))
        monkeypatch.setattr(config, "PATTERN_PATH", str(pattern))
        with TestClient(main.app) as c:
            img = _decode(c.get("/composite").content)
            assert c.get("/status").json()["pattern"] == "pattern.png"
        assert img.getpixel((16, 16)) == (0, 128, 0, 255)

    def test_missing_background_starts_without_composite(self, scene, monkeypatch):
        monkeypatch.setattr(config, "BACKGROUND_PATH", str(scene / "missing.jpg"))
        with TestClient(main.app) as c:
            assert c.get("/composite").status_code == 404
            assert c.get("/status").json()["has_composite"] is False
            assert c.post("/composite").status_code == 422


# ══════════════════════════════════════════════════════════════════════════
# Pattern swap
# ══════════════════════════════════════════════════════════════════════════

class TestPatternSwap:

    def test_swap_publishes_new_composite(self, client, make_png):
        files = {"pattern": ("red.png", make_png((255, 0, 0)), "image/png")}
        r = client.post("/pattern", files=files)
        assert r.status_code == 200
        body = r.json()
        assert body["sequence"] == 2
        assert body["pattern"] == "red.png"
        assert body["composite_url"].startswith("http://testserver/media/composites/2-")

        img = _decode(client.get("/composite").content)
        assert img.getpixel((16, 16)) == (128, 0, 0, 255)
        assert img.getpixel((0, 0)) == (128, 128, 128, 255)
        assert client.get("/status").json()["pattern"] == "red.png"

    def test_stored_composite_is_served(self, client, make_png):
        files = {"pattern": ("blue.png", make_png((0, 0, 255)), "image/png")}
        url = client.post("/pattern", files=files).json()["composite_url"]
        r = client.get(url.replace("http://testserver", ""))
        assert r.status_code == 200
        assert _decode(r.content).getpixel((16, 16)) == (0, 0, 128, 255)

    def test_public_base_url(self, client, make_png, monkeypatch):
        monkeypatch.setenv("PUBLIC_BASE_URL", "https://cdn.example")
        files = {"pattern": ("red.png", make_png((255, 0, 0)), "image/png")}
        url = client.post("/pattern", files=files).json()["composite_url"]
        assert url.startswith("https://cdn.example/media/composites/")

    def test_wrong_content_type_is_422(self, client):
        files = {"pattern": ("notes.txt", b"hello", "text/plain")}
        r = client.post("/pattern", files=files)
        assert r.status_code == 422
        assert client.get("/status").json()["latest_sequence"] == 1

    def test_undecodable_upload_keeps_composite(self, client):
        files = {"pattern": ("broken.png", b"\x89PNG not really", "image/png")}
        r = client.post("/pattern", files=files)
        assert r.status_code == 422
        assert "not a decodable image" in r.json()["detail"]
        current = client.get("/composite")
        assert current.headers["x-composite-sequence"] == "1"

    def test_broken_chunk_upload_is_422(self, client, corrupt_png):
        files = {"pattern": ("broken.png", corrupt_png, "image/png")}
        r = client.post("/pattern", files=files)
        assert r.status_code == 422
        assert client.get("/status").json()["sequence"] == 1

    def test_recomposite(self, client):
        r = client.post("/composite")
        assert r.status_code == 200
        assert r.json()["sequence"] == 2
        assert client.get("/composite").headers["x-composite-sequence"] == "2"
