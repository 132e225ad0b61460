"""
Shared fixtures for the runner compositor tests.

Provides synthetic layer images (in memory and on disk) and a PNG factory.
"""
import io
import os
import struct
import tempfile
import zlib

import numpy as np
import pytest
from PIL import Image

# Keep LocalStorage (created when main is imported) out of the working tree
os.environ.setdefault("MEDIA_ROOT", tempfile.mkdtemp(prefix="runner-media-"))

from compositing.raster import RasterImage


FULL_QUAD = ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0))
SIZE = 32


def encode_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def center_square_mask(size: int, inner: int) -> Image.Image:
    """RGBA mask: opaque square of side `inner` in the middle, transparent elsewhere."""
    alpha = np.zeros((size, size), dtype=np.uint8)
    lo = (size - inner) // 2
    alpha[lo:lo + inner, lo:lo + inner] = 255
    rgba = np.dstack([np.zeros((size, size, 3), dtype=np.uint8), alpha])
    return Image.fromarray(rgba)


def _png_chunks(data: bytes):
    pos = 8
    while pos < len(data):
        (length,) = struct.unpack(">I", data[pos:pos + 4])
        yield data[pos + 4:pos + 8], data[pos + 8:pos + 8 + length]
        pos += 12 + length


def _png_chunk(ctype: bytes, body: bytes) -> bytes:
    crc = zlib.crc32(ctype + body) & 0xFFFFFFFF
    return struct.pack(">I", len(body)) + ctype + body + struct.pack(">I", crc)


def broken_chunk_png(data: bytes) -> bytes:
    """Split the image data in two and give the second chunk an invalid type."""
    out = data[:8]
    for ctype, body in _png_chunks(data):
        if ctype == b"IDAT":
            half = len(body) // 2
            out += _png_chunk(b"IDAT", body[:half]) + _png_chunk(b"\x00\x01\x02\x03", body[half:])
        else:
            out += _png_chunk(ctype, body)
    return out


# ── Factories ──────────────────────────────────────────────────────────────

@pytest.fixture
def make_png():
    """Solid-colour PNG bytes: make_png((r, g, b[, a]), size=(w, h))"""
    def _make(color, size=(8, 8)):
        mode = "RGBA" if len(color) == 4 else "RGB"
        return encode_png(Image.new(mode, size, tuple(color)))
    return _make


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


# ── In-memory layers ───────────────────────────────────────────────────────

@pytest.fixture
def gray_background():
    return RasterImage.solid(SIZE, SIZE, (128, 128, 128))


@pytest.fixture
def red_mesh():
    return RasterImage.solid(SIZE, SIZE, (255, 0, 0, 255))


@pytest.fixture
def center_mask():
    return RasterImage.from_pil(center_square_mask(SIZE, SIZE // 2))


# ── On-disk assets ─────────────────────────────────────────────────────────

@pytest.fixture
def asset_dir(tmp_path):
    """background.png (gray), mask.png (centre square), highlights.png (top half)"""
    Image.new("RGB", (SIZE, SIZE), (128, 128, 128)).save(tmp_path / "background.png")
    center_square_mask(SIZE, SIZE // 2).save(tmp_path / "mask.png")

    hl = np.zeros((SIZE, SIZE, 4), dtype=np.uint8)
    hl[: SIZE // 2] = (200, 200, 200, 255)
    Image.fromarray(hl).save(tmp_path / "highlights.png")
    return tmp_path


@pytest.fixture
def corrupt_png(rng):
    """Noise PNG whose image data is cut by a chunk with an invalid type."""
    noise = rng.integers(0, 256, size=(64, 64, 4), dtype=np.uint8)
    return broken_chunk_png(encode_png(Image.fromarray(noise)))
