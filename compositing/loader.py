# compositing/loader.py
import asyncio
import base64
import io
import logging
from pathlib import Path
from typing import Optional, Union
from urllib.parse import unquote, unquote_to_bytes, urlparse

import httpx
import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import LoadError
from .raster import RasterImage

logger = logging.getLogger(__name__)

Source = Union[RasterImage, Image.Image, np.ndarray, bytes, bytearray, memoryview, str, Path]

_LOAD_FAILURES = (
    httpx.HTTPError,
    OSError,  # includes FileNotFoundError and UnidentifiedImageError
    ValueError,
    SyntaxError,  # broken PNG chunk streams
    Image.DecompressionBombError,
)


def describe(source) -> str:
    if isinstance(source, (bytes, bytearray, memoryview)):
        return f"<{len(source)} bytes>"
    if isinstance(source, RasterImage):
        return f"<raster {source.width}x{source.height}>"
    if isinstance(source, Image.Image):
        return f"<PIL {source.mode} {source.size[0]}x{source.size[1]}>"
    if isinstance(source, np.ndarray):
        return f"<array {source.shape}>"
    s = str(source)
    return s[:40] + "..." if s.startswith("data:") and len(s) > 40 else s


def _decode(data: bytes) -> RasterImage:
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return RasterImage.from_pil(img)


def _parse_data_url(url: str) -> bytes:
    header, sep, payload = url[len("data:"):].partition(",")
    if not sep:
        raise ValueError("malformed data URL")
    if header.endswith(";base64"):
        return base64.b64decode(payload, validate=True)
    return unquote_to_bytes(payload)


class ImageLoader:
    """
    Resolves any layer source to a fresh RasterImage.
    Each call is independent; concurrent loads are safe.
    """

    def __init__(self, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self._transport = transport

    async def load(self, source: Source) -> RasterImage:
        label = describe(source)
        try:
            if isinstance(source, RasterImage):
                return source
            if isinstance(source, Image.Image):
                return RasterImage.from_pil(source)
            if isinstance(source, np.ndarray):
                return RasterImage(source)
            if isinstance(source, (bytes, bytearray, memoryview)):
                data = bytes(source)
            elif isinstance(source, (str, Path)):
                data = await self._read(source)
            else:
                raise LoadError(label, f"unsupported source type {type(source).__name__}")
            if not data:
                raise LoadError(label, "empty image data")
            return await asyncio.to_thread(_decode, data)
        except UnidentifiedImageError as e:
            raise LoadError(label, "not a decodable image") from e
        except _LOAD_FAILURES as e:
            raise LoadError(label, str(e) or type(e).__name__) from e

    async def load_optional(self, source: Optional[Source]) -> Optional[RasterImage]:
        """Like load(), but a missing or broken source yields None."""
        if source is None:
            return None
        try:
            return await self.load(source)
        except LoadError as e:
            logger.warning("optional layer skipped: %s", e)
            return None

    async def _read(self, source: Union[str, Path]) -> bytes:
        if isinstance(source, Path):
            return await asyncio.to_thread(source.read_bytes)
        if source.startswith("data:"):
            return _parse_data_url(source)
        if source.startswith(("http://", "https://")):
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport, follow_redirects=True
            ) as client:
                r = await client.get(source)
                r.raise_for_status()
                return r.content
        if source.startswith("file://"):
            source = unquote(urlparse(source).path)
        return await asyncio.to_thread(Path(source).read_bytes)
