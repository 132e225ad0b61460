# compositing/raster.py
import io
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

import numpy as np
from PIL import Image

Box = Tuple[int, int, int, int]  # x, y, w, h in surface pixels


class BlendMode(str, Enum):
    REPLACE = "replace"      # source-over
    MULTIPLY = "multiply"
    SCREEN = "screen"
    MASK_IN = "mask-in"      # destination-in


@dataclass(frozen=True, eq=False)
class RasterImage:
    """
    Decoded 8-bit pixels, shape (H, W, 3) for RGB or (H, W, 4) for RGBA.
    The array is copied on construction and marked read-only.
    """
    pixels: np.ndarray

    def __post_init__(self):
        arr = np.array(self.pixels, dtype=np.uint8, copy=True)
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise ValueError(f"expected HxWx3 or HxWx4 pixels, got shape {arr.shape}")
        if arr.shape[0] == 0 or arr.shape[1] == 0:
            raise ValueError("raster must have non-zero width and height")
        arr.setflags(write=False)
        object.__setattr__(self, "pixels", arr)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def mode(self) -> str:
        return "RGBA" if self.pixels.shape[2] == 4 else "RGB"

    @classmethod
    def from_pil(cls, img: Image.Image) -> "RasterImage":
        if img.mode not in ("RGB", "RGBA"):
            has_alpha = img.mode in ("LA", "PA", "La", "RGBa") or "transparency" in img.info
            img = img.convert("RGBA" if has_alpha else "RGB")
        return cls(np.asarray(img))

    @classmethod
    def solid(cls, width: int, height: int, color: Tuple[int, ...]) -> "RasterImage":
        if len(color) not in (3, 4):
            raise ValueError("color must be RGB or RGBA")
        arr = np.empty((height, width, len(color)), dtype=np.uint8)
        arr[...] = color
        return cls(arr)

    def to_pil(self) -> Image.Image:
        return Image.fromarray(np.array(self.pixels))

    def encode(self, fmt: str = "PNG", **save_kwargs) -> bytes:
        img = self.to_pil()
        if fmt.upper() in ("JPEG", "JPG") and img.mode != "RGB":
            img = img.convert("RGB")
        buf = io.BytesIO()
        img.save(buf, format=fmt, **save_kwargs)
        return buf.getvalue()

    def resized(self, width: int, height: int) -> "RasterImage":
        if (width, height) == self.size:
            return self
        return RasterImage.from_pil(self.to_pil().resize((width, height), Image.LANCZOS))

    def premultiplied(self) -> np.ndarray:
        """Float RGBA in [0, 1] with colour multiplied by alpha."""
        px = self.pixels.astype(np.float64) / 255.0
        if px.shape[2] == 3:
            return np.concatenate([px, np.ones(px.shape[:2] + (1,))], axis=-1)
        px[..., :3] *= px[..., 3:4]
        return px

    def same_pixels(self, other: "RasterImage") -> bool:
        return self.pixels.shape == other.pixels.shape and np.array_equal(self.pixels, other.pixels)


def _unpremultiply(px: np.ndarray) -> np.ndarray:
    alpha = px[..., 3:4]
    rgb = np.divide(px[..., :3], alpha, out=np.zeros_like(px[..., :3]), where=alpha > 0)
    return np.concatenate([rgb, alpha], axis=-1)


def _source_over(dst: np.ndarray, src: np.ndarray) -> np.ndarray:
    return src + dst * (1.0 - src[..., 3:4])


def _destination_in(dst: np.ndarray, src: np.ndarray) -> np.ndarray:
    return dst * src[..., 3:4]


def _separable(fn: Callable[[np.ndarray, np.ndarray], np.ndarray]):
    # W3C compositing: mix with the blend result where the backdrop is opaque,
    # then source-over.
    def blend(dst: np.ndarray, src: np.ndarray) -> np.ndarray:
        a_s = src[..., 3:4]
        a_b = dst[..., 3:4]
        c_s = _unpremultiply(src)[..., :3]
        c_b = _unpremultiply(dst)[..., :3]
        mixed = (1.0 - a_b) * c_s + a_b * fn(c_b, c_s)
        rgb = a_s * mixed + dst[..., :3] * (1.0 - a_s)
        alpha = a_s + a_b * (1.0 - a_s)
        return np.concatenate([rgb, alpha], axis=-1)
    return blend


_BLENDS: Dict[BlendMode, Callable[[np.ndarray, np.ndarray], np.ndarray]] = {
    BlendMode.REPLACE: _source_over,
    BlendMode.MULTIPLY: _separable(lambda cb, cs: cb * cs),
    BlendMode.SCREEN: _separable(lambda cb, cs: cb + cs - cb * cs),
    BlendMode.MASK_IN: _destination_in,
}


class RasterSurface:
    """
    Mutable premultiplied RGBA drawing target, cleared to fully transparent.
    draw() is synchronous and runs to completion.
    """

    def __init__(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise ValueError(f"surface size must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        self._px = np.zeros((height, width, 4), dtype=np.float64)

    def draw(self, image: RasterImage, mode: BlendMode = BlendMode.REPLACE, box: Optional[Box] = None) -> None:
        """
        Draw `image` scaled into `box` (default: the whole surface).
        Pixels outside the box see a transparent source, so MASK_IN clears them.
        """
        src = self._layer(image, box or (0, 0, self.width, self.height))
        self._px = _BLENDS[BlendMode(mode)](self._px, src)

    def _layer(self, image: RasterImage, box: Box) -> np.ndarray:
        x, y, w, h = box
        if w <= 0 or h <= 0:
            raise ValueError(f"draw box must have positive size, got {box}")
        scaled = image.resized(w, h).premultiplied()
        layer = np.zeros_like(self._px)

        x0, y0 = max(0, x), max(0, y)
        x1, y1 = min(self.width, x + w), min(self.height, y + h)
        if x0 < x1 and y0 < y1:
            layer[y0:y1, x0:x1] = scaled[y0 - y:y1 - y, x0 - x:x1 - x]
        return layer

    def snapshot(self) -> RasterImage:
        straight = np.clip(_unpremultiply(self._px), 0.0, 1.0)
        return RasterImage(np.rint(straight * 255.0).astype(np.uint8))
