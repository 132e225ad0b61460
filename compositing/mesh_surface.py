# compositing/mesh_surface.py
import asyncio
import logging
from typing import Optional, Protocol, Sequence, Tuple

import cv2
import numpy as np

from .errors import RenderError
from .raster import RasterImage

logger = logging.getLogger(__name__)

Quad = Sequence[Tuple[float, float]]


class MeshRenderSurface(Protocol):
    def set_surface_texture(self, texture: RasterImage) -> None:
        ...

    async def render_to_surface(self, width: int, height: int) -> RasterImage:
        ...


def _polygon_area(pts: np.ndarray) -> float:
    x, y = pts[:, 0], pts[:, 1]
    return 0.5 * abs(float(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))))


def _warp_quad(texture: RasterImage, quad: Quad, width: int, height: int) -> RasterImage:
    rgba = texture.pixels
    if rgba.shape[2] == 3:
        rgba = np.dstack([rgba, np.full(rgba.shape[:2], 255, dtype=np.uint8)])

    th, tw = rgba.shape[:2]
    src = np.array([[0, 0], [tw, 0], [tw, th], [0, th]], dtype=np.float32)
    dst = np.array([[x * width, y * height] for x, y in quad], dtype=np.float32)
    if _polygon_area(dst) < 1.0:
        raise RenderError(f"mesh quad covers no pixels at {width}x{height}")

    m = cv2.getPerspectiveTransform(src, dst)
    out = cv2.warpPerspective(
        np.ascontiguousarray(rgba),
        m,
        (width, height),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(0, 0, 0, 0),
    )
    return RasterImage(out)


class PlanarMeshSurface:
    """
    Renders the runner's visible top face as a single textured quad.

    The texture is stretched over the quad like a basic material map and
    everything outside the quad stays transparent, matching an alpha-enabled
    renderer with a transparent clear colour.
    """

    def __init__(self, quad: Quad, texture: Optional[RasterImage] = None):
        if len(quad) != 4:
            raise ValueError(f"quad needs 4 corner points, got {len(quad)}")
        self.quad = tuple((float(x), float(y)) for x, y in quad)
        self._texture = texture

    @property
    def texture(self) -> Optional[RasterImage]:
        return self._texture

    def set_surface_texture(self, texture: RasterImage) -> None:
        logger.debug("surface texture set (%dx%d %s)", texture.width, texture.height, texture.mode)
        self._texture = texture

    async def render_to_surface(self, width: int, height: int) -> RasterImage:
        # Captured before the first await; a later set_surface_texture does not leak in.
        texture = self._texture
        if texture is None:
            raise RenderError("no surface texture installed")
        if width <= 0 or height <= 0:
            raise RenderError(f"invalid render size {width}x{height}")
        try:
            return await asyncio.to_thread(_warp_quad, texture, self.quad, width, height)
        except cv2.error as e:
            raise RenderError(f"perspective warp failed: {e}") from e
