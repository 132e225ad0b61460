# compositing/aspect_fit.py
import math
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class FitTransform:
    """
    Normalised [0, 1] placement of an image inside a viewport ("contain").
    One of scale_x / scale_y is always exactly 1; the other axis is centred.
    """
    offset_x: float
    offset_y: float
    scale_x: float
    scale_y: float

    def to_box(self, width: int, height: int) -> Tuple[int, int, int, int]:
        """Pixel box (x, y, w, h) for a viewport of width x height."""
        x = int(round(self.offset_x * width))
        y = int(round(self.offset_y * height))
        w = max(1, int(round(self.scale_x * width)))
        h = max(1, int(round(self.scale_y * height)))
        return x, y, w, h


IDENTITY = FitTransform(offset_x=0.0, offset_y=0.0, scale_x=1.0, scale_y=1.0)


def fit_aspect(viewport_aspect: float, image_aspect: float) -> FitTransform:
    if viewport_aspect <= 0 or image_aspect <= 0:
        raise ValueError(f"aspect ratios must be positive, got {viewport_aspect} and {image_aspect}")
    if math.isclose(viewport_aspect, image_aspect, rel_tol=1e-9):
        return IDENTITY
    if viewport_aspect > image_aspect:
        # Viewport is wider: fit to height, letterbox left/right.
        scale_x = image_aspect / viewport_aspect
        return FitTransform(offset_x=(1.0 - scale_x) / 2.0, offset_y=0.0, scale_x=scale_x, scale_y=1.0)
    # Viewport is taller: fit to width, letterbox top/bottom.
    scale_y = viewport_aspect / image_aspect
    return FitTransform(offset_x=0.0, offset_y=(1.0 - scale_y) / 2.0, scale_x=1.0, scale_y=scale_y)


def fit_contain(viewport_w: int, viewport_h: int, image_w: int, image_h: int) -> FitTransform:
    if min(viewport_w, viewport_h, image_w, image_h) <= 0:
        raise ValueError("viewport and image dimensions must be positive")
    return fit_aspect(viewport_w / viewport_h, image_w / image_h)
