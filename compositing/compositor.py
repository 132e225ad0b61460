# compositing/compositor.py
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

import numpy as np

from .aspect_fit import fit_contain
from .errors import CompositingError
from .loader import ImageLoader
from .raster import BlendMode, RasterImage, RasterSurface

logger = logging.getLogger(__name__)

BACKGROUND = "background"
MESH = "mesh"
MASK = "mask"
HIGHLIGHT = "highlight"

_ROLE_ORDER = (BACKGROUND, MESH, MASK, HIGHLIGHT)
_REQUIRED_ROLES = (BACKGROUND, MESH)

# Modes each role may carry. The mesh mode is how the masked render lands on
# the background.
_ROLE_MODES = {
    BACKGROUND: (BlendMode.REPLACE,),
    MESH: (BlendMode.MULTIPLY, BlendMode.REPLACE),
    MASK: (BlendMode.MASK_IN,),
    HIGHLIGHT: (BlendMode.SCREEN,),
}


class CompositeState(str, Enum):
    LOADING_BACKGROUND = "loading-background"
    LOADING_MESH = "loading-mesh"
    LOADING_MASK = "loading-mask"
    LOADING_HIGHLIGHT = "loading-highlight"
    COMPOSING = "composing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class LayerSpec:
    role: str
    source: Any
    mode: BlendMode
    required: bool = True


@dataclass(frozen=True)
class CompositeSpec:
    """
    One compositing run: target size plus the ordered (source, mode) layer stack.
    """
    width: int
    height: int
    layers: Tuple[LayerSpec, ...]

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"target size must be positive, got {self.width}x{self.height}")
        roles = [l.role for l in self.layers]
        if len(set(roles)) != len(roles):
            raise ValueError(f"duplicate layer roles: {roles}")
        for r in _REQUIRED_ROLES:
            if r not in roles:
                raise ValueError(f"composite needs a {r} layer")
        unknown = [r for r in roles if r not in _ROLE_ORDER]
        if unknown:
            raise ValueError(f"unknown layer roles: {unknown}")
        if roles != sorted(roles, key=_ROLE_ORDER.index):
            raise ValueError(f"layers must be ordered {_ROLE_ORDER}, got {roles}")
        for l in self.layers:
            if BlendMode(l.mode) not in _ROLE_MODES[l.role]:
                raise ValueError(f"{l.role} layer cannot use {BlendMode(l.mode).value} mode")

    @classmethod
    def standard(
        cls,
        width: int,
        height: int,
        background: Any,
        mesh: Any,
        mask: Any = None,
        highlight: Any = None,
        shading: BlendMode = BlendMode.MULTIPLY,
    ) -> "CompositeSpec":
        layers = [
            LayerSpec(BACKGROUND, background, BlendMode.REPLACE),
            LayerSpec(MESH, mesh, shading),
        ]
        if mask is not None:
            layers.append(LayerSpec(MASK, mask, BlendMode.MASK_IN, required=False))
        if highlight is not None:
            layers.append(LayerSpec(HIGHLIGHT, highlight, BlendMode.SCREEN, required=False))
        return cls(width=width, height=height, layers=tuple(layers))

    def layer(self, role: str) -> Optional[LayerSpec]:
        for l in self.layers:
            if l.role == role:
                return l
        return None

    @property
    def shading(self) -> BlendMode:
        """How the masked mesh render lands on the background."""
        return BlendMode(self.layer(MESH).mode)


def as_alpha_mask(mask: RasterImage) -> RasterImage:
    """
    Masks without an alpha channel (plain black/white images) use their
    luminance as coverage.
    """
    if mask.mode == "RGBA":
        return mask
    lum = np.asarray(mask.to_pil().convert("L"))
    rgba = np.dstack([mask.pixels, lum])
    return RasterImage(rgba)


def flatten(
    width: int,
    height: int,
    background: RasterImage,
    mesh: RasterImage,
    mask: Optional[RasterImage] = None,
    highlight: Optional[RasterImage] = None,
    shading: BlendMode = BlendMode.MULTIPLY,
) -> RasterImage:
    """
    Blend the stack in fixed order:
      1) background, aspect-fit, replace
      2) mesh render onto its own surface
      3) mask clips that product surface only (mask-in)
      4) product surface drawn onto the background with `shading` (multiply)
      5) highlight screened on top, unclipped
    """
    out = RasterSurface(width, height)
    fit = fit_contain(width, height, background.width, background.height)
    out.draw(background, BlendMode.REPLACE, fit.to_box(width, height))

    product = RasterSurface(width, height)
    product.draw(mesh, BlendMode.REPLACE)
    if mask is not None:
        product.draw(as_alpha_mask(mask), BlendMode.MASK_IN)
    out.draw(product.snapshot(), shading)

    if highlight is not None:
        out.draw(highlight, BlendMode.SCREEN)
    return out.snapshot()


class LayerCompositor:
    """
    Loads the layers of a CompositeSpec in sequence, then flattens them.
    Holds no state between runs; every call builds a fresh composite.
    """

    def __init__(self, loader: ImageLoader):
        self.loader = loader

    async def composite(self, spec: CompositeSpec) -> RasterImage:
        state = CompositeState.LOADING_BACKGROUND
        try:
            background = await self._load(spec.layer(BACKGROUND), state)
            state = CompositeState.LOADING_MESH
            mesh = await self._load(spec.layer(MESH), state)
            state = CompositeState.LOADING_MASK
            mask = await self._load(spec.layer(MASK), state)
            state = CompositeState.LOADING_HIGHLIGHT
            highlight = await self._load(spec.layer(HIGHLIGHT), state)

            state = CompositeState.COMPOSING
            logger.debug("%s %dx%d (mask=%s, highlight=%s)",
                         state.value, spec.width, spec.height, mask is not None, highlight is not None)
            out = flatten(spec.width, spec.height, background, mesh, mask, highlight, spec.shading)
        except CompositingError:
            logger.warning("composite %s while %s", CompositeState.FAILED.value, state.value)
            raise
        logger.debug(CompositeState.DONE.value)
        return out

    async def _load(self, layer: Optional[LayerSpec], state: CompositeState) -> Optional[RasterImage]:
        if layer is None:
            return None
        logger.debug(state.value)
        if layer.required:
            return await self.loader.load(layer.source)
        return await self.loader.load_optional(layer.source)
