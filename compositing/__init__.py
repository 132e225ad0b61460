# compositing/__init__.py
from .aspect_fit import FitTransform, fit_aspect, fit_contain
from .compositor import CompositeSpec, CompositeState, LayerCompositor, LayerSpec, flatten
from .errors import CompositingError, LoadError, RenderError, StaleResultDiscarded
from .loader import ImageLoader
from .mesh_surface import MeshRenderSurface, PlanarMeshSurface
from .raster import BlendMode, RasterImage, RasterSurface
from .swap import PatternSwapController, PublishedComposite, SceneLayers

__all__ = [
    "BlendMode",
    "CompositeSpec",
    "CompositeState",
    "CompositingError",
    "FitTransform",
    "ImageLoader",
    "LayerCompositor",
    "LayerSpec",
    "LoadError",
    "MeshRenderSurface",
    "PatternSwapController",
    "PlanarMeshSurface",
    "PublishedComposite",
    "RasterImage",
    "RasterSurface",
    "RenderError",
    "SceneLayers",
    "StaleResultDiscarded",
    "fit_aspect",
    "fit_contain",
    "flatten",
]
