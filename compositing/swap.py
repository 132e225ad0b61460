# compositing/swap.py
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .compositor import CompositeSpec, LayerCompositor
from .errors import CompositingError, LoadError, StaleResultDiscarded
from .loader import ImageLoader
from .mesh_surface import MeshRenderSurface
from .raster import RasterImage

logger = logging.getLogger(__name__)

_GENERIC_TYPES = ("", "application/octet-stream")


@dataclass(frozen=True)
class SceneLayers:
    """The static photographic layers; only the mesh render changes between runs."""
    background: Any
    mask: Any = None
    highlight: Any = None


@dataclass(frozen=True)
class PublishedComposite:
    sequence: int
    image: RasterImage
    pattern: Optional[str] = None


def accepts_content_type(content_type: Optional[str]) -> bool:
    ctype = (content_type or "").split(";")[0].strip().lower()
    return ctype in _GENERIC_TYPES or ctype.startswith("image/")


class PatternSwapController:
    """
    Owns the single visible composite.

    Every trigger (initial assets ready, pattern selected) takes the next
    sequence number. A run re-checks its number after each await and gives up
    with StaleResultDiscarded once a newer run has been issued, so only the
    most recent trigger can publish.

    The surface texture and `pattern` always describe the published
    composite: a run that installed its texture and then failed or went stale
    puts the published one back, unless a newer run has installed its own.
    """

    def __init__(
        self,
        loader: ImageLoader,
        surface: MeshRenderSurface,
        compositor: LayerCompositor,
        layers: SceneLayers,
        width: int,
        height: int,
        on_publish: Optional[Callable[[PublishedComposite], None]] = None,
        texture: Optional[RasterImage] = None,
        pattern: Optional[str] = None,
    ):
        self.loader = loader
        self.surface = surface
        self.compositor = compositor
        self.layers = layers
        self.width = width
        self.height = height
        self.on_publish = on_publish
        self._issued = 0
        self._current: Optional[PublishedComposite] = None
        # texture/pattern behind the published composite (or the starting ones)
        self._texture = texture
        self._pattern = pattern
        # sequence of the run whose texture sits on the surface
        self._installed = 0
        if texture is not None:
            surface.set_surface_texture(texture)

    @property
    def current(self) -> Optional[PublishedComposite]:
        return self._current

    @property
    def latest_sequence(self) -> int:
        return self._issued

    @property
    def pattern(self) -> Optional[str]:
        return self._pattern

    async def initial_composite(self) -> PublishedComposite:
        """One-shot trigger once the static assets and first render are ready."""
        seq = self._next_sequence()
        logger.info("composite %d: initial render", seq)
        if self._texture is not None:
            self._install(seq, self._texture)
        return await self._run(seq, self._texture, self._pattern)

    async def swap_pattern(
        self,
        data: bytes,
        content_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> PublishedComposite:
        label = filename or "pattern upload"
        if not accepts_content_type(content_type):
            raise LoadError(label, f"unsupported content type {content_type!r}")

        seq = self._next_sequence()
        logger.info("composite %d: pattern %s (%d bytes)", seq, label, len(data))

        texture = await self.loader.load(data)
        self._check_fresh(seq)

        self._install(seq, texture)
        return await self._run(seq, texture, filename)

    async def _run(self, seq: int, texture: Optional[RasterImage], pattern: Optional[str]) -> PublishedComposite:
        try:
            return await self._render_and_publish(seq, texture, pattern)
        except CompositingError:
            self._restore(seq)
            raise

    async def _render_and_publish(
        self, seq: int, texture: Optional[RasterImage], pattern: Optional[str]
    ) -> PublishedComposite:
        mesh = await self.surface.render_to_surface(self.width, self.height)
        self._check_fresh(seq)

        spec = CompositeSpec.standard(
            self.width,
            self.height,
            background=self.layers.background,
            mesh=mesh,
            mask=self.layers.mask,
            highlight=self.layers.highlight,
        )
        image = await self.compositor.composite(spec)
        self._check_fresh(seq)

        # Single assignment: the old composite is dropped as the new one appears.
        published = PublishedComposite(sequence=seq, image=image, pattern=pattern)
        self._current = published
        if texture is not None:
            self._texture = texture
        self._pattern = pattern
        logger.info("composite %d published (%dx%d)", seq, image.width, image.height)
        if self.on_publish is not None:
            self.on_publish(published)
        return published

    def _install(self, seq: int, texture: RasterImage) -> None:
        self.surface.set_surface_texture(texture)
        self._installed = seq

    def _restore(self, seq: int) -> None:
        if self._installed != seq or self._texture is None:
            return
        logger.info("composite %d: restoring published texture", seq)
        self.surface.set_surface_texture(self._texture)
        self._installed = 0

    def _next_sequence(self) -> int:
        self._issued += 1
        return self._issued

    def _check_fresh(self, seq: int) -> None:
        if seq != self._issued:
            logger.info("composite %d discarded, superseded by %d", seq, self._issued)
            raise StaleResultDiscarded(seq, self._issued)
