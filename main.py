# main.py
import asyncio
import logging
import os
import uuid
from contextlib import asynccontextmanager
from urllib.parse import urljoin

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles

from compositing import config
from compositing.compositor import LayerCompositor
from compositing.errors import LoadError, RenderError, StaleResultDiscarded
from compositing.loader import ImageLoader
from compositing.mesh_surface import PlanarMeshSurface
from compositing.raster import RasterImage
from compositing.swap import PatternSwapController, PublishedComposite, SceneLayers
from utils.storage import LocalStorage, get_storage

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s [%(name)s] %(message)s")
logger = logging.getLogger("runner")

storage = get_storage()

# Untextured runner: multiplying by white leaves the background as is.
BLANK_PATTERN = RasterImage.solid(8, 8, (255, 255, 255))


async def build_controller() -> PatternSwapController:
    loader = ImageLoader(timeout=config.LOAD_TIMEOUT)
    texture, pattern = BLANK_PATTERN, None
    if config.PATTERN_PATH:
        try:
            texture = await loader.load(config.PATTERN_PATH)
            pattern = os.path.basename(config.PATTERN_PATH)
        except LoadError as e:
            logger.warning("initial pattern unavailable, using blank runner: %s", e)

    return PatternSwapController(
        loader=loader,
        surface=PlanarMeshSurface(config.MESH_QUAD),
        compositor=LayerCompositor(loader),
        layers=SceneLayers(
            background=config.BACKGROUND_PATH,
            mask=config.MASK_PATH,
            highlight=config.HIGHLIGHTS_PATH,
        ),
        width=config.RENDER_WIDTH,
        height=config.RENDER_HEIGHT,
        texture=texture,
        pattern=pattern,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    controller = await build_controller()
    app.state.controller = controller
    try:
        await controller.initial_composite()
    except (LoadError, RenderError) as e:
        # Start anyway; POST /composite retries once the assets are fixed.
        logger.error("initial composite failed: %s", e)
    yield


app = FastAPI(lifespan=lifespan)
if isinstance(storage, LocalStorage):
    app.mount("/media", StaticFiles(directory=storage.root, check_dir=False), name="media")


def make_public_url(request: Request, stored: str) -> str:
    """Absolute URL for a stored composite; local /media paths hang off PUBLIC_BASE_URL or this host."""
    if stored.startswith(("http://", "https://")):
        return stored
    base = os.environ.get("PUBLIC_BASE_URL") or str(request.base_url)
    return urljoin(base.rstrip("/") + "/", stored.lstrip("/"))


def _controller(request: Request) -> PatternSwapController:
    return request.app.state.controller


async def _publish_response(request: Request, published: PublishedComposite) -> dict:
    # Encode + upload off the event loop
    data = await asyncio.to_thread(published.image.encode, "PNG")
    key = f"composites/{published.sequence}-{uuid.uuid4()}.png"
    url_raw = await asyncio.to_thread(storage.save_bytes, key, data, "image/png")
    return {
        "sequence": published.sequence,
        "pattern": published.pattern,
        "width": published.image.width,
        "height": published.image.height,
        "composite_url": make_public_url(request, url_raw),
    }


@app.post("/pattern")
async def select_pattern(request: Request, pattern: UploadFile = File(...)):
    raw = await pattern.read()
    controller = _controller(request)
    try:
        published = await controller.swap_pattern(raw, pattern.content_type, pattern.filename)
    except StaleResultDiscarded as e:
        raise HTTPException(
            status_code=409,
            detail={"message": "superseded by a newer pattern", "sequence": e.sequence, "latest": e.latest},
        )
    except LoadError as e:
        raise HTTPException(status_code=422, detail=f"Pattern swap failed: {e}")
    except RenderError as e:
        raise HTTPException(status_code=500, detail=f"Mesh render failed: {e}")
    return await _publish_response(request, published)


@app.post("/composite")
async def recomposite(request: Request):
    controller = _controller(request)
    try:
        published = await controller.initial_composite()
    except StaleResultDiscarded as e:
        raise HTTPException(
            status_code=409,
            detail={"message": "superseded by a newer request", "sequence": e.sequence, "latest": e.latest},
        )
    except LoadError as e:
        raise HTTPException(status_code=422, detail=f"Composite failed: {e}")
    except RenderError as e:
        raise HTTPException(status_code=500, detail=f"Mesh render failed: {e}")
    return await _publish_response(request, published)


@app.get("/composite")
async def download_composite(request: Request):
    current = _controller(request).current
    if current is None:
        raise HTTPException(status_code=404, detail="No composite available yet")
    data = await asyncio.to_thread(current.image.encode, "PNG")
    return Response(
        content=data,
        media_type="image/png",
        headers={
            "Content-Disposition": f'attachment; filename="composite-{current.sequence}.png"',
            "X-Composite-Sequence": str(current.sequence),
        },
    )


@app.get("/status")
async def status(request: Request):
    controller = _controller(request)
    current = controller.current
    return {
        "sequence": current.sequence if current else None,
        "latest_sequence": controller.latest_sequence,
        "pattern": controller.pattern,
        "has_composite": current is not None,
        "width": controller.width,
        "height": controller.height,
    }
