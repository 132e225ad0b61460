# compositing/config.py
import os
from typing import Tuple

# TL, TR, BR, BL of the runner's top face in normalised render coordinates
DEFAULT_QUAD = "0.18,0.30,0.82,0.30,0.94,0.78,0.06,0.78"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise RuntimeError(f"{name} must be positive, got {value}")
    return value


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, str(default)).strip()
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")


def parse_quad(raw: str) -> Tuple[Tuple[float, float], ...]:
    """
    "x0,y0,x1,y1,x2,y2,x3,y3" -> four normalised corner points (TL, TR, BR, BL).
    """
    parts = [p for p in raw.replace(" ", "").split(",") if p]
    if len(parts) != 8:
        raise RuntimeError(f"mesh quad needs 8 comma-separated numbers, got {len(parts)}")
    try:
        nums = [float(p) for p in parts]
    except ValueError:
        raise RuntimeError(f"mesh quad is not numeric: {raw!r}")
    return tuple((nums[i], nums[i + 1]) for i in range(0, 8, 2))


def _optional(name: str, default: str = "") -> str | None:
    v = os.getenv(name, default).strip()
    return v or None


# The product camera is square; renders default to 1000x1000
RENDER_WIDTH = _int_env("RUNNER_RENDER_WIDTH", 1000)
RENDER_HEIGHT = _int_env("RUNNER_RENDER_HEIGHT", 1000)

BACKGROUND_PATH = os.getenv("RUNNER_BACKGROUND", "background.jpg")
MASK_PATH = _optional("RUNNER_MASK", "mask.png")
HIGHLIGHTS_PATH = _optional("RUNNER_HIGHLIGHTS", "highlights.png")
PATTERN_PATH = _optional("RUNNER_PATTERN")

MESH_QUAD = parse_quad(os.getenv("RUNNER_MESH_QUAD", DEFAULT_QUAD))
LOAD_TIMEOUT = _float_env("RUNNER_LOAD_TIMEOUT", 30.0)
LOG_LEVEL = os.getenv("RUNNER_LOG_LEVEL", "INFO").upper()
