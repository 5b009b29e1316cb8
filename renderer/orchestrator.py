from __future__ import annotations

import json
import time
from concurrent.futures import Future
from typing import Any, Dict, Optional, Sequence, Union

from common.config import load_config
from common.errors import RenderError, ValidationError
from common.logging_setup import get_logger
from common.types import RenderRequest, Viewport
from renderer.encoder import CHANNELS, encode_rgba
from renderer.engine import EngineFactory, default_engine_factory
from renderer.viewport import derive_viewport
from tilesource.dispatcher import RequestDispatcher


log = get_logger(__name__)

MIN_ZOOM = 0
MAX_ZOOM = 22


def validate_request(req: RenderRequest) -> None:
    """Raise ValidationError for the first invalid caller parameter."""
    if req.style is None or req.style == "":
        raise ValidationError("style is a required parameter")
    if not (req.width and req.height):
        raise ValidationError("width and height are required parameters and must be non-zero")
    if req.width < 0 or req.height < 0:
        raise ValidationError(f"width and height must be positive: {req.width}x{req.height}")

    if req.center is not None:
        center = list(req.center)
        if len(center) != 2:
            raise ValidationError(f"Center must be longitude,latitude.  Invalid value found: {center}")
        if abs(center[0]) > 180:
            raise ValidationError(f"Center longitude is outside world bounds (-180 to 180 deg): {center[0]}")
        if abs(center[1]) > 90:
            raise ValidationError(f"Center latitude is outside world bounds (-90 to 90 deg): {center[1]}")

    if req.zoom is not None and (req.zoom < MIN_ZOOM or req.zoom > MAX_ZOOM):
        raise ValidationError(f"Zoom level is outside supported range ({MIN_ZOOM}-{MAX_ZOOM}): {req.zoom}")

    if req.bounds is not None and len(list(req.bounds)) != 4:
        raise ValidationError(f"Bounds must be west,south,east,north.  Invalid value found: {list(req.bounds)}")
    if req.bounds is not None:
        west, south, east, north = (float(v) for v in req.bounds)
        if west > east or south > north:
            raise ValidationError(f"Bounds must have west <= east and south <= north: {list(req.bounds)}")


def resolve_viewport(req: RenderRequest) -> Viewport:
    """
    Concrete viewport for a validated request.
    Bounds only fill in whichever of center/zoom is missing.
    """
    center: Optional[Sequence[float]] = req.center
    zoom: Optional[float] = req.zoom
    if req.bounds is not None and (zoom is None or center is None):
        derived = derive_viewport(req.bounds, req.width, req.height)
        zoom = derived.zoom if zoom is None else zoom
        center = derived.center if center is None else center
    if center is None or zoom is None:
        raise ValidationError("Either center and zoom, or bounds, must be provided")
    return Viewport(zoom=zoom, center=(float(center[0]), float(center[1])))


def _parse_style(style: Union[Dict[str, Any], str]) -> Dict[str, Any]:
    if isinstance(style, str):
        try:
            return json.loads(style)
        except json.JSONDecodeError as e:
            raise ValidationError(f"style is not valid JSON: {e}") from e
    return style


def render(
    style: Union[Dict[str, Any], str],
    width: int = 1024,
    height: int = 1024,
    *,
    center: Optional[Sequence[float]] = None,
    zoom: Optional[float] = None,
    bounds: Optional[Sequence[float]] = None,
    archive_path: Optional[str] = None,
    engine_factory: Optional[EngineFactory] = None,
    image_format: str = "png",
) -> bytes:
    """
    Render a static map and return the encoded image bytes.

    If zoom and center are not provided, bounds must be, and are fitted to the
    image dimensions. `archive_path` is the directory of .mbtiles files referenced
    from the style as "mbtiles://<service>" (default: config tiles.archive_path).

    Blocks until the single render pass completes; engine errors propagate unchanged.
    """
    req = RenderRequest(style=style, width=width, height=height, center=center, zoom=zoom, bounds=bounds, archive_path=archive_path)
    validate_request(req)
    style_doc = _parse_style(style)
    viewport = resolve_viewport(req)

    if archive_path is None or engine_factory is None:
        P = load_config()
        if archive_path is None:
            archive_path = P["tiles"]["archive_path"]
        if engine_factory is None:
            engine_factory = default_engine_factory(float(P["engine"].get("source_timeout", 30.0)))

    dispatcher = RequestDispatcher(archive_path)
    engine = engine_factory(dispatcher.handle)
    engine.load(style_doc)

    t0 = time.perf_counter()
    done: "Future[bytes]" = Future()

    def _on_render(err: Optional[BaseException], buffer: Optional[bytes]) -> None:
        if done.done():
            return
        if err is not None:
            done.set_exception(err)
        else:
            done.set_result(buffer)  # type: ignore[arg-type]

    engine.render(viewport.to_params(width, height), _on_render)
    buffer = done.result()
    if buffer is None:
        raise RenderError("Render pass produced no pixel buffer")

    image = encode_rgba(buffer, width, height, image_format)
    log.info(
        "Rendered map",
        extra={"extra": {
            "zoom": viewport.zoom,
            "center": list(viewport.center),
            "width": width,
            "height": height,
            "channels": CHANNELS,
            "bytes": len(image),
            "ms": int(1000.0 * (time.perf_counter() - t0)),
        }},
    )
    return image


def render_request(req: RenderRequest, **kwargs: Any) -> bytes:
    """render() for a RenderRequest value."""
    return render(
        req.style,  # type: ignore[arg-type]
        req.width,
        req.height,
        center=req.center,
        zoom=req.zoom,
        bounds=req.bounds,
        archive_path=req.archive_path,
        **kwargs,
    )

