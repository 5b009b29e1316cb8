"""
Rendering engine boundary and the default raster engine.

An engine is created around a resource-request handler
`handler(TileRequest, callback(err, TileResult))`, loads one style and performs
one render pass `render({"zoom","center","width","height"}, callback(err, rgba_bytes))`.

RasterTileEngine supports:
  - `background` layers (paint.background-color)
  - `raster` layers on `raster` sources declared with `tiles` templates or a TileJSON `url`
Vector sources and other layer types are skipped.
"""

from __future__ import annotations

import json
import math
import re
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeout
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

import cv2
import numpy as np

from common.errors import RenderError
from common.geo import TILE_SIZE, lonlat_to_world_px
from common.logging_setup import get_logger
from common.types import RequestHandler, ResourceKind, TileRequest, TileResult


log = get_logger(__name__)

RenderCallback = Callable[[Optional[BaseException], Optional[bytes]], None]


class RenderEngine(Protocol):
    def load(self, style: Dict[str, Any]) -> None: ...

    def render(self, params: Dict[str, Any], callback: RenderCallback) -> None: ...


EngineFactory = Callable[[RequestHandler], RenderEngine]


# -------------------------
# Colors
# -------------------------
_NAMED_COLORS = {
    "transparent": (0, 0, 0, 0),
    "black": (0, 0, 0, 255),
    "white": (255, 255, 255, 255),
}
_RGB_FN = re.compile(r"rgba?\(\s*([\d.]+)\s*,\s*([\d.]+)\s*,\s*([\d.]+)\s*(?:,\s*([\d.]+)\s*)?\)")


def parse_color(value: str) -> Tuple[int, int, int, int]:
    """'#rgb' | '#rrggbb' | 'rgb(r,g,b)' | 'rgba(r,g,b,a)' | a few names -> RGBA 0..255"""
    v = str(value).strip().lower()
    if v in _NAMED_COLORS:
        return _NAMED_COLORS[v]
    if v.startswith("#"):
        h = v[1:]
        if len(h) == 3:
            h = "".join(c * 2 for c in h)
        if len(h) == 6:
            return (int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16), 255)
    m = _RGB_FN.fullmatch(v)
    if m:
        r, g, b, a = m.groups()
        alpha = 1.0 if a is None else float(a)
        return (int(float(r)), int(float(g)), int(float(b)), int(round(255 * min(max(alpha, 0.0), 1.0))))
    raise RenderError(f"Unsupported color: {value}")


# -------------------------
# Compositing
# -------------------------
def _to_rgba(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2RGBA)
    if img.shape[2] == 3:
        return cv2.cvtColor(img, cv2.COLOR_BGR2RGBA)
    return cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)


def decode_tile(data: bytes) -> np.ndarray:
    arr = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_UNCHANGED)
    if img is None:
        raise RenderError("Tile data is not a decodable raster image")
    if img.dtype != np.uint8:
        img = cv2.convertScaleAbs(img, alpha=255.0 / 65535.0)
    return _to_rgba(img)


def composite_over(canvas: np.ndarray, src: np.ndarray, x0: int, y0: int, opacity: float = 1.0) -> None:
    """Alpha-composite RGBA `src` onto `canvas` in place with its top-left at (x0, y0)."""
    H, W = canvas.shape[:2]
    h, w = src.shape[:2]
    cx0, cy0 = max(x0, 0), max(y0, 0)
    cx1, cy1 = min(x0 + w, W), min(y0 + h, H)
    if cx1 <= cx0 or cy1 <= cy0:
        return
    patch = src[cy0 - y0 : cy1 - y0, cx0 - x0 : cx1 - x0].astype(np.float32) / 255.0
    dst = canvas[cy0:cy1, cx0:cx1].astype(np.float32) / 255.0

    a_src = patch[..., 3:4] * float(opacity)
    a_dst = dst[..., 3:4]
    a_out = a_src + a_dst * (1.0 - a_src)
    rgb = patch[..., :3] * a_src + dst[..., :3] * a_dst * (1.0 - a_src)
    rgb = np.divide(rgb, a_out, out=np.zeros_like(rgb), where=a_out > 0)
    out = np.concatenate([rgb, a_out], axis=-1)
    canvas[cy0:cy1, cx0:cx1] = np.clip(out * 255.0 + 0.5, 0, 255).astype(np.uint8)


def expand_template(template: str, z: int, x: int, y: int) -> str:
    return template.replace("{z}", str(z)).replace("{x}", str(x)).replace("{y}", str(y))


# -------------------------
# Engine
# -------------------------
class RasterTileEngine:
    def __init__(self, request_handler: RequestHandler, source_timeout: float = 30.0):
        self.request_handler = request_handler
        self.source_timeout = float(source_timeout)
        self.style: Dict[str, Any] = {}
        self._sources: Dict[str, Dict[str, Any]] = {}

    def load(self, style: Dict[str, Any]) -> None:
        if isinstance(style, str):
            style = json.loads(style)
        self.style = style
        self._sources = {}

    def render(self, params: Dict[str, Any], callback: RenderCallback) -> None:
        def _run() -> None:
            try:
                buf = self.render_sync(params)
            except Exception as e:
                callback(e, None)
                return
            callback(None, buf)

        threading.Thread(target=_run, daemon=True).start()

    def render_sync(self, params: Dict[str, Any]) -> bytes:
        width, height = int(params["width"]), int(params["height"])
        zoom = float(params["zoom"])
        lng, lat = params["center"]
        canvas = np.zeros((height, width, 4), dtype=np.uint8)

        for layer in self.style.get("layers", []):
            if layer.get("layout", {}).get("visibility") == "none":
                continue
            if not (layer.get("minzoom", 0) <= zoom <= layer.get("maxzoom", 24)):
                continue
            ltype = layer.get("type")
            paint = layer.get("paint", {})
            if ltype == "background":
                color = np.array(parse_color(paint.get("background-color", "black")), dtype=np.uint8)
                fill = np.broadcast_to(color, canvas.shape).copy()
                composite_over(canvas, fill, 0, 0, float(paint.get("background-opacity", 1.0)))
            elif ltype == "raster":
                source = self._resolve_source(layer["source"])
                if source is None:
                    continue
                self._draw_raster(canvas, source, zoom, (float(lng), float(lat)), float(paint.get("raster-opacity", 1.0)))
            else:
                log.debug("Skipping unsupported layer type", extra={"extra": {"id": layer.get("id"), "type": ltype}})
        return canvas.tobytes()

    # -------- requests --------

    def _request(self, url: str, kind: ResourceKind) -> "Future[TileResult]":
        fut: "Future[TileResult]" = Future()

        def _done(err: Optional[BaseException], result: Optional[TileResult]) -> None:
            if fut.done():
                return
            if err is not None:
                fut.set_exception(err)
            else:
                fut.set_result(result if result is not None else TileResult())

        try:
            self.request_handler(TileRequest(url=url, kind=kind), _done)
        except Exception as e:
            if not fut.done():
                fut.set_exception(e)
        return fut

    def _resolve_source(self, name: str) -> Optional[Dict[str, Any]]:
        if name in self._sources:
            return self._sources[name]
        decl = self.style.get("sources", {}).get(name)
        if decl is None:
            raise RenderError(f"Layer references unknown source: {name}")
        if decl.get("type") != "raster":
            log.debug("Skipping non-raster source", extra={"extra": {"source": name, "type": decl.get("type")}})
            self._sources[name] = None  # type: ignore[assignment]
            return None

        source = dict(decl)
        if "tiles" not in source and "url" in source:
            fut = self._request(source["url"], ResourceKind.SOURCE)
            try:
                result = fut.result(timeout=self.source_timeout)
            except FutureTimeout:
                raise RenderError(f"Source {name} did not resolve: {source['url']}")
            tilejson = json.loads(result.data.decode("utf-8"))
            for key in ("tiles", "minzoom", "maxzoom", "bounds"):
                if key in tilejson and key not in decl:
                    source[key] = tilejson[key]
        if not source.get("tiles"):
            raise RenderError(f"Source {name} declares no tiles")
        self._sources[name] = source
        return source

    # -------- raster drawing --------

    def _draw_raster(self, canvas: np.ndarray, source: Dict[str, Any], zoom: float, center: Tuple[float, float], opacity: float) -> None:
        height, width = canvas.shape[:2]
        minzoom = int(source.get("minzoom", 0))
        maxzoom = int(source.get("maxzoom", 22))
        z = int(min(max(math.floor(zoom), minzoom), maxzoom))
        n = 2 ** z
        span = TILE_SIZE * (2.0 ** (zoom - z))  # screen pixels per tile

        cx, cy = lonlat_to_world_px(center[0], center[1], zoom)
        left, top = cx - width / 2.0, cy - height / 2.0
        tx0, tx1 = int(math.floor(left / span)), int(math.floor((left + width - 1) / span))
        ty0, ty1 = int(math.floor(top / span)), int(math.floor((top + height - 1) / span))

        template = source["tiles"][0]
        pending: List[Tuple[int, int, "Future[TileResult]"]] = []
        for ty in range(max(ty0, 0), min(ty1, n - 1) + 1):
            for tx in range(tx0, tx1 + 1):
                url = expand_template(template, z, tx % n, ty)
                pending.append((tx, ty, self._request(url, ResourceKind.TILE)))

        for tx, ty, fut in pending:
            result = fut.result()
            if result.is_empty:
                continue
            x0 = int(round(tx * span - left))
            y0 = int(round(ty * span - top))
            x1 = int(round((tx + 1) * span - left))
            y1 = int(round((ty + 1) * span - top))
            tile = decode_tile(result.data)
            if tile.shape[1] != x1 - x0 or tile.shape[0] != y1 - y0:
                tile = cv2.resize(tile, (x1 - x0, y1 - y0), interpolation=cv2.INTER_LINEAR)
            composite_over(canvas, tile, x0, y0, opacity)


def default_engine_factory(source_timeout: float = 30.0) -> EngineFactory:
    def factory(handler: RequestHandler) -> RenderEngine:
        return RasterTileEngine(handler, source_timeout=source_timeout)
    return factory
