from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union


LngLat = Tuple[float, float]


class ResourceKind(IntEnum):
    """
    Resource classification used by the rendering engine when it asks for data.
    Values match the engine's numbering; only SOURCE and TILE are served here.
    """
    UNKNOWN = 0
    STYLE = 1
    SOURCE = 2
    TILE = 3
    GLYPHS = 4
    SPRITE_IMAGE = 5
    SPRITE_JSON = 6


@dataclass(frozen=True, slots=True)
class TileRequest:
    url: str
    kind: int


@dataclass(frozen=True, slots=True)
class ResolvedArchiveRef:
    """
    Archive reference derived from an mbtiles:// URL.

    Attributes:
        service: archive name (first path component after the scheme).
        path: file path of the archive under the configured base directory.
        z, x, y: tile coordinates, only set for tile URLs.
    """
    service: str
    path: str
    z: Optional[int] = None
    x: Optional[int] = None
    y: Optional[int] = None

    @property
    def zxy(self) -> Tuple[Optional[int], Optional[int], Optional[int]]:
        return (self.z, self.x, self.y)


@dataclass(slots=True)
class TileResult:
    """
    Payload handed back to the engine for a resolved request.
    `data` is empty when a local tile was missing.
    """
    data: bytes = b""
    modified: Optional[datetime] = None
    expires: Optional[datetime] = None
    etag: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.data


@dataclass(frozen=True, slots=True)
class Viewport:
    zoom: float
    center: LngLat

    def to_params(self, width: int, height: int) -> Dict[str, Any]:
        """Render-pass parameters in the shape the engine consumes."""
        return {
            "zoom": self.zoom,
            "center": [float(self.center[0]), float(self.center[1])],
            "width": int(width),
            "height": int(height),
        }


@dataclass(slots=True)
class RenderRequest:
    """
    Caller parameters for one static map render.
    Viewport fields are optional until `renderer.orchestrator.resolve_viewport` fills them.
    """
    style: Union[Dict[str, Any], str, None]
    width: int = 1024
    height: int = 1024
    center: Optional[Sequence[float]] = None
    zoom: Optional[float] = None
    bounds: Optional[Sequence[float]] = None
    archive_path: Optional[str] = None


# callback(err, result) — exactly one of the two is set
ResultCallback = Callable[[Optional[BaseException], Optional[TileResult]], None]
RequestHandler = Callable[[TileRequest, ResultCallback], None]
