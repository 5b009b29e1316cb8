from __future__ import annotations

from typing import Tuple
import math


TILE_SIZE = 256

# sin(lat) clamp used by spherical-mercator pixel projection (~ +/-85.0511 deg)
_SIN_LAT_LIMIT = 0.9999

WORLD_BOUNDS = (-180.0, -85.0511287798066, 180.0, 85.0511287798066)


# -------------------------
# Web Mercator world pixels
# -------------------------
def world_size(zoom: float, tile_size: int = TILE_SIZE) -> float:
    """World size in pixels at a (possibly fractional) zoom."""
    return float(tile_size) * (2.0 ** zoom)


def lonlat_to_world_px(lon: float, lat: float, zoom: float, tile_size: int = TILE_SIZE) -> Tuple[float, float]:
    """
    Project lon/lat (deg) to unrounded world pixel coordinates at `zoom`.
    Origin is the top-left corner of the world; y grows southward.
    """
    size = world_size(zoom, tile_size)
    s = min(max(math.sin(math.radians(lat)), -_SIN_LAT_LIMIT), _SIN_LAT_LIMIT)
    x = size / 2.0 + lon * (size / 360.0)
    y = size / 2.0 - 0.5 * math.log((1 + s) / (1 - s)) * (size / (2 * math.pi))
    return x, y


def world_px_to_lonlat(x: float, y: float, zoom: float, tile_size: int = TILE_SIZE) -> Tuple[float, float]:
    """Inverse of lonlat_to_world_px."""
    size = world_size(zoom, tile_size)
    g = (y - size / 2.0) / (-size / (2 * math.pi))
    lon = (x - size / 2.0) / (size / 360.0)
    lat = math.degrees(2 * math.atan(math.exp(g)) - 0.5 * math.pi)
    return lon, lat


def snap_world_px(x: float, y: float, zoom: int, tile_size: int = TILE_SIZE) -> Tuple[int, int]:
    """
    Round world pixels and cap them at the world edge, matching the integer
    pixel grid used by the viewport fitting computation.
    """
    size = int(world_size(zoom, tile_size))
    px = min(int(math.floor(x + 0.5)), size)
    py = min(int(math.floor(y + 0.5)), size)
    return px, py
