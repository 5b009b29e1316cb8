from __future__ import annotations

import math
from typing import Sequence, Tuple

from common.geo import lonlat_to_world_px, snap_world_px, world_px_to_lonlat
from common.types import Viewport


MIN_ZOOM = 0
MAX_ZOOM = 20


def _zoom_for_ratio(base: int, ratio: float) -> float:
    # zero span on an axis places no limit on zoom
    if ratio <= 0:
        return math.inf
    return base - math.log2(ratio)


def fit_zoom(bounds: Sequence[float], width: int, height: int) -> Tuple[int, Tuple[float, float]]:
    """
    Largest integer zoom at which `bounds` fits in width x height pixels, and
    the center of that view.

    Corners are projected to rounded world pixels at MAX_ZOOM (256 px tiles); the
    zoom is MAX_ZOOM minus log2 of the larger pixel-to-screen ratio, floored and
    clamped to [MIN_ZOOM, MAX_ZOOM].

    Returns:
        (zoom, (lng, lat))
    """
    west, south, east, north = (float(v) for v in bounds)
    base = MAX_ZOOM
    bl = snap_world_px(*lonlat_to_world_px(west, south, base), base)
    tr = snap_world_px(*lonlat_to_world_px(east, north, base), base)
    px_w = tr[0] - bl[0]
    px_h = bl[1] - tr[1]
    ratios = (px_w / float(width), px_h / float(height))
    center = world_px_to_lonlat((bl[0] + tr[0]) / 2.0, (bl[1] + tr[1]) / 2.0, base)

    adjusted = min(_zoom_for_ratio(base, ratios[0]), _zoom_for_ratio(base, ratios[1]))
    if math.isinf(adjusted):
        zoom = MAX_ZOOM
    else:
        zoom = int(max(MIN_ZOOM, min(MAX_ZOOM, math.floor(adjusted))))
    return zoom, center


def derive_viewport(bounds: Sequence[float], width: int, height: int) -> Viewport:
    """
    Viewport for bounds [west, south, east, north] rendered at width x height.

    The zoom is one level coarser than the exact fit (never below 0) so edge
    features of the bounds stay visible.
    """
    fitted, center = fit_zoom(bounds, width, height)
    return Viewport(zoom=max(fitted - 1, 0), center=center)
