from __future__ import annotations

import os
import re
from typing import Optional, Tuple

from common.errors import MalformedTileURLError
from common.types import ResolvedArchiveRef


ARCHIVE_SCHEME = "mbtiles://"
ARCHIVE_EXT = ".mbtiles"

_TILE_RE = re.compile(r"mbtiles://([^/]+)/(\d+)/(\d+)/(\d+)")


def is_archive_url(url: str) -> bool:
    return url.startswith(ARCHIVE_SCHEME)


def resolve_service_name(url: str) -> str:
    """'mbtiles://parks/5/10/12' -> 'parks'"""
    if "://" not in url:
        raise MalformedTileURLError(f"Not a scheme URL: {url}")
    return url.split("://", 1)[1].split("/")[0]


def resolve_archive_path(base_path: Optional[str], url: str) -> str:
    """
    Join base directory, service name and archive extension.
    No existence check; a bad path fails when the archive is opened.
    """
    return os.path.join(base_path or "", resolve_service_name(url) + ARCHIVE_EXT)


def resolve_tile_coords(url: str) -> Tuple[int, int, int]:
    m = _TILE_RE.search(url)
    if m is None:
        raise MalformedTileURLError(f"Tile URL must end in /z/x/y: {url}")
    z, x, y = m.groups()[-3:]
    return int(z), int(x), int(y)


def resolve_archive_ref(base_path: Optional[str], url: str, *, with_tile: bool = False) -> ResolvedArchiveRef:
    service = resolve_service_name(url)
    path = resolve_archive_path(base_path, url)
    if not with_tile:
        return ResolvedArchiveRef(service=service, path=path)
    z, x, y = resolve_tile_coords(url)
    return ResolvedArchiveRef(service=service, path=path, z=z, x=x, y=y)
