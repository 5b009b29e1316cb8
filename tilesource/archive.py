from __future__ import annotations

import json
from typing import Dict, Optional

from common.errors import ArchiveTileNotFound
from common.logging_setup import get_logger
from common.types import TileResult
from tilesource.mbtiles import MBTiles
from tilesource.urls import ARCHIVE_SCHEME, resolve_archive_ref


log = get_logger(__name__)


def build_tilejson(service: str, info: Dict) -> Dict:
    """TileJSON descriptor pointing back at the same archive through the mbtiles:// scheme."""
    return {
        "tilejson": "1.0.0",
        "tiles": [f"{ARCHIVE_SCHEME}{service}/{{z}}/{{x}}/{{y}}"],
        "minzoom": info.get("minzoom"),
        "maxzoom": info.get("maxzoom"),
        "center": info.get("center"),
        "bounds": info.get("bounds"),
    }


def get_source_metadata(base_path: Optional[str], url: str) -> TileResult:
    """
    Open the archive named by `url` and return its TileJSON as JSON bytes.

    Raises:
        ArchiveOpenError: archive missing or not an MBTiles file.
        ArchiveMetadataError: info record unreadable.
    """
    ref = resolve_archive_ref(base_path, url)
    with MBTiles(ref.path) as mbtiles:
        info = mbtiles.get_info()
    tilejson = build_tilejson(ref.service, info)
    return TileResult(data=json.dumps(tilejson).encode("utf-8"))


def get_tile(base_path: Optional[str], url: str) -> TileResult:
    """
    Fetch one tile from a local archive.

    An unopenable archive raises ArchiveOpenError; a missing or unreadable tile
    is logged and answered with an empty result. Tile bytes are returned as
    stored (vector tiles stay gzipped).
    """
    ref = resolve_archive_ref(base_path, url, with_tile=True)
    with MBTiles(ref.path) as mbtiles:
        try:
            data = mbtiles.get_tile(ref.z, ref.x, ref.y)
        except ArchiveTileNotFound:
            log.warning(
                "error fetching tile: z:%s x:%s y:%s from %s", ref.z, ref.x, ref.y, ref.path,
                extra={"extra": {"archive": ref.path, "z": ref.z, "x": ref.x, "y": ref.y}},
            )
            return TileResult()
    return TileResult(data=data)
