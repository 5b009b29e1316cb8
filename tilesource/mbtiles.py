"""
Read-only access to MBTiles archives (SQLite tile stores).

    metadata(name TEXT, value TEXT)   -- key/value settings (bounds, center, minzoom, ...)
    tiles(zoom_level, tile_column, tile_row, tile_data)  -- rows are TMS (y flipped)

Each MBTiles instance owns one SQLite connection; open it per query and close it
when done (it is also a context manager).
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Dict, List, Optional

from common.errors import ArchiveMetadataError, ArchiveOpenError, ArchiveTileNotFound
from common.geo import WORLD_BOUNDS


def _parse_floats(value: Optional[str], n: int) -> Optional[List[float]]:
    if not value:
        return None
    parts = [p.strip() for p in str(value).split(",")]
    if len(parts) != n:
        return None
    try:
        return [float(p) for p in parts]
    except ValueError:
        return None


class MBTiles:
    def __init__(self, path: str):
        self.path = str(path)
        if not Path(self.path).is_file():
            raise ArchiveOpenError(f"MBTiles archive not found: {self.path}")
        try:
            self._db = sqlite3.connect(Path(self.path).resolve().as_uri() + "?mode=ro", uri=True, check_same_thread=False)
        except sqlite3.Error as e:
            raise ArchiveOpenError(f"Cannot open MBTiles archive {self.path}: {e}") from e
        try:
            self._db.execute("SELECT name, value FROM metadata LIMIT 1")
            self._db.execute("SELECT zoom_level, tile_column, tile_row, tile_data FROM tiles LIMIT 1")
        except sqlite3.Error as e:
            self._db.close()
            raise ArchiveOpenError(f"Not an MBTiles archive {self.path}: {e}") from e

    def __enter__(self) -> "MBTiles":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._db.close()

    # -------- public API --------

    def metadata(self) -> Dict[str, str]:
        rows = self._db.execute("SELECT name, value FROM metadata").fetchall()
        return {str(k): v for k, v in rows}

    def get_info(self) -> Dict:
        """
        Return {minzoom, maxzoom, center, bounds} plus name/format when present.
        Missing zoom range comes from the tiles table; missing bounds default to the world.
        """
        try:
            meta = self.metadata()
            minzoom = meta.get("minzoom")
            maxzoom = meta.get("maxzoom")
            if minzoom is None or maxzoom is None:
                zmin, zmax = self._db.execute("SELECT MIN(zoom_level), MAX(zoom_level) FROM tiles").fetchone()
                minzoom = zmin if minzoom is None else minzoom
                maxzoom = zmax if maxzoom is None else maxzoom
            minzoom = int(minzoom) if minzoom is not None else 0
            maxzoom = int(maxzoom) if maxzoom is not None else 22
        except (sqlite3.Error, ValueError) as e:
            raise ArchiveMetadataError(f"Cannot read info from {self.path}: {e}") from e

        bounds = _parse_floats(meta.get("bounds"), 4) or list(WORLD_BOUNDS)
        center = _parse_floats(meta.get("center"), 3)
        if center is None:
            center = [(bounds[0] + bounds[2]) / 2.0, (bounds[1] + bounds[3]) / 2.0, float(minzoom)]

        info = {"minzoom": minzoom, "maxzoom": maxzoom, "center": center, "bounds": bounds}
        for key in ("name", "format"):
            if meta.get(key):
                info[key] = meta[key]
        return info

    def get_tile(self, z: int, x: int, y: int) -> bytes:
        tile_row = (2 ** int(z) - 1) - int(y)  # XYZ -> TMS
        try:
            row = self._db.execute(
                "SELECT tile_data FROM tiles WHERE zoom_level=? AND tile_column=? AND tile_row=?",
                (int(z), int(x), tile_row),
            ).fetchone()
        except sqlite3.Error as e:
            raise ArchiveTileNotFound(f"Tile lookup failed z:{z} x:{x} y:{y}: {e}") from e
        if row is None or row[0] is None:
            raise ArchiveTileNotFound(f"Tile does not exist z:{z} x:{x} y:{y}")
        return bytes(row[0])
