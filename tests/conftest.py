import os
import sqlite3
import sys
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Dict, Optional, Tuple

import cv2
import numpy as np
import pytest

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(project_root)

from common.types import TileResult


def png_tile(rgba: Tuple[int, int, int, int] = (255, 0, 0, 255), size: int = 256) -> bytes:
    """Solid-color PNG tile (RGBA order in, OpenCV BGRA on disk)."""
    r, g, b, a = rgba
    img = np.zeros((size, size, 4), dtype=np.uint8)
    img[:] = (b, g, r, a)
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()


def write_mbtiles(
    path: Path,
    tiles: Dict[Tuple[int, int, int], bytes],
    metadata: Optional[Dict[str, str]] = None,
) -> Path:
    """Create an MBTiles file; `tiles` keys are XYZ (z, x, y)."""
    db = sqlite3.connect(str(path))
    db.execute("CREATE TABLE metadata (name TEXT, value TEXT, PRIMARY KEY (name))")
    db.execute("CREATE TABLE tiles (zoom_level INTEGER, tile_column INTEGER, tile_row INTEGER, tile_data BLOB)")
    db.execute("CREATE UNIQUE INDEX coord ON tiles (zoom_level, tile_column, tile_row)")
    for name, value in (metadata or {}).items():
        db.execute("INSERT INTO metadata VALUES (?, ?)", (name, value))
    for (z, x, y), data in tiles.items():
        db.execute("INSERT INTO tiles VALUES (?, ?, ?, ?)", (z, x, (2 ** z - 1) - y, sqlite3.Binary(data)))
    db.commit()
    db.close()
    return path


@pytest.fixture
def archive_dir(tmp_path):
    """Directory with parks.mbtiles: a red z0 tile, a green z1 tile at 1/0/0."""
    write_mbtiles(
        tmp_path / "parks.mbtiles",
        {
            (0, 0, 0): png_tile((255, 0, 0, 255)),
            (1, 0, 0): png_tile((0, 255, 0, 255)),
        },
        {
            "name": "parks",
            "format": "png",
            "minzoom": "0",
            "maxzoom": "1",
            "bounds": "-180.0,-85.0511,180.0,85.0511",
            "center": "0,0,0",
        },
    )
    return tmp_path


class CallbackRecorder:
    """Collects callback(err, result) invocations from dispatcher threads."""

    def __init__(self):
        self.calls = []
        self.future: "Future[TileResult]" = Future()
        self._lock = threading.Lock()

    def __call__(self, err, result):
        with self._lock:
            self.calls.append((err, result))
            if not self.future.done():
                if err is not None:
                    self.future.set_exception(err)
                else:
                    self.future.set_result(result)

    def wait(self, timeout: float = 5.0):
        """Return (err, result) of the first invocation."""
        try:
            return None, self.future.result(timeout=timeout)
        except Exception as e:
            return e, None


@pytest.fixture
def recorder():
    return CallbackRecorder()
