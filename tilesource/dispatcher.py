from __future__ import annotations

import threading
from typing import Callable, Optional

from common.logging_setup import get_logger
from common.types import ResourceKind, ResultCallback, TileRequest, TileResult
from tilesource import archive, remote
from tilesource.urls import is_archive_url


log = get_logger(__name__)


class RequestDispatcher:
    """
    Resource-request handler handed to the rendering engine.

    Routing:
      SOURCE + mbtiles://  -> archive.get_source_metadata
      SOURCE + other       -> not handled (callback never fires)
      TILE   + mbtiles://  -> archive.get_tile
      TILE   + other       -> remote.fetch_tile
      any other kind       -> not handled

    Each handled request runs on its own thread with its own archive handle or
    HTTP request; the dispatcher only carries the archive directory.
    """

    def __init__(self, base_path: Optional[str] = None):
        self.base_path = base_path

    def __call__(self, request: TileRequest, callback: ResultCallback) -> None:
        self.handle(request, callback)

    def handle(self, request: TileRequest, callback: ResultCallback) -> None:
        try:
            job = self._route(request)
            if job is None:
                return
            log.debug("Dispatching request", extra={"extra": {"url": request.url, "kind": int(request.kind)}})
            t = threading.Thread(target=self._run, args=(job, callback), daemon=True)
            t.start()
        except Exception as e:
            log.error("Request routing failed: %s", e, exc_info=True)
            callback(e, None)

    # -------- internals --------

    def _route(self, request: TileRequest) -> Optional[Callable[[], TileResult]]:
        url = request.url
        local = is_archive_url(url)
        if request.kind == ResourceKind.SOURCE:
            if local:
                return lambda: archive.get_source_metadata(self.base_path, url)
            return None
        if request.kind == ResourceKind.TILE:
            if local:
                return lambda: archive.get_tile(self.base_path, url)
            return lambda: remote.fetch_tile(url)
        return None

    @staticmethod
    def _run(job: Callable[[], TileResult], callback: ResultCallback) -> None:
        try:
            result = job()
        except Exception as e:
            callback(e, None)
            return
        callback(None, result)
