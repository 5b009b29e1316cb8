from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from common.config import load_config
from common.errors import TileRenderError, ValidationError
from common.logging_setup import get_logger, setup_logging
from common.types import RenderRequest
from renderer.orchestrator import render_request
from tilesource.urls import ARCHIVE_EXT


P = load_config()
setup_logging(P.get("logging", {}).get("level"), P.get("logging", {}).get("format"))
log = get_logger(__name__)

archive_path = str(P["tiles"]["archive_path"])
default_width = int(P["render"].get("width", 1024))
default_height = int(P["render"].get("height", 1024))
image_format = str(P["render"].get("format", "png"))

_MEDIA_TYPES = {"png": "image/png", "jpg": "image/jpeg", "jpeg": "image/jpeg", "webp": "image/webp"}


class RenderBody(BaseModel):
    style: Union[Dict[str, Any], str]
    width: Optional[int] = None
    height: Optional[int] = None
    center: Optional[List[float]] = None
    zoom: Optional[float] = None
    bounds: Optional[List[float]] = None


app = FastAPI(title="Static Map Render API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _archives() -> List[str]:
    root = Path(archive_path)
    if not root.is_dir():
        return []
    return sorted(p.stem for p in root.glob(f"*{ARCHIVE_EXT}"))


@app.get("/health")
def health():
    return {"status": "ok", "archive_path": archive_path, "archives": _archives()}


@app.post("/render")
def render_endpoint(body: RenderBody):
    """
    Render a static map. Returns image bytes.

    Provide either center + zoom, or bounds ([west, south, east, north]).
    """
    req = RenderRequest(
        style=body.style,
        width=body.width if body.width is not None else default_width,
        height=body.height if body.height is not None else default_height,
        center=body.center,
        zoom=body.zoom,
        bounds=body.bounds,
        archive_path=archive_path,
    )
    try:
        img = render_request(req, image_format=image_format)
    except ValidationError as e:
        return JSONResponse({"error": "validation", "detail": str(e)}, status_code=400)
    except TileRenderError as e:
        log.error("Render failed: %s", e, exc_info=True)
        return JSONResponse({"error": "render_failed", "detail": str(e)}, status_code=500)
    except Exception as e:
        log.error("Unexpected render failure: %s", e, exc_info=True)
        return JSONResponse({"error": "render_failed", "detail": str(e)}, status_code=500)
    return Response(content=img, media_type=_MEDIA_TYPES.get(image_format, "application/octet-stream"))


# -------- local dev entrypoint --------
if __name__ == "__main__":
    uvicorn.run(app, host=str(P["server"]["host"]), port=int(P["server"]["port"]))
