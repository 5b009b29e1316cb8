from __future__ import annotations

from typing import Optional


class TileRenderError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(TileRenderError, ValueError):
    """Caller input rejected before any engine work starts."""


class MalformedTileURLError(TileRenderError, ValueError):
    """Tile URL does not end in a z/x/y triple."""


class ArchiveOpenError(TileRenderError):
    """Named local archive is missing or not a tile archive."""


class ArchiveMetadataError(TileRenderError):
    """Archive opened but its info record could not be read."""


class ArchiveTileNotFound(TileRenderError):
    """
    A single tile is absent or unreadable.
    Never surfaced to the engine; the archive adapter recovers with empty data.
    """


class RemoteTransportError(TileRenderError):
    """HTTP request failed before a response arrived."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class RemoteStatusError(TileRenderError):
    """Remote tile service answered with a non-200 status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RenderError(TileRenderError):
    """Render pass failed inside the engine or produced an unusable buffer."""
