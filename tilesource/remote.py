from __future__ import annotations

import json
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Optional

import requests

from common.errors import RemoteStatusError, RemoteTransportError
from common.logging_setup import get_logger
from common.types import TileResult


log = get_logger(__name__)


def _parse_http_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        log.debug("Ignoring unparseable date header: %s", value)
        return None


def fetch_tile(url: str) -> TileResult:
    """
    GET a remotely hosted tile.

    requests negotiates gzip and decodes it; `response.content` keeps the body binary.
    Non-200 responses are expected to carry a JSON body with a `message` field.

    Raises:
        RemoteTransportError: connection-level failure (original exception in `.cause`).
        RemoteStatusError: non-200 status, message taken from the JSON body.
    """
    try:
        r = requests.get(url)
    except requests.RequestException as e:
        raise RemoteTransportError(f"Request to {url} failed: {e}", cause=e) from e

    if r.status_code != 200:
        # malformed error bodies raise the JSON/key error as-is
        message = json.loads(r.content)["message"]
        raise RemoteStatusError(message, status_code=r.status_code)

    headers = r.headers
    return TileResult(
        data=r.content,
        modified=_parse_http_date(headers.get("modified") or headers.get("last-modified")),
        expires=_parse_http_date(headers.get("expires")),
        etag=headers.get("etag"),
    )
