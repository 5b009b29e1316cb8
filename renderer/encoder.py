from __future__ import annotations

from typing import Union

import cv2
import numpy as np

from common.errors import RenderError


CHANNELS = 4

_EXTENSIONS = {"png": ".png", "jpeg": ".jpg", "jpg": ".jpg", "webp": ".webp"}


def encode_rgba(buffer: Union[bytes, bytearray, memoryview, np.ndarray], width: int, height: int, fmt: str = "png") -> bytes:
    """
    Encode a raw RGBA buffer (width*height*4 bytes, row-major) to an image format.
    JPEG drops the alpha channel.
    """
    ext = _EXTENSIONS.get(fmt.lower())
    if ext is None:
        raise ValueError(f"Unsupported image format: {fmt}")

    arr = np.frombuffer(buffer, dtype=np.uint8).copy() if not isinstance(buffer, np.ndarray) else buffer.astype(np.uint8, copy=False)
    expected = int(width) * int(height) * CHANNELS
    if arr.size != expected:
        raise RenderError(f"Pixel buffer has {arr.size} bytes, expected {expected} ({width}x{height}x{CHANNELS})")
    rgba = arr.reshape(int(height), int(width), CHANNELS)

    if ext == ".jpg":
        img = cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGR)
    else:
        img = cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGRA)
    ok, out = cv2.imencode(ext, img)
    if not ok:
        raise RenderError(f"Image encoding to {fmt} failed")
    return out.tobytes()
