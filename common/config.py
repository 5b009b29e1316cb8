from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_CONFIG_PATH = "config/params.yaml"

_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "tiles": {"archive_path": "data/tiles"},
    "render": {"width": 1024, "height": 1024, "format": "png"},
    "engine": {"source_timeout": 30.0},
    "server": {"host": "0.0.0.0", "port": 8000},
    "logging": {"level": "INFO", "format": "json"},
}


def _load_yaml(path: str) -> Dict:
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def load_config(path: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
    """
    Load params.yaml merged over built-in defaults (per section).
    Path precedence: explicit arg, env TILERENDER_CONFIG, config/params.yaml.
    A missing file yields the defaults.
    """
    path = path or os.environ.get("TILERENDER_CONFIG") or DEFAULT_CONFIG_PATH
    P = copy.deepcopy(_DEFAULTS)
    if not Path(path).exists():
        return P
    loaded = _load_yaml(path)
    if not isinstance(loaded, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    for section, values in loaded.items():
        if isinstance(values, dict) and isinstance(P.get(section), dict):
            P[section].update(values)
        else:
            P[section] = values
    return P
