"""Process-local config cache.

Entries are keyed by the resolved file path together with the ``MCPBRIDGE_*``
environment, so an override exported after the first load is picked up on the
next ``get_config`` without a forced reload.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path

from mcpbridge.config.loader import get_config_path, load_config
from mcpbridge.config.schema import Config

ENV_PREFIX = "MCPBRIDGE_"

_lock = threading.RLock()
_cache: dict[tuple[str, tuple[tuple[str, str], ...]], Config] = {}


def _resolve(config_path: Path | None) -> Path:
    return Path(config_path or get_config_path()).expanduser().resolve()


def _env_overrides() -> tuple[tuple[str, str], ...]:
    return tuple(sorted((k, v) for k, v in os.environ.items() if k.upper().startswith(ENV_PREFIX)))


def get_config(*, config_path: Path | None = None, force_reload: bool = False) -> Config:
    """Return the config for ``config_path`` (default file when omitted), loading it once."""
    path = _resolve(config_path)
    key = (str(path), _env_overrides())
    with _lock:
        if force_reload or key not in _cache:
            _cache[key] = load_config(path)
        return _cache[key]


def clear_config_cache(*, config_path: Path | None = None) -> None:
    """Drop the entries for one file, or every entry when no path is given."""
    with _lock:
        if config_path is None:
            _cache.clear()
            return
        path = str(_resolve(config_path))
        for key in [k for k in _cache if k[0] == path]:
            del _cache[key]
