"""HTTP helpers for CLI commands that talk to a running bridge."""

from __future__ import annotations

import json
from typing import Any
from urllib import error, request

from mcpbridge.config.schema import Config


def get_bridge_base_url(config: Config) -> str:
    """Build the bridge base URL from config."""
    host = config.gateway.host
    if host in {"0.0.0.0", "::"}:
        host = "127.0.0.1"
    return f"http://{host}:{config.gateway.port}"


def http_json(
    method: str,
    url: str,
    payload: dict[str, Any] | None = None,
    timeout: float = 5.0,
    headers: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Send an HTTP request and parse JSON response."""
    body = None
    req_headers: dict[str, str] = {"Accept": "application/json"}
    if payload is not None:
        body = json.dumps(payload).encode("utf-8")
        req_headers["Content-Type"] = "application/json"
    if headers:
        req_headers.update(headers)
    req = request.Request(url=url, data=body, method=method.upper(), headers=req_headers)
    try:
        with request.urlopen(req, timeout=timeout) as response:
            text = response.read().decode("utf-8", errors="replace")
            return json.loads(text) if text else {}
    except error.HTTPError as exc:
        text = exc.read().decode("utf-8", errors="replace")
        detail: Any = text
        try:
            detail = json.loads(text)
        except json.JSONDecodeError:
            pass
        raise RuntimeError(f"{exc.code} {exc.reason}: {detail}") from exc
    except error.URLError as exc:
        raise RuntimeError(f"Bridge unavailable: {exc.reason}") from exc
