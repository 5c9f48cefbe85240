"""Newline-delimited JSON framing for peer stdio streams."""

from __future__ import annotations

import json
from typing import Any, Callable, Iterator

from mcpbridge.utils.exceptions import MalformedFrameError

DELIMITER = b"\n"


def encode_frame(message: Any) -> bytes:
    """Encode one message as a single JSON line terminated by a newline."""
    return json.dumps(message, ensure_ascii=False, separators=(",", ":")).encode("utf-8") + DELIMITER


class FrameDecoder:
    """Incremental decoder: bytes in, one JSON value out per complete line.

    The trailing segment after the last newline stays buffered until a later
    ``feed`` completes it. Lines that fail to decode are dropped and reported
    through ``on_malformed``; they never stop the stream.
    """

    def __init__(self, on_malformed: Callable[[MalformedFrameError], None] | None = None):
        self._buffer = bytearray()
        self._on_malformed = on_malformed

    @property
    def pending_bytes(self) -> int:
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()

    def feed(self, data: bytes) -> Iterator[Any]:
        """Buffer ``data`` now; decode the completed lines lazily."""
        self._buffer.extend(data)
        if DELIMITER not in data:
            return iter(())
        *lines, rest = bytes(self._buffer).split(DELIMITER)
        self._buffer = bytearray(rest)
        return self._decode(lines)

    def _decode(self, lines: list[bytes]) -> Iterator[Any]:
        for line in lines:
            if not line.strip():
                continue
            try:
                yield json.loads(line.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                if self._on_malformed is not None:
                    self._on_malformed(MalformedFrameError(line, str(exc)))
