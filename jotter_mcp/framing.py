#!/usr/bin/env python3
"""Newline-delimited JSON framing for the stdio/TCP wire."""

import codecs
import json


class LineFramer:
    """Accumulates text chunks and yields complete, non-empty lines.

    The buffer never holds more than one partial (newline-less) frame, so
    the frames produced do not depend on where the chunks were split.
    """

    def __init__(self):
        self.buffer = ""

    def feed(self, chunk: str) -> list[str]:
        self.buffer += chunk
        frames = []
        while True:
            idx = self.buffer.find("\n")
            if idx < 0:
                break
            line = self.buffer[:idx].strip()
            self.buffer = self.buffer[idx + 1:]
            if line:
                frames.append(line)
        return frames


class ByteFramer(LineFramer):
    """LineFramer over raw bytes; split UTF-8 sequences are held until complete."""

    def __init__(self):
        super().__init__()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed_bytes(self, data: bytes) -> list[str]:
        return self.feed(self._decoder.decode(data))


def decode_frame(line: str) -> dict | None:
    """Parse one frame; anything that is not a request-shaped object is noise."""
    try:
        msg = json.loads(line)
    except (ValueError, RecursionError):
        return None
    if not isinstance(msg, dict):
        return None
    method = msg.get("method")
    if not isinstance(method, str) or not method:
        return None
    return msg


def encode_frame(obj: dict) -> str:
    return json.dumps(obj, ensure_ascii=False) + "\n"
