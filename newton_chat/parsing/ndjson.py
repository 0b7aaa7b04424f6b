"""NDJSON frame parsing for chunked model streams.

The backend writes one JSON object per line, but network chunks do not
respect line boundaries. Parsing keeps a residual buffer of the
unterminated tail between calls so a frame split across chunks is emitted
exactly once, when its terminating newline arrives.
"""

import codecs
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

Frame = dict[str, Any]


def _decode_line(line: str) -> Frame | None:
    """Decode one candidate line, returning None for noise."""
    line = line.strip()
    if not line:
        return None
    try:
        frame = json.loads(line)
    except json.JSONDecodeError:
        logger.debug(f"Dropping undecodable NDJSON line: {line[:80]!r}")
        return None
    if not isinstance(frame, dict):
        logger.debug(f"Dropping non-object NDJSON line: {line[:80]!r}")
        return None
    return frame


def parse_chunk(buffer: str, chunk: str) -> tuple[list[Frame], str]:
    """Extract complete frames from the residual buffer plus a new chunk.

    Args:
        buffer: Unterminated tail left over from the previous call.
        chunk: Newly arrived text.

    Returns:
        The frames completed by this chunk, in stream order, and the new
        residual buffer (the text after the last newline, possibly empty).
    """
    lines = (buffer + chunk).split("\n")
    residual = lines.pop()

    frames = []
    for line in lines:
        frame = _decode_line(line)
        if frame is not None:
            frames.append(frame)
    return frames, residual


def flush(residual: str) -> list[Frame]:
    """Parse whatever remains in the buffer once the stream has ended.

    A backend that omits the final newline still gets its last frame
    delivered; a truncated tail is dropped like any other noise.
    """
    frame = _decode_line(residual)
    return [frame] if frame is not None else []


def frame_content(frame: Frame) -> str | None:
    """Return the incremental ``message.content`` fragment of a frame."""
    message = frame.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if isinstance(content, str) and content:
        return content
    return None


class NDJSONDecoder:
    """Incremental bytes-to-frames decoder for a single response stream.

    UTF-8 sequences split across network chunks are held back by the
    incremental codec until complete, then the text goes through
    :func:`parse_chunk` with the persisted residual.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def residual(self) -> str:
        return self._buffer

    def feed(self, data: bytes) -> list[Frame]:
        text = self._decoder.decode(data)
        frames, self._buffer = parse_chunk(self._buffer, text)
        return frames

    def close(self) -> list[Frame]:
        """Finish the stream and return any frame left in the residual."""
        frames, self._buffer = parse_chunk(self._buffer, self._decoder.decode(b"", final=True))
        frames.extend(flush(self._buffer))
        self._buffer = ""
        return frames
