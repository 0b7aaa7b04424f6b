"""NDJSON stream parsing for model responses.

Turns a chunked byte stream from the chat endpoint into a lazy sequence of
decoded JSON frames.

Responsibilities:
    - Line splitting with a residual buffer across chunk boundaries
    - Silent dropping of malformed lines (one bad frame never aborts a reply)
    - Incremental UTF-8 decoding of raw network chunks
    - Extraction of the ``message.content`` fragment from each frame
"""

from newton_chat.parsing.ndjson import (
    Frame,
    NDJSONDecoder,
    flush,
    frame_content,
    parse_chunk,
)

__all__ = ["Frame", "NDJSONDecoder", "flush", "frame_content", "parse_chunk"]
