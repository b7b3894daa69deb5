"""Incremental SSE framing.

The backend separates events with a blank line (``"\\n\\n"``). Within an
event only ``data: `` lines matter; each one carries a complete JSON payload.
Bytes arrive in arbitrary chunks, so frames are split on raw bytes and only
complete frames are decoded. A multi-byte character split across chunks is
therefore always whole by the time it is decoded, and an undecodable frame
never takes its neighbours with it.
"""

import logging
from typing import Iterable, List

from .errors import DecodeError

logger = logging.getLogger(__name__)

FRAME_DELIMITER = b"\n\n"
DATA_PREFIX = "data: "


class SSEFrameBuffer:
    """Turns a chunked byte stream into complete SSE frames in arrival order.

    A frame is only returned once it is terminated by a blank line; an
    incomplete trailing fragment stays buffered until a later chunk
    completes it.
    """

    def __init__(self):
        self._buffer = b""

    @property
    def pending(self) -> bytes:
        """Bytes received but not yet framed."""
        return self._buffer

    def feed(self, chunk: bytes) -> List[bytes]:
        """Append a byte chunk and return every frame it completes."""
        self._buffer += chunk
        if FRAME_DELIMITER not in self._buffer:
            return []

        *frames, self._buffer = self._buffer.split(FRAME_DELIMITER)
        return frames

    def clear(self):
        self._buffer = b""


def decode_frame(frame: bytes) -> List[str]:
    """Decode one complete frame and return the payload of each ``data: `` line.

    Raises:
        DecodeError: If the frame is not valid UTF-8
    """
    try:
        text = frame.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Invalid UTF-8 in stream frame: {e.reason}", repr(frame[:80])) from e
    return extract_payloads(text)


def extract_payloads(frame: str) -> List[str]:
    """Return the payload of every ``data: `` line in one frame, in order."""
    payloads = []
    for line in frame.split("\n"):
        if line.startswith(DATA_PREFIX):
            payloads.append(line[len(DATA_PREFIX):])
        elif line:
            logger.debug(f"Ignoring non-data SSE line: {line[:80]!r}")
    return payloads


def frame_chunks(chunks: Iterable[bytes]) -> List[str]:
    """Frame a whole sequence of byte chunks and return every payload, in order.

    Undecodable frames are logged and skipped.
    """
    buffer = SSEFrameBuffer()
    payloads: List[str] = []
    for chunk in chunks:
        for frame in buffer.feed(chunk):
            try:
                payloads.extend(decode_frame(frame))
            except DecodeError as e:
                logger.warning(f"Skipping malformed frame: {e}")
    return payloads
