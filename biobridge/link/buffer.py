"""Line framer for the serial byte stream.

Rebuilds newline-delimited frames from arbitrarily chunked reads, with an
upper bound on the retained fragment.
"""
import logging
from typing import List

logger = logging.getLogger(__name__)

FRAME_DELIMITER = b"\n"
DEFAULT_MAX_FRAME_SIZE = 64 * 1024  # 64KB


class LineFramer:
    """Accumulates bytes and splits them into complete lines.

    The internal buffer only ever holds the bytes received since the last
    delimiter. If that fragment grows past ``max_size`` the device is
    considered desynchronized: the fragment is discarded and everything up
    to the next delimiter is dropped as well.

    Not thread-safe; feed it from a single thread (the event loop).
    """

    def __init__(self, max_size: int = DEFAULT_MAX_FRAME_SIZE):
        """Initialize framer.

        Args:
            max_size: Maximum fragment size in bytes before a reset.
        """
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._max_size = max_size
        self._buffer = bytearray()
        self._discarding = False
        self._overflow_count = 0

    def feed(self, data: bytes) -> List[bytes]:
        """Add a chunk and return every complete, non-blank frame.

        Args:
            data: Bytes as read from the link (may be empty).

        Returns:
            Frames in arrival order, without the delimiter or trailing CR.
        """
        frames: List[bytes] = []
        if not data:
            return frames

        self._buffer.extend(data)
        *complete, rest = self._buffer.split(FRAME_DELIMITER)

        for segment in complete:
            if self._discarding:
                # Tail of a line that overflowed
                self._discarding = False
                continue
            frame = bytes(segment.rstrip(b"\r"))
            if frame.strip():
                frames.append(frame)

        self._buffer = rest
        if len(self._buffer) > self._max_size:
            self._overflow_count += 1
            logger.warning(
                f"Frame buffer overflow: dropped {len(self._buffer)} bytes "
                f"without a delimiter (limit {self._max_size})"
            )
            self._buffer = bytearray()
            self._discarding = True

        return frames

    def reset(self) -> None:
        """Discard any partial frame, e.g. after the link reopens."""
        self._buffer.clear()
        self._discarding = False

    @property
    def size(self) -> int:
        """Current number of bytes held for the next frame."""
        return len(self._buffer)

    @property
    def overflow_count(self) -> int:
        """Number of desynchronization resets so far."""
        return self._overflow_count
