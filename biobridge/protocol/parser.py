"""Reply parser for the device serial protocol.

Parses framed device lines into DeviceReply values. The device interleaves
JSON replies with plain-text diagnostics ("Waiting for finger..."), so lines
that are not JSON are dropped rather than reported.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Optional, Union

from ..errors import DecodeError
from ..models import DeviceReply

logger = logging.getLogger(__name__)


class ReplyParser:
    """Parser for device reply lines.

    Keeps a count of dropped lines for diagnostics; otherwise stateless.
    """

    def __init__(self):
        self._dropped = 0

    @property
    def dropped(self) -> int:
        """Number of lines dropped because they were not JSON."""
        return self._dropped

    @staticmethod
    def decode(line: Union[str, bytes], received_at: Optional[float] = None) -> DeviceReply:
        """Decode a single line strictly.

        Args:
            line: Framed line (with or without newline)
            received_at: Time the line was framed, defaults to now

        Returns:
            The decoded DeviceReply

        Raises:
            DecodeError: If the line is blank or not valid JSON

        Examples:
            >>> ReplyParser.decode('{"status":"VERIFIED","voterId":"V123"}').payload
            {'status': 'VERIFIED', 'voterId': 'V123'}
        """
        if isinstance(line, (bytes, bytearray)):
            line = bytes(line).decode("utf-8", errors="replace")
        line = line.strip()

        if not line:
            raise DecodeError("Empty line")

        try:
            payload = json.loads(line, parse_constant=_reject_constant)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Invalid JSON from device: {e.msg}") from e

        return DeviceReply(
            payload=payload,
            received_at=received_at if received_at is not None else time.time(),
            raw=line,
        )

    def parse_line(self, line: Union[str, bytes], received_at: Optional[float] = None) -> Optional[DeviceReply]:
        """Decode a line, dropping it if it is not JSON.

        Returns:
            DeviceReply if the line decoded, None otherwise
        """
        try:
            return self.decode(line, received_at)
        except DecodeError as e:
            self._dropped += 1
            logger.debug(f"Dropping device line {line!r}: {e}")
            return None


def _reject_constant(name: str):
    # NaN/Infinity are accepted by json.loads but are not JSON
    raise DecodeError(f"Invalid JSON from device: {name} is not allowed")
