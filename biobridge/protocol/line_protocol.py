"""Line-delimited protocol implementation.

Wraps ReplyParser and CommandSerializer for a fixed wire mode.
"""
from __future__ import annotations

from typing import Optional, Union

from ..models import DeviceCommand, DeviceReply, WireMode
from .base import Protocol
from .parser import ReplyParser
from .serializer import CommandSerializer


class LineProtocol(Protocol):
    """Newline-terminated protocol for the biometric device.

    Uses:
    - One command per line, bare tokens or a JSON envelope
    - One JSON object per reply line
    """

    def __init__(self, mode: WireMode = WireMode.JSON):
        self._mode = WireMode(mode)
        self._parser = ReplyParser()
        self._serializer = CommandSerializer()

    @property
    def mode(self) -> WireMode:
        return self._mode

    @property
    def dropped(self) -> int:
        """Number of lines dropped by the parser."""
        return self._parser.dropped

    def parse_line(self, line: Union[str, bytes]) -> Optional[DeviceReply]:
        """Parse a single line from the serial stream."""
        return self._parser.parse_line(line)

    def serialize_command(self, command: DeviceCommand) -> bytes:
        """Serialize command to UTF-8 bytes with newline."""
        cmd_str = self._serializer.serialize_command(command, self._mode)
        return (cmd_str + '\n').encode('utf-8')

    @property
    def name(self) -> str:
        return self._mode.value
