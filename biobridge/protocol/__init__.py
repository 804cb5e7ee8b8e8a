"""Protocol layer for serial communication with the biometric device."""

from .base import Protocol
from .line_protocol import LineProtocol
from .parser import ReplyParser
from .serializer import CommandSerializer

__all__ = [
    "Protocol",
    "LineProtocol",
    "ReplyParser",
    "CommandSerializer",
]
