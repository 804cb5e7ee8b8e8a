"""Abstract base class for device wire protocols.

Defines the interface for parsing incoming lines and serializing commands.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Union

from ..models import DeviceCommand, DeviceReply


class Protocol(ABC):
    """Abstract protocol for device communication.

    Protocols handle:
    - Parsing framed lines into device replies
    - Serializing commands into wire format
    """

    @abstractmethod
    def parse_line(self, line: Union[str, bytes]) -> Optional[DeviceReply]:
        """Parse a framed line into a reply.

        Args:
            line: One frame from the serial stream

        Returns:
            DeviceReply if the line carries a reply, None otherwise
        """
        pass

    @abstractmethod
    def serialize_command(self, command: DeviceCommand) -> bytes:
        """Serialize a command into wire format.

        Args:
            command: Command to serialize

        Returns:
            Bytes ready to write to the serial link, newline included
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Protocol identifier (e.g., 'json', 'token')."""
        pass
