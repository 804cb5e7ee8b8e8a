"""Abstract base class for the device gateway.

The DeviceGateway interface is the single point of access to the device.
Implementations own the physical link; callers only see commands going in,
replies coming back, and a broadcast feed of everything the device says.

Key principles:
- At most one outstanding request at a time
- Immutable replies (DeviceReply values)
- Pub/sub for unsolicited device output
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict

from ..models import DeviceCommand, DeviceReply


class DeviceGateway(ABC):
    """Abstract gateway to the biometric device.

    Gateways are responsible for:
    1. Managing the link lifecycle
    2. Sending commands and correlating the reply
    3. Publishing every reply to broadcast subscribers

    Gateways should NOT contain client-facing logic like validation or
    response shaping.
    """

    @abstractmethod
    async def start(self) -> None:
        """Open the link to the device.

        Raises:
            TransportError: If the link cannot be opened
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Close the link. Safe to call multiple times."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the link to the device is open."""
        pass

    @abstractmethod
    def subscribe_replies(
        self,
        callback: Callable[[DeviceReply], None]
    ) -> Callable[[], None]:
        """Subscribe to the broadcast feed.

        The callback is invoked on the event loop for every reply the device
        sends, including replies that also resolved a request. Callbacks
        must not block.

        Args:
            callback: Function that receives DeviceReply values

        Returns:
            Unsubscribe function to remove this callback
        """
        pass

    @abstractmethod
    async def request(self, command: DeviceCommand, timeout: float) -> DeviceReply:
        """Send a command and wait for the device's reply.

        Args:
            command: Command to send
            timeout: Seconds until the request is declared failed

        Returns:
            The first reply framed after the command was sent

        Raises:
            TransportError: If the command could not be written
            DeviceTimeoutError: If no reply arrived before the deadline
            GatewayBusyError: If another request is outstanding and the
                gateway rejects rather than queues
        """
        pass

    def stats(self) -> Dict[str, Any]:
        """Diagnostic counters for the health endpoint."""
        return {}

    async def __aenter__(self) -> DeviceGateway:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
