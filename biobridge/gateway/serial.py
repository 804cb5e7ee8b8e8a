"""Serial gateway implementation.

Implements the DeviceGateway interface on top of the SerialLink for bytes,
the LineFramer for framing and the Protocol layer for parsing/serialization.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..config import BUSY_POLICIES, BUSY_QUEUE, BUSY_REJECT
from ..errors import (
    DeviceTimeoutError,
    GatewayBusyError,
    TransportError,
    TransportWriteError,
)
from ..link import LineFramer, SerialLink
from ..link.connection import DEFAULT_BAUD
from ..models import DeviceCommand, DeviceReply
from ..protocol import LineProtocol, Protocol
from .base import DeviceGateway

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """One in-flight command waiting for its reply.

    Attributes:
        command: The command that was sent
        future: Completion slot, resolved with a DeviceReply or failed
        deadline: Event loop time after which the request fails
    """
    command: DeviceCommand
    future: asyncio.Future
    deadline: float


class SerialGateway(DeviceGateway):
    """Gateway using a serial link to the device.

    Responsibilities:
    - Own the serial link lifecycle
    - Frame and parse incoming bytes on the event loop
    - Enforce a single outstanding request (queue or reject the rest)
    - Resolve the pending request with the next reply
    - Publish every reply to broadcast subscribers

    Bytes arrive on the link's reader thread and are handed to the event loop
    with ``call_soon_threadsafe``, so framing, correlation and publishing all
    happen on one thread.
    """

    def __init__(
        self,
        link: Optional[SerialLink] = None,
        protocol: Optional[Protocol] = None,
        framer: Optional[LineFramer] = None,
        port: Optional[str] = None,
        baudrate: int = DEFAULT_BAUD,
        busy_policy: str = BUSY_QUEUE,
        reconnect: bool = False,
    ):
        """Initialize SerialGateway.

        Args:
            link: Existing SerialLink, or None to create one for ``port``
            protocol: Protocol implementation (default: LineProtocol, JSON mode)
            framer: Line framer (default: LineFramer with default bound)
            port: Serial port for a new link (if link is None)
            baudrate: Baud rate for a new link
            busy_policy: 'queue' or 'reject' while a request is outstanding
            reconnect: Reopen the link after I/O errors
        """
        if link is None and not port:
            raise ValueError("Either link or port is required")
        if busy_policy not in BUSY_POLICIES:
            raise ValueError(f"Invalid busy policy: {busy_policy}")

        self._link = link or SerialLink(port, baudrate=baudrate)
        self._protocol = protocol or LineProtocol()
        self._framer = framer or LineFramer()
        self._busy_policy = busy_policy
        self._reconnect = reconnect

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._link_unsubscribers: List[Callable[[], None]] = []

        # Single-outstanding slot
        self._slot = asyncio.Lock()
        self._pending: Optional[PendingRequest] = None

        self._subscribers: List[Callable[[DeviceReply], None]] = []

        # Counters
        self._requests_sent = 0
        self._replies_received = 0
        self._timeouts = 0

    @property
    def link(self) -> SerialLink:
        return self._link

    @property
    def pending(self) -> Optional[PendingRequest]:
        """The request currently waiting for a reply, if any."""
        return self._pending

    async def start(self) -> None:
        """Open the serial link and start receiving."""
        if self._loop is not None:
            return

        self._loop = asyncio.get_running_loop()
        self._link_unsubscribers = [
            self._link.subscribe_data(self._on_data),
            self._link.subscribe_state(self._on_link_state),
        ]

        opened = await self._loop.run_in_executor(None, self._link.open)
        if not opened:
            self._detach()
            raise TransportError(f"Could not open serial port {self._link.port}")

        self._link.set_autoreconnect(self._reconnect)
        logger.info(f"Gateway started ({self._protocol.name} wire mode, {self._busy_policy} when busy)")

    async def stop(self) -> None:
        """Close the serial link and fail any outstanding request."""
        if self._loop is None:
            return

        loop = self._loop
        self._link.set_autoreconnect(False)
        self._detach()
        await loop.run_in_executor(None, self._link.close)
        self._framer.reset()
        self._fail_pending(TransportError("Gateway stopped"))
        logger.info("Gateway stopped")

    def is_connected(self) -> bool:
        return self._link.is_open()

    def subscribe_replies(
        self,
        callback: Callable[[DeviceReply], None]
    ) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def request(self, command: DeviceCommand, timeout: float) -> DeviceReply:
        """Send a command and wait for the next reply.

        The exchange runs as its own task: if the caller goes away, the
        request still resolves or times out and releases the device.
        """
        if self._loop is None:
            raise TransportError("Gateway not started")

        task = asyncio.ensure_future(self._exchange(command, timeout))
        task.add_done_callback(self._consume_result)
        return await asyncio.shield(task)

    def stats(self) -> Dict[str, Any]:
        return {
            "connected": self.is_connected(),
            "port": self._link.port,
            "wire_mode": self._protocol.name,
            "busy_policy": self._busy_policy,
            "pending": self._pending is not None,
            "requests_sent": self._requests_sent,
            "replies_received": self._replies_received,
            "timeouts": self._timeouts,
            "frames_dropped": getattr(self._protocol, "dropped", 0),
            "framer_overflows": self._framer.overflow_count,
        }

    # Internal methods

    async def _exchange(self, command: DeviceCommand, timeout: float) -> DeviceReply:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        if self._busy_policy == BUSY_REJECT:
            # Check and take the slot without yielding to the loop
            if self._slot.locked() or self._pending is not None:
                raise GatewayBusyError()
            await self._slot.acquire()
        else:
            try:
                await asyncio.wait_for(self._slot.acquire(), timeout=max(deadline - loop.time(), 0))
            except asyncio.TimeoutError:
                self._timeouts += 1
                logger.warning(f"Timed out waiting for the device to become free for {command.action.value}")
                raise DeviceTimeoutError() from None

        pending = None
        try:
            if not self._link.is_open():
                raise TransportError()

            data = self._protocol.serialize_command(command)
            pending = PendingRequest(command=command, future=loop.create_future(), deadline=deadline)
            self._pending = pending

            written = await loop.run_in_executor(None, self._link.write, data)
            if not written:
                raise TransportWriteError()
            self._requests_sent += 1
            logger.debug(f"Sent {data!r}")

            try:
                return await asyncio.wait_for(pending.future, timeout=max(deadline - loop.time(), 0))
            except asyncio.TimeoutError:
                self._timeouts += 1
                logger.warning(f"No reply to {command.action.value} before deadline")
                raise DeviceTimeoutError() from None
        finally:
            if self._pending is pending:
                self._pending = None
            self._slot.release()

    @staticmethod
    def _consume_result(task: asyncio.Task) -> None:
        # Results of abandoned requests are discarded
        if not task.cancelled():
            task.exception()

    def _detach(self) -> None:
        for unsubscribe in self._link_unsubscribers:
            unsubscribe()
        self._link_unsubscribers = []
        self._loop = None

    def _on_data(self, chunk: bytes) -> None:
        """Reader thread callback: hand the chunk to the event loop."""
        self._call_on_loop(self._feed, chunk)

    def _on_link_state(self, is_open: bool) -> None:
        """Link state callback (any thread)."""
        self._call_on_loop(self._link_state_changed, is_open)

    def _call_on_loop(self, callback, *args) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            logger.debug("Event loop closed, dropping serial event")

    def _feed(self, chunk: bytes) -> None:
        for frame in self._framer.feed(chunk):
            reply = self._protocol.parse_line(frame)
            if reply is not None:
                self._dispatch_reply(reply)

    def _dispatch_reply(self, reply: DeviceReply) -> None:
        self._replies_received += 1

        pending = self._pending
        if pending is not None and not pending.future.done():
            pending.future.set_result(reply)
            self._pending = None

        self._publish(reply)

    def _publish(self, reply: DeviceReply) -> None:
        for callback in list(self._subscribers):
            try:
                callback(reply)
            except Exception:
                logger.exception("Reply subscriber failed")

    def _link_state_changed(self, is_open: bool) -> None:
        if is_open:
            logger.info(f"Serial link {self._link.port} open")
        else:
            logger.warning(f"Serial link {self._link.port} closed")
            # A partial line from before the drop can't be completed
            self._framer.reset()
            self._fail_pending(TransportError())

    def _fail_pending(self, error: Exception) -> None:
        pending = self._pending
        if pending is not None and not pending.future.done():
            pending.future.set_exception(error)
        self._pending = None
