"""Session hub: the set of connected network clients.

Device replies published by the gateway are fanned out to every open
session. Delivery is best-effort and isolated per session: a session whose
send fails is dropped without affecting the others or the serial link.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from .gateway import DeviceGateway
from .models import DeviceReply

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ClientSession:
    """One connected network client.

    Attributes:
        send: Coroutine function delivering a text message to the client
        close: Optional coroutine function closing the client connection
        peer: Remote address, for logging
        id: Unique session id
        open: False once the session has been removed
        connected_at: Unix timestamp of registration
    """
    send: Callable[[str], Awaitable[None]]
    close: Optional[Callable[[], Awaitable[None]]] = None
    peer: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    open: bool = True
    connected_at: float = field(default_factory=time.time)


class SessionHub:
    """Tracks open client sessions and broadcasts device output to them.

    Must be used from the event loop thread.
    """

    def __init__(self, broadcast_tag: Optional[str] = None):
        """Initialize hub.

        Args:
            broadcast_tag: If set, broadcast replies carry {"delivery": tag}
        """
        self._sessions: Dict[str, ClientSession] = {}
        self._broadcast_tag = broadcast_tag
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def sessions(self) -> List[ClientSession]:
        """Open sessions in registration order."""
        return list(self._sessions.values())

    def register(
        self,
        send: Callable[[str], Awaitable[None]],
        close: Optional[Callable[[], Awaitable[None]]] = None,
        peer: str = "",
    ) -> ClientSession:
        """Add a client and return its session."""
        session = ClientSession(send=send, close=close, peer=peer)
        self._sessions[session.id] = session
        logger.info(f"Client {session.id} connected from {peer or 'unknown'} ({len(self)} open)")
        return session

    def unregister(self, session: ClientSession) -> None:
        """Remove a client. Safe to call more than once."""
        session.open = False
        if self._sessions.pop(session.id, None) is not None:
            logger.info(f"Client {session.id} disconnected ({len(self)} open)")

    async def broadcast(self, message: Union[str, Dict[str, Any], List[Any]]) -> int:
        """Send a message to every open session.

        Args:
            message: Text, or a JSON-serializable value

        Returns:
            Number of delivery attempts made
        """
        text = message if isinstance(message, str) else json.dumps(message)
        sessions = self.sessions
        if sessions:
            await asyncio.gather(*(self._deliver(session, text) for session in sessions), return_exceptions=True)
        return len(sessions)

    async def send(self, session: ClientSession, message: Union[str, Dict[str, Any]]) -> bool:
        """Send a message to one session.

        Returns:
            True if delivered, False if the session failed and was removed
        """
        text = message if isinstance(message, str) else json.dumps(message)
        return await self._deliver(session, text)

    def format_reply(self, reply: DeviceReply) -> Any:
        """Build the broadcast envelope for a device reply."""
        payload = reply.payload
        if self._broadcast_tag is None:
            return payload
        if isinstance(payload, dict):
            return {**payload, "delivery": self._broadcast_tag}
        return {"delivery": self._broadcast_tag, "payload": payload}

    def attach(self, gateway: DeviceGateway) -> None:
        """Subscribe to the gateway's broadcast feed."""
        self.detach()
        self._unsubscribe = gateway.subscribe_replies(self._on_reply)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def close_all(self) -> None:
        """Close and remove every session (shutdown)."""
        self.detach()
        for session in self.sessions:
            self.unregister(session)
            if session.close is not None:
                try:
                    await session.close()
                except Exception as e:
                    logger.debug(f"Error closing client {session.id}: {e}")
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # Internal methods

    def _on_reply(self, reply: DeviceReply) -> None:
        task = asyncio.get_running_loop().create_task(self.broadcast(self.format_reply(reply)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, session: ClientSession, text: str) -> bool:
        if not session.open:
            return False
        try:
            await session.send(text)
            return True
        except Exception as e:
            logger.warning(f"Dropping client {session.id}: send failed ({e})")
            self.unregister(session)
            return False
