"""Test doubles shared by the gateway, hub, dispatcher and server tests."""
import asyncio
from typing import Callable, List

from biobridge.gateway import DeviceGateway
from biobridge.models import DeviceReply


class FakeLink:
    """Stand-in for SerialLink that records writes and lets tests push bytes."""

    port = "/dev/ttyFAKE"

    def __init__(self, open_ok=True, write_ok=True):
        self.open_ok = open_ok
        self.write_ok = write_ok
        self.written: List[bytes] = []
        self.autoreconnect = False
        self._open = False
        self._data_callbacks: List[Callable[[bytes], None]] = []
        self._state_callbacks: List[Callable[[bool], None]] = []

    def open(self):
        self._open = self.open_ok
        return self.open_ok

    def close(self):
        self._open = False

    def is_open(self):
        return self._open

    def write(self, data):
        if not self.write_ok:
            return False
        self.written.append(data)
        return True

    def set_autoreconnect(self, enabled):
        self.autoreconnect = enabled

    def subscribe_data(self, callback):
        self._data_callbacks.append(callback)
        return lambda: self._data_callbacks.remove(callback)

    def subscribe_state(self, callback):
        self._state_callbacks.append(callback)
        return lambda: self._state_callbacks.remove(callback)

    # Test controls

    def emit(self, data: bytes):
        """Deliver bytes as if the reader thread had read them."""
        for callback in list(self._data_callbacks):
            callback(data)

    def drop(self):
        """Simulate the device being unplugged."""
        self._open = False
        for callback in list(self._state_callbacks):
            callback(False)


class FakeGateway(DeviceGateway):
    """Gateway that answers from a list of canned payloads."""

    def __init__(self, replies=None, error=None, echo=False, start_error=None):
        self.replies = list(replies or [])
        self.error = error
        self.echo = echo
        self.start_error = start_error
        self.requests = []
        self.connected = False
        self._subscribers = []

    async def start(self):
        if self.start_error:
            raise self.start_error
        self.connected = True

    async def stop(self):
        self.connected = False

    def is_connected(self):
        return self.connected

    def subscribe_replies(self, callback):
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def request(self, command, timeout):
        self.requests.append((command, timeout))
        await asyncio.sleep(0)
        if self.error:
            raise self.error
        payload = self.replies.pop(0) if self.replies else {"type": "success"}
        reply = DeviceReply(payload=payload)
        if self.echo:
            self.publish(reply)
        return reply

    def publish(self, reply):
        for callback in list(self._subscribers):
            callback(reply)

    def stats(self):
        return {"connected": self.connected, "requests_sent": len(self.requests)}


async def wait_for_condition(predicate, timeout=1.0):
    """Poll until predicate() is true or fail after timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)
