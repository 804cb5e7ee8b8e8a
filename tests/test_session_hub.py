"""Tests for SessionHub broadcast fan-out."""
import asyncio
import json
import unittest
from unittest.mock import AsyncMock

from biobridge.gateway import SerialGateway
from biobridge.hub import SessionHub
from biobridge.models import DeviceReply

from helpers import FakeGateway, FakeLink, wait_for_condition


class TestSessionHubRegistry(unittest.IsolatedAsyncioTestCase):

    async def test_register_and_unregister(self):
        hub = SessionHub()
        first = hub.register(AsyncMock(), peer="10.0.0.1:5000")
        second = hub.register(AsyncMock())

        self.assertEqual(len(hub), 2)
        self.assertEqual(hub.sessions, [first, second])
        self.assertNotEqual(first.id, second.id)

        hub.unregister(first)
        self.assertEqual(hub.sessions, [second])
        self.assertFalse(first.open)

    async def test_unregister_twice(self):
        hub = SessionHub()
        session = hub.register(AsyncMock())
        hub.unregister(session)
        hub.unregister(session)
        self.assertEqual(len(hub), 0)

    async def test_close_all(self):
        hub = SessionHub()
        close = AsyncMock()
        hub.register(AsyncMock(), close=close)
        hub.register(AsyncMock())

        await hub.close_all()

        self.assertEqual(len(hub), 0)
        close.assert_awaited_once()


class TestSessionHubBroadcast(unittest.IsolatedAsyncioTestCase):

    async def test_broadcast_reaches_every_session(self):
        hub = SessionHub()
        sends = [AsyncMock() for _ in range(3)]
        for send in sends:
            hub.register(send)

        attempts = await hub.broadcast({"status": "VERIFIED"})

        self.assertEqual(attempts, 3)
        for send in sends:
            send.assert_awaited_once_with('{"status": "VERIFIED"}')

    async def test_broadcast_text(self):
        hub = SessionHub()
        send = AsyncMock()
        hub.register(send)

        await hub.broadcast("raw text")
        send.assert_awaited_once_with("raw text")

    async def test_failed_session_isolated(self):
        hub = SessionHub()
        good_before = AsyncMock()
        bad = AsyncMock(side_effect=ConnectionResetError("gone"))
        good_after = AsyncMock()
        hub.register(good_before)
        bad_session = hub.register(bad)
        hub.register(good_after)

        with self.assertLogs('biobridge.hub', level='WARNING'):
            attempts = await hub.broadcast({"n": 1})

        self.assertEqual(attempts, 3)
        bad.assert_awaited_once()
        good_before.assert_awaited_once()
        good_after.assert_awaited_once()
        self.assertNotIn(bad_session, hub.sessions)
        self.assertEqual(len(hub), 2)

        await hub.broadcast({"n": 2})
        bad.assert_awaited_once()
        self.assertEqual(good_after.await_count, 2)

    async def test_session_closing_during_fanout(self):
        hub = SessionHub()
        late = AsyncMock()

        async def slow_send(text):
            await asyncio.sleep(0.01)

        hub.register(slow_send)
        late_session = hub.register(late)

        fanout = asyncio.ensure_future(hub.broadcast({"n": 1}))
        await asyncio.sleep(0)
        hub.unregister(late_session)
        attempts = await fanout

        self.assertEqual(attempts, 2)
        late.assert_not_awaited()
        self.assertEqual(len(hub), 1)

    async def test_no_sessions(self):
        self.assertEqual(await SessionHub().broadcast({"n": 1}), 0)

    async def test_send_single(self):
        hub = SessionHub()
        send = AsyncMock()
        session = hub.register(send)

        self.assertTrue(await hub.send(session, {"success": True}))
        send.assert_awaited_once_with('{"success": true}')

    async def test_send_failure_removes_session(self):
        hub = SessionHub()
        session = hub.register(AsyncMock(side_effect=RuntimeError("closed")))

        self.assertFalse(await hub.send(session, {"success": True}))
        self.assertEqual(len(hub), 0)


class TestSessionHubFormat(unittest.TestCase):

    def test_untagged(self):
        reply = DeviceReply({"status": "VERIFIED"})
        self.assertEqual(SessionHub().format_reply(reply), {"status": "VERIFIED"})

    def test_tagged_object(self):
        reply = DeviceReply({"status": "VERIFIED"})
        self.assertEqual(
            SessionHub(broadcast_tag="device").format_reply(reply),
            {"status": "VERIFIED", "delivery": "device"},
        )

    def test_tagged_non_object(self):
        reply = DeviceReply([1, 2])
        self.assertEqual(
            SessionHub(broadcast_tag="device").format_reply(reply),
            {"delivery": "device", "payload": [1, 2]},
        )


class TestSessionHubAttached(unittest.IsolatedAsyncioTestCase):
    """Device output reaches clients through the gateway feed."""

    async def test_serial_reply_broadcast_to_clients(self):
        link = FakeLink()
        gateway = SerialGateway(link=link)
        hub = SessionHub()
        await gateway.start()
        hub.attach(gateway)

        received_a, received_b = [], []

        async def send_a(text):
            received_a.append(json.loads(text))

        async def send_b(text):
            received_b.append(json.loads(text))

        hub.register(send_a)
        hub.register(send_b)

        link.emit(b'Waiting for finger...\r\n{"type":"success","voterId":"V1"}\r\n')
        await wait_for_condition(lambda: received_a and received_b)

        self.assertEqual(received_a, [{"type": "success", "voterId": "V1"}])
        self.assertEqual(received_b, [{"type": "success", "voterId": "V1"}])

        await hub.close_all()
        await gateway.stop()

    async def test_detach(self):
        gateway = FakeGateway()
        hub = SessionHub()
        send = AsyncMock()
        hub.register(send)

        hub.attach(gateway)
        hub.detach()
        gateway.publish(DeviceReply({"n": 1}))
        await asyncio.sleep(0.01)

        send.assert_not_awaited()


if __name__ == '__main__':
    unittest.main()
