"""Tests for the HTTP routes and WebSocket endpoint."""
import json
import unittest

from fastapi.testclient import TestClient

from biobridge.config import BridgeConfig
from biobridge.context import BridgeContext
from biobridge.errors import DeviceTimeoutError, TransportError
from biobridge.models import Action, DeviceReply
from biobridge.server import create_app

from helpers import FakeGateway


def _client(gateway, **config):
    context = BridgeContext(BridgeConfig(**config), gateway=gateway)
    return TestClient(create_app(context))


class TestHttpRoutes(unittest.TestCase):

    def setUp(self):
        self.gateway = FakeGateway(replies=[{"status": "VERIFIED", "voterId": "V123"}])
        self.client = _client(self.gateway)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def test_command(self):
        response = self.client.post("/command", content='{"action":"VERIFY_BIOMETRIC","voterId":"V123"}')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {
            "success": True,
            "action": "VERIFY_BIOMETRIC",
            "payload": {"status": "VERIFIED", "voterId": "V123"},
        })
        command, timeout = self.gateway.requests[0]
        self.assertEqual(command.action, Action.VERIFY_BIOMETRIC)
        self.assertEqual(command.subject, "V123")
        self.assertEqual(timeout, 8.0)

    def test_command_bare_token(self):
        response = self.client.post("/command", content="AUTHENTICATE")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["action"], "AUTHENTICATE")

    def test_missing_voter_id(self):
        response = self.client.post("/command", content='{"action":"ENROLL_BIOMETRIC"}')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"success": False, "error": "voterId is required"})
        self.assertEqual(self.gateway.requests, [])

    def test_unknown_action(self):
        response = self.client.post("/command", json={"action": "CAST_VOTE"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Unknown action: CAST_VOTE")

    def test_action_routes(self):
        cases = [
            ("/authenticate", Action.AUTHENTICATE, None),
            ("/enroll/V7", Action.ENROLL_BIOMETRIC, "V7"),
            ("/verify/V123", Action.VERIFY_BIOMETRIC, "V123"),
            ("/clear", Action.CLEAR_BIOMETRIC_DB, None),
        ]
        for path, action, subject in cases:
            with self.subTest(path=path):
                response = self.client.post(path)
                self.assertEqual(response.status_code, 200)
                self.assertEqual(response.json()["action"], action.value)
                command, _ = self.gateway.requests[-1]
                self.assertEqual(command.action, action)
                self.assertEqual(command.subject, subject)

    def test_health(self):
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["serial_ok"])
        self.assertEqual(body["sessions"], 0)
        self.assertIsInstance(body["ts_ms"], int)
        self.assertIn("gateway", body)


class TestHttpErrors(unittest.TestCase):

    def test_timeout_status(self):
        with _client(FakeGateway(error=DeviceTimeoutError())) as client:
            response = client.post("/verify/V123")
        self.assertEqual(response.status_code, 504)
        self.assertEqual(response.json(), {"success": False, "error": "Timeout waiting for device"})

    def test_transport_status(self):
        with _client(FakeGateway(error=TransportError())) as client:
            response = client.post("/authenticate")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"], "Device unavailable")

    def test_startup_failure_is_fatal(self):
        client = _client(FakeGateway(start_error=TransportError("could not open /dev/ttyUSB0")))
        with self.assertLogs('biobridge.server', level='ERROR'):
            with self.assertRaises(TransportError):
                with client:
                    pass


class TestWebSocket(unittest.TestCase):

    def _receive_two(self, ws):
        return [json.loads(ws.receive_text()) for _ in range(2)]

    def test_request_and_broadcast(self):
        gateway = FakeGateway(replies=[{"status": "VERIFIED", "voterId": "V123"}], echo=True)
        with _client(gateway) as client:
            with client.websocket_connect("/ws") as ws:
                ws.send_text('{"action":"VERIFY_BIOMETRIC","voterId":"V123"}')
                messages = self._receive_two(ws)

        self.assertIn({"status": "VERIFIED", "voterId": "V123"}, messages)
        self.assertIn({
            "success": True,
            "action": "VERIFY_BIOMETRIC",
            "payload": {"status": "VERIFIED", "voterId": "V123"},
        }, messages)

    def test_root_path_and_tagged_broadcast(self):
        gateway = FakeGateway(replies=[{"type": "success"}], echo=True)
        with _client(gateway, broadcast_tag="device") as client:
            with client.websocket_connect("/") as ws:
                ws.send_text("AUTHENTICATE")
                messages = self._receive_two(ws)

        self.assertIn({"type": "success", "delivery": "device"}, messages)
        self.assertIn({"success": True, "action": "AUTHENTICATE", "payload": {"type": "success"}}, messages)

    def test_bad_input_keeps_socket_open(self):
        gateway = FakeGateway(replies=[{"type": "success"}])
        with _client(gateway) as client:
            with client.websocket_connect("/ws") as ws:
                ws.send_text("not a command")
                first = json.loads(ws.receive_text())
                ws.send_text('{"action":"AUTHENTICATE"}')
                second = json.loads(ws.receive_text())

        self.assertEqual(first, {"success": False, "error": "Unrecognized input"})
        self.assertTrue(second["success"])
        self.assertEqual(len(gateway.requests), 1)

    def test_unsolicited_reply_reaches_all_clients(self):
        gateway = FakeGateway()
        with _client(gateway) as client:
            with client.websocket_connect("/ws") as first, client.websocket_connect("/ws") as second:
                # Round trip so both sessions are registered before publishing
                for ws in (first, second):
                    ws.send_text("not a command")
                    ws.receive_text()

                client.portal.call(gateway.publish, DeviceReply({"event": "finger"}))

                self.assertEqual(json.loads(first.receive_text()), {"event": "finger"})
                self.assertEqual(json.loads(second.receive_text()), {"event": "finger"})


if __name__ == '__main__':
    unittest.main()
