import unittest
from unittest.mock import patch

from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from chessrooms.core.config import get_settings
from chessrooms.main import api_app
from chessrooms.realtime import ws_endpoint
from chessrooms.realtime.runtime import connection_registry, room_registry
from chessrooms.realtime.socket_server import RATE_LIMITED_MESSAGE
from chessrooms.services.rate_limit_service import rate_limit_service
from chessrooms.services.rules_oracle import STARTING_FEN

API_PREFIX = get_settings().api_prefix


class ApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(api_app)
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)
        room_registry.close()
        connection_registry.clear()
        rate_limit_service.reset()

    def test_health(self) -> None:
        response = self.client.get(f"{API_PREFIX}/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "rooms": 0, "connections": 0})

    def test_create_and_read_room(self) -> None:
        created = self.client.post(f"{API_PREFIX}/rooms")
        self.assertEqual(created.status_code, 201)
        room_id = created.json()["roomId"]
        self.assertTrue(room_registry.is_deletion_pending(room_id))

        response = self.client.get(f"{API_PREFIX}/rooms/{room_id}")
        self.assertEqual(response.status_code, 200)
        state = response.json()
        self.assertEqual(state["type"], "roomState")
        self.assertEqual(state["roomId"], room_id)
        self.assertEqual(state["fen"], STARTING_FEN)
        self.assertEqual(state["seats"], {"w": None, "b": None})

    def test_unknown_room_is_404(self) -> None:
        response = self.client.get(f"{API_PREFIX}/rooms/does-not-exist")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"], "Room not found")

    def test_plain_websocket_protocol(self) -> None:
        with self.client.websocket_connect(get_settings().websocket_path) as websocket:
            welcome = websocket.receive_json()
            self.assertEqual(welcome["type"], "welcome")
            self.assertTrue(welcome["connId"].startswith("guest-"))

            websocket.send_json({"type": "createRoom"})
            room_id = websocket.receive_json()["roomId"]

            websocket.send_json({"type": "join", "roomId": room_id})
            state = websocket.receive_json()
            self.assertEqual(list(state["players"]), [welcome["connId"]])

            websocket.send_json({"type": "takeSeat", "roomId": room_id, "color": "w"})
            self.assertEqual(websocket.receive_json()["seats"]["w"], welcome["connId"])

            websocket.send_json({"type": "move", "roomId": room_id, "from": "e2", "to": "e4"})
            state = websocket.receive_json()
            self.assertEqual(
                state["fen"],
                "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq e3 0 1",
            )

            websocket.send_text("not json")
            self.assertEqual(websocket.receive_json()["type"], "error")

    def test_plain_websocket_refuses_rate_limited_connect(self) -> None:
        with patch.object(ws_endpoint, "_is_socket_connect_allowed", return_value=False):
            with self.assertRaises(WebSocketDisconnect) as ctx:
                with self.client.websocket_connect(get_settings().websocket_path):
                    pass
        self.assertEqual(ctx.exception.code, 1008)
        self.assertEqual(len(connection_registry), 0)

    def test_plain_websocket_rate_limits_messages(self) -> None:
        with self.client.websocket_connect(get_settings().websocket_path) as websocket:
            websocket.receive_json()
            with patch.object(ws_endpoint, "_is_socket_event_allowed", return_value=False):
                websocket.send_json({"type": "createRoom"})
                self.assertEqual(
                    websocket.receive_json(),
                    {"type": "error", "message": RATE_LIMITED_MESSAGE},
                )
        self.assertEqual(len(room_registry), 0)


if __name__ == "__main__":
    unittest.main()
