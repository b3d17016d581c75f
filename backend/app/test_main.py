from __future__ import annotations

import tempfile
from pathlib import Path
from unittest import TestCase, mock

from fastapi.testclient import TestClient

from backend.app.config import Settings
from backend.app.main import create_app

QUESTIONS = (
    "question,type,option1,option2,option3,option4,correct,time_limit\n"
    "Largest planet?,multiple-choice,Mars,Jupiter,Venus,Earth,2,20\n"
)


def _join(ws, name: str, pin: str = "1234") -> dict:
    ws.send_json({"type": "join", "data": {"pin": pin, "name": name}})
    return ws.receive_json()


class AppTestCase(TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.csv_path = root / "questions.csv"
        self.csv_path.write_text(QUESTIONS, encoding="utf-8")
        self.settings = Settings(
            QUESTIONS_CSV=str(self.csv_path),
            STATIC_DIR=str(root / "public"),
            TICK_SECONDS=3600,
            WATCH_QUESTIONS=False,
        )
        self.pin_patch = mock.patch("backend.app.game.generate_pin", side_effect=["1234", "5678", "9012"])
        self.pin_patch.start()

    def tearDown(self) -> None:
        self.pin_patch.stop()
        self._tmp.cleanup()


class StartupTests(AppTestCase):
    def test_missing_question_file_aborts_startup(self):
        self.csv_path.unlink()
        app = create_app(self.settings)
        with self.assertRaises(FileNotFoundError):
            with TestClient(app):
                pass

    def test_session_starts_idle(self):
        with TestClient(create_app(self.settings)) as client:
            res = client.get("/api/session")

        self.assertEqual(res.status_code, 200)
        self.assertEqual(
            res.json(),
            {"phase": "idle", "players": [], "question_index": -1, "total_questions": 1, "host_connected": False},
        )

    def test_static_assets_are_served(self):
        public = Path(self.settings.STATIC_DIR)
        public.mkdir()
        (public / "host.html").write_text("<h1>host</h1>", encoding="utf-8")

        with TestClient(create_app(self.settings)) as client:
            res = client.get("/host.html")

        self.assertEqual(res.status_code, 200)
        self.assertIn("host", res.text)


class GameFlowTests(AppTestCase):
    def test_two_players_full_game(self):
        with TestClient(create_app(self.settings)) as client:
            with client.websocket_connect("/ws/host") as host:
                self.assertEqual(host.receive_json(), {"type": "lobby", "data": {"pin": "1234", "players": []}})

                with client.websocket_connect("/ws/play") as ann, client.websocket_connect("/ws/play") as bob:
                    self.assertEqual(_join(ann, "Ann"), {"type": "joined", "data": {"name": "Ann"}})
                    self.assertEqual(host.receive_json()["data"]["count"], 1)
                    self.assertEqual(_join(bob, "Bob")["type"], "joined")
                    self.assertEqual(host.receive_json()["data"]["players"], ["Ann", "Bob"])

                    host.send_json({"type": "start"})
                    question = host.receive_json()
                    self.assertEqual(question["type"], "question")
                    self.assertEqual(question["data"]["options"], ["Mars", "Jupiter", "Venus", "Earth"])
                    self.assertNotIn("correct", question["data"])
                    self.assertEqual(ann.receive_json(), question)
                    self.assertEqual(bob.receive_json(), question)

                    ann.send_json({"type": "answer", "data": {"answer": 2}})
                    self.assertEqual(ann.receive_json()["type"], "answer-received")
                    self.assertEqual(host.receive_json()["data"], {"count": 1, "total": 2})

                    bob.send_json({"type": "answer", "data": {"answer": "2"}})
                    self.assertEqual(bob.receive_json()["type"], "answer-received")
                    self.assertEqual(host.receive_json()["data"], {"count": 2, "total": 2})

                    results = host.receive_json()
                    self.assertEqual(results["type"], "results")
                    self.assertEqual(results["data"]["distribution"], [0, 2, 0, 0])
                    self.assertTrue(results["data"]["isLast"])
                    self.assertEqual([e["name"] for e in results["data"]["leaderboard"]], ["Ann", "Bob"])

                    ann_result = ann.receive_json()
                    self.assertEqual(ann_result["type"], "result")
                    self.assertEqual(ann_result["data"]["points"], 2000)
                    self.assertEqual(bob.receive_json()["data"]["yourAnswer"], 2)

                    host.send_json({"type": "next"})
                    final = host.receive_json()
                    self.assertEqual(final["type"], "leaderboard")
                    self.assertEqual(ann.receive_json(), final)
                    self.assertEqual(bob.receive_json(), final)

                    state = client.get("/api/session").json()
                    self.assertEqual(state["phase"], "leaderboard")
                    self.assertTrue(state["host_connected"])

    def test_reset_mid_question_ignores_stale_answer(self):
        with TestClient(create_app(self.settings)) as client:
            with client.websocket_connect("/ws/host") as host, client.websocket_connect("/ws/play") as ann:
                host.receive_json()
                _join(ann, "Ann")
                host.receive_json()
                host.send_json({"type": "start"})
                host.receive_json()
                ann.receive_json()

                host.send_json({"type": "reset"})
                self.assertEqual(host.receive_json(), {"type": "lobby", "data": {"pin": "5678", "players": []}})

                ann.send_json({"type": "answer", "data": {"answer": 2}})
                # The next thing Ann hears is the reply to her new join, not an answer receipt
                self.assertEqual(_join(ann, "Ann", pin="5678"), {"type": "joined", "data": {"name": "Ann"}})
                self.assertEqual(host.receive_json()["type"], "player-joined")

                state = client.get("/api/session").json()
                self.assertEqual((state["phase"], state["players"]), ("lobby", ["Ann"]))

    def test_validation_errors_go_to_sender_only(self):
        with TestClient(create_app(self.settings)) as client:
            with client.websocket_connect("/ws/host") as host, client.websocket_connect("/ws/play") as ann:
                host.receive_json()
                host.send_json({"type": "start"})
                self.assertEqual(host.receive_json(), {"type": "error", "data": {"message": "Need at least 1 player"}})

                ann.send_text("{not json")
                self.assertEqual(_join(ann, "Ann", pin="0000")["data"], {"message": "Invalid PIN"})
                self.assertEqual(_join(ann, "Ann")["type"], "joined")
                self.assertEqual(host.receive_json()["type"], "player-joined")

    def test_player_leaving_lobby_and_host_leaving(self):
        with TestClient(create_app(self.settings)) as client:
            with client.websocket_connect("/ws/host") as host:
                host.receive_json()
                with client.websocket_connect("/ws/play") as ann:
                    _join(ann, "Ann")
                    host.receive_json()
                self.assertEqual(
                    host.receive_json(),
                    {"type": "player-left", "data": {"name": "Ann", "count": 0, "players": []}},
                )

            with client.websocket_connect("/ws/play") as bob:
                with client.websocket_connect("/ws/host") as host:
                    self.assertEqual(host.receive_json()["data"]["pin"], "5678")
                    self.assertEqual(_join(bob, "Bob", pin="5678")["type"], "joined")
                    host.receive_json()
                self.assertEqual(bob.receive_json(), {"type": "host-disconnected", "data": {}})
                self.assertEqual(client.get("/api/session").json()["players"], ["Bob"])

    def test_binary_frames_never_drop_the_connection(self):
        with TestClient(create_app(self.settings)) as client:
            with client.websocket_connect("/ws/host") as host, client.websocket_connect("/ws/play") as ann:
                host.receive_json()
                _join(ann, "Ann")
                host.receive_json()

                ann.send_bytes(b"\x00\xff not json")
                host.send_bytes(b"\x80")
                # Binary JSON is read like text; the seat is still held
                ann.send_bytes(b'{"type": "join", "data": {"pin": "1234", "name": "Ann"}}')
                self.assertEqual(ann.receive_json(), {"type": "error", "data": {"message": "Already joined"}})

                state = client.get("/api/session").json()
                self.assertEqual((state["players"], state["host_connected"]), (["Ann"], True))

                host.send_json({"type": "start"})
                self.assertEqual(host.receive_json()["type"], "question")
                self.assertEqual(ann.receive_json()["type"], "question")


class SettingsTests(TestCase):
    def test_module_settings_is_the_cached_instance(self):
        from backend.app import config

        self.assertIs(config.settings, config.get_settings())
