import contextlib
import curses
import io
import json
import socket
import tempfile
import unittest
from pathlib import Path

from action_tui import tui_app
from action_tui.session_model import FOCUS_ENDPOINT, FOCUS_QUERY, MODE_FOCUS, MODE_SIMPLE, SessionModel


class NormalizeKeyTests(unittest.TestCase):
    def test_control_keys(self):
        self.assertEqual(tui_app._normalize_key(9), ("TAB", None))
        self.assertEqual(tui_app._normalize_key(10), ("ENTER", None))
        self.assertEqual(tui_app._normalize_key(curses.KEY_ENTER), ("ENTER", None))
        self.assertEqual(tui_app._normalize_key(127), ("BACKSPACE", None))
        self.assertEqual(tui_app._normalize_key(curses.KEY_BACKSPACE), ("BACKSPACE", None))
        self.assertEqual(tui_app._normalize_key(17), ("CTRL_Q", None))
        self.assertEqual(tui_app._normalize_key(18), ("CTRL_R", None))
        self.assertEqual(tui_app._normalize_key(3), ("CTRL_C", None))

    def test_characters(self):
        self.assertEqual(tui_app._normalize_key(ord("a")), ("CHAR", "a"))
        self.assertEqual(tui_app._normalize_key(ord(" ")), ("CHAR", " "))
        self.assertEqual(tui_app._normalize_key(ord("q")), ("q", "q"))
        self.assertEqual(tui_app._normalize_key(ord("Q")), ("CHAR", "Q"))
        self.assertEqual(tui_app._normalize_key(curses.KEY_UP), ("UNKNOWN", None))


    def test_uppercase_q_types_in_simple_mode(self):
        model = SessionModel({})
        for key in (ord("Q"), ord("u"), ord("Q")):
            self.assertIsNone(model.handle_key(*tui_app._normalize_key(key)))
        self.assertEqual(model.render().query, "QuQ")
        self.assertEqual(model.handle_key(*tui_app._normalize_key(ord("q"))), "quit")


class LayoutHelperTests(unittest.TestCase):
    def test_wrap_text_splits_lines_and_width(self):
        self.assertEqual(tui_app._wrap_text("abcdef\ngh", 4), ["abcd", "ef", "gh"])
        self.assertEqual(tui_app._wrap_text("", 4), [""])

    def test_simple_mode_shows_only_action_field(self):
        model = SessionModel({})
        fields = tui_app._input_fields(model.render())
        self.assertEqual([focus for _, _, focus in fields], [FOCUS_QUERY])
        self.assertEqual(fields[0][0], "Input action")

    def test_focus_mode_flags_pending_endpoint(self):
        model = SessionModel({"tui_mode": MODE_FOCUS, "endpoint_url": "ws://a/ws"})
        model.mark_connected("ws://a/ws")
        model.handle_key("TAB")
        model.handle_key("CHAR", "x")
        fields = tui_app._input_fields(model.render())
        self.assertEqual([focus for _, _, focus in fields], [FOCUS_ENDPOINT, FOCUS_QUERY])
        self.assertEqual(fields[0][0], "Endpoint (used on next start)")
        self.assertEqual(fields[0][1], "ws://a/wsx")

    def test_cached_query_echoed_in_title(self):
        model = SessionModel({})
        model.handle_key("CHAR", "p")
        model.handle_key("ENTER")
        model.complete_exchange("ok")
        self.assertEqual(tui_app._input_fields(model.render())[0][0], "Input action (cached: p)")

    def test_status_while_awaiting(self):
        model = SessionModel({})
        model.mark_connected("ws://a/ws")
        self.assertEqual(tui_app._status_text(model.render()), "Connected to ws://a/ws")
        model.handle_key("ENTER")
        self.assertEqual(tui_app._status_text(model.render()), "Awaiting reply from ws://a/ws...")


class SettingsResolutionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)
        self.settings_path = Path(self.tmpdir.name) / "settings.json"

    def test_defaults_without_file(self):
        args = tui_app._parse_args(["--settings", str(self.settings_path)])
        settings = tui_app._resolve_settings(args)
        self.assertEqual(settings["endpoint_url"], "ws://127.0.0.1:3001/ws")
        self.assertEqual(settings["tui_mode"], MODE_SIMPLE)
        self.assertIsNone(settings["receive_timeout_s"])

    def test_cli_overrides_file(self):
        self.settings_path.write_text(
            json.dumps({"endpoint_url": "ws://file/ws", "receive_timeout_s": 3}),
            encoding="utf-8",
        )
        args = tui_app._parse_args(
            ["--settings", str(self.settings_path), "--url", "ws://cli/ws", "--mode", "focus"]
        )
        settings = tui_app._resolve_settings(args)
        self.assertEqual(settings["endpoint_url"], "ws://cli/ws")
        self.assertEqual(settings["tui_mode"], MODE_FOCUS)
        self.assertEqual(settings["receive_timeout_s"], 3)

    def test_optional_float(self):
        self.assertIsNone(tui_app._optional_float("receive_timeout_s", None))
        self.assertIsNone(tui_app._optional_float("receive_timeout_s", ""))
        self.assertEqual(tui_app._optional_float("receive_timeout_s", "1.5"), 1.5)
        self.assertEqual(tui_app._optional_float("connect_timeout_s", None, 10.0), 10.0)

    def test_optional_float_invalid_value_falls_back(self):
        self.assertIsNone(tui_app._optional_float("receive_timeout_s", "soon"))
        self.assertEqual(tui_app._optional_float("connect_timeout_s", "fast", 10.0), 10.0)
        self.assertEqual(tui_app._optional_float("connect_timeout_s", [1], 10.0), 10.0)

    def test_main_tolerates_invalid_timeouts_in_settings(self):
        self.settings_path.write_text(
            json.dumps({"connect_timeout_s": "fast", "receive_timeout_s": "soon"}),
            encoding="utf-8",
        )
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]
        stderr = io.StringIO()
        with contextlib.redirect_stderr(stderr):
            code = tui_app.main(["--settings", str(self.settings_path), "--url", f"ws://127.0.0.1:{port}/ws"])
        self.assertEqual(code, 1)
        self.assertIn("Can't connect to", stderr.getvalue())

    def test_main_exits_when_connect_fails(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]
        stderr = io.StringIO()
        with contextlib.redirect_stderr(stderr):
            code = tui_app.main(["--settings", str(self.settings_path), "--url", f"ws://127.0.0.1:{port}/ws"])
        self.assertEqual(code, 1)
        self.assertIn("Can't connect to", stderr.getvalue())


if __name__ == "__main__":
    unittest.main()
