"""Pure-Python state machine for the action TUI."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from action_tui import envelope

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = Path.home() / ".action_tui.json"
DEFAULT_ENDPOINT_URL = "ws://127.0.0.1:3001/ws"

MODE_SIMPLE = "SIMPLE"
MODE_FOCUS = "FOCUS"

FOCUS_QUERY = "query"
FOCUS_ENDPOINT = "endpoint"

EXCHANGE_IDLE = "idle"
EXCHANGE_AWAITING_REPLY = "awaiting_reply"

_QUIT_KEYS = {
    MODE_SIMPLE: {"q", "CTRL_Q", "CTRL_C"},
    MODE_FOCUS: {"CTRL_Q", "CTRL_C"},
}


def _atomic_write(path: Path | str, content: str) -> None:
    """Write content atomically to ``path`` using fsync + rename."""

    path = Path(path).expanduser()
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.parent.mkdir(parents=True, exist_ok=True)
    with open(tmp_path, "w", encoding="utf-8") as handle:
        handle.write(content)
        handle.flush()
        os.fsync(handle.fileno())
    tmp_path.replace(path)


def load_settings(path: Path | str = DEFAULT_SETTINGS_FILE) -> Dict[str, Any]:
    """Load persisted settings from disk if present."""

    try:
        data = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            return {}
        return data
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError:
        return {}


def persist_settings(settings: Dict[str, Any], path: Path | str = DEFAULT_SETTINGS_FILE) -> None:
    payload = json.dumps(settings, indent=2, sort_keys=True)
    _atomic_write(Path(path).expanduser(), payload)


@dataclass
class RenderState:
    mode: str
    focus: str
    endpoint: str
    connected_endpoint: str
    query: str
    cached_query: str
    last_request: str
    last_response: str
    exchange_state: str
    status_line: str


class SessionModel:
    """Session state for one connection: buffers, focus and the exchange state.

    ``handle_key`` consumes normalized keys and returns an action string for the
    app loop: ``"quit"``, ``"exchange"`` or ``None``.
    """

    def __init__(self, initial_settings: Dict[str, Any], settings_path: Path | str | None = None) -> None:
        self.settings_path = Path(settings_path).expanduser() if settings_path is not None else None

        mode = str(initial_settings.get("tui_mode", MODE_SIMPLE)).upper()
        self.mode = mode if mode in {MODE_SIMPLE, MODE_FOCUS} else MODE_SIMPLE
        self.focus = FOCUS_QUERY
        self.endpoint = str(initial_settings.get("endpoint_url") or DEFAULT_ENDPOINT_URL)
        self.connected_endpoint = ""

        self.query = ""
        self.cached_query = ""
        self.last_request = ""
        self.last_response = ""
        self.exchange_state = EXCHANGE_IDLE
        self.status_line = ""
        # Replies still owed by the peer for requests whose wait timed out.
        self.late_replies = 0

    def _persist(self) -> None:
        if self.settings_path is None:
            return
        # Only the endpoint is written back; other keys may be CLI overrides.
        settings = load_settings(self.settings_path)
        settings["endpoint_url"] = self.endpoint
        persist_settings(settings, self.settings_path)

    @property
    def awaiting_reply(self) -> bool:
        return self.exchange_state == EXCHANGE_AWAITING_REPLY

    def mark_connected(self, address: str) -> None:
        self.connected_endpoint = address
        self.status_line = f"Connected to {address}"

    def insert_char(self, char: str) -> None:
        if self.focus == FOCUS_ENDPOINT:
            self.endpoint += char
            self._persist()
        else:
            self.query += char

    def backspace(self) -> None:
        if self.focus == FOCUS_ENDPOINT:
            if self.endpoint:
                self.endpoint = self.endpoint[:-1]
                self._persist()
        else:
            self.query = self.query[:-1]

    def recall_cached(self) -> None:
        self.query = self.cached_query

    def toggle_focus(self) -> None:
        self.focus = FOCUS_ENDPOINT if self.focus == FOCUS_QUERY else FOCUS_QUERY

    def begin_exchange(self) -> str:
        """Build the envelope, cache the query and enter the awaiting state."""

        payload = envelope.build(self.query)
        self.last_request = payload
        self.cached_query = self.query
        self.query = ""
        self.last_response = ""
        self.exchange_state = EXCHANGE_AWAITING_REPLY
        self.status_line = "Awaiting reply..."
        logger.info("exchange started: %d byte request", len(payload))
        return payload

    def complete_exchange(self, reply: Optional[str]) -> None:
        """Store the reply; ``None`` means the wait ended without a text frame."""

        if reply is not None:
            self.last_response = reply
            self.status_line = "Reply received"
        else:
            self.late_replies += 1
            self.status_line = "No reply available"
        self.exchange_state = EXCHANGE_IDLE

    def fail_exchange(self, description: str) -> None:
        self.last_response = description
        self.exchange_state = EXCHANGE_IDLE
        self.status_line = "Exchange failed"
        logger.warning("exchange failed: %s", description)

    def handle_key(self, key: str, char: Optional[str] = None) -> Optional[str]:
        """Handle a normalized key and return an action string when needed."""

        if self.awaiting_reply:
            return None
        if key in _QUIT_KEYS[self.mode]:
            return "quit"

        if key == "TAB":
            if self.mode == MODE_FOCUS:
                self.toggle_focus()
            else:
                self.recall_cached()
            return None
        if key == "CTRL_R":
            self.recall_cached()
            return None
        if key == "BACKSPACE":
            self.backspace()
            return None
        if key == "ENTER":
            if self.focus == FOCUS_ENDPOINT:
                return None
            self.begin_exchange()
            return "exchange"
        if key in {"CHAR", "q"} and char:
            self.insert_char(char)
        return None

    def render(self) -> RenderState:
        return RenderState(
            mode=self.mode,
            focus=self.focus,
            endpoint=self.endpoint,
            connected_endpoint=self.connected_endpoint,
            query=self.query,
            cached_query=self.cached_query,
            last_request=self.last_request,
            last_response=self.last_response,
            exchange_state=self.exchange_state,
            status_line=self.status_line,
        )
