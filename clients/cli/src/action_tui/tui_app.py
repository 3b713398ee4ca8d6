"""Curses front end for the action client."""

from __future__ import annotations

import argparse
import curses
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from action_tui.connection import DEFAULT_CONNECT_TIMEOUT_S, ConnectError, Connection, connect
from action_tui.exchange import run_exchange
from action_tui.session_model import (
    DEFAULT_ENDPOINT_URL,
    DEFAULT_SETTINGS_FILE,
    EXCHANGE_AWAITING_REPLY,
    FOCUS_ENDPOINT,
    FOCUS_QUERY,
    MODE_FOCUS,
    MODE_SIMPLE,
    RenderState,
    SessionModel,
    load_settings,
)

logger = logging.getLogger(__name__)

_PAIR_INPUT = 1
_PAIR_PANEL = 2

_FOOTERS = {
    MODE_SIMPLE: "<q> - quit, <Tab> - cached query, <Enter> - send",
    MODE_FOCUS: "<Ctrl-Q> - quit, <Tab> - switch field, <Ctrl-R> - cached query, <Enter> - send",
}


def _normalize_key(key: int) -> tuple[str, str | None]:
    key_tab = getattr(curses, "KEY_TAB", 9)
    if key in (key_tab, 9):
        return "TAB", None
    if key in (curses.KEY_ENTER, 10, 13):
        return "ENTER", None
    if key in (curses.KEY_BACKSPACE, 127, 8):
        return "BACKSPACE", None
    if key == 3:  # ctrl-c arrives as a key in raw mode
        return "CTRL_C", None
    if key == 17:  # ctrl-q
        return "CTRL_Q", None
    if key == 18:  # ctrl-r
        return "CTRL_R", None
    if key == ord("q"):
        return "q", "q"
    if 32 <= key <= 126:
        return "CHAR", chr(key)
    return "UNKNOWN", None


def _wrap_chunks(value: str, width: int) -> list[str]:
    if width <= 0:
        return [value]
    return [value[i : i + width] for i in range(0, len(value), width)] or [""]


def _wrap_text(value: str, width: int) -> list[str]:
    lines: list[str] = []
    for line in value.splitlines() or [""]:
        lines.extend(_wrap_chunks(line, width))
    return lines


def _render_text(window: curses.window, y: int, x: int, text: str, attr: int = 0) -> None:
    max_y, max_x = window.getmaxyx()
    if 0 <= y < max_y:
        window.addnstr(y, x, text, max_x - x - 1, attr)


def _init_default_colors(stdscr: curses.window) -> None:
    """Respect the terminal's configured theme and register the panel colors.

    ``use_default_colors`` lets -1 mean "terminal default" for the background.
    """

    if not curses.has_colors():
        return
    try:
        curses.start_color()
    except curses.error:
        return
    try:
        curses.use_default_colors()
        curses.init_pair(_PAIR_INPUT, curses.COLOR_YELLOW, -1)
        curses.init_pair(_PAIR_PANEL, curses.COLOR_GREEN, -1)
    except curses.error:
        pass
    try:
        stdscr.bkgd(" ", curses.color_pair(0))
    except curses.error:
        pass


def _draw_box(stdscr: curses.window, top: int, left: int, height: int, width: int, title: str, attr: int) -> None:
    if height < 2 or width < 2:
        return
    bottom = top + height - 1
    right = left + width - 1
    stdscr.attron(attr)
    try:
        stdscr.hline(top, left + 1, curses.ACS_HLINE, width - 2)
        stdscr.hline(bottom, left + 1, curses.ACS_HLINE, width - 2)
        stdscr.vline(top + 1, left, curses.ACS_VLINE, height - 2)
        stdscr.vline(top + 1, right, curses.ACS_VLINE, height - 2)
        stdscr.addch(top, left, curses.ACS_ULCORNER)
        stdscr.addch(top, right, curses.ACS_URCORNER)
        stdscr.addch(bottom, left, curses.ACS_LLCORNER)
        # Writing the bottom-right cell of the screen raises after the write.
        try:
            stdscr.addch(bottom, right, curses.ACS_LRCORNER)
        except curses.error:
            pass
    finally:
        stdscr.attroff(attr)
    _render_text(stdscr, top, left + 2, f" {title} ", attr)


def _draw_field(stdscr: curses.window, top: int, width: int, title: str, value: str, focused: bool) -> None:
    attr = curses.color_pair(_PAIR_INPUT)
    if focused:
        attr |= curses.A_BOLD
    _draw_box(stdscr, top, 0, 3, width, title, attr)
    # Keep the tail of long values visible, like a scrolling input line.
    inner = max(1, width - 3)
    _render_text(stdscr, top + 1, 1, value[-inner:], attr | (curses.A_REVERSE if focused else 0))


def _draw_panel(stdscr: curses.window, top: int, left: int, height: int, width: int, title: str, value: str) -> None:
    attr = curses.color_pair(_PAIR_PANEL)
    _draw_box(stdscr, top, left, height, width, title, attr)
    inner_height = height - 2
    for idx, line in enumerate(_wrap_text(value, width - 2)[:inner_height]):
        _render_text(stdscr, top + 1 + idx, left + 1, line, attr)


def _input_fields(render: RenderState) -> list[tuple[str, str, str]]:
    """Return (title, value, focus) for each input field shown in ``render.mode``."""

    action_title = "Input action"
    if render.cached_query:
        action_title = f"Input action (cached: {render.cached_query})"
    if render.mode != MODE_FOCUS:
        return [(action_title, render.query, FOCUS_QUERY)]
    endpoint_title = "Endpoint"
    if render.connected_endpoint and render.endpoint != render.connected_endpoint:
        endpoint_title = "Endpoint (used on next start)"
    return [
        (endpoint_title, render.endpoint, FOCUS_ENDPOINT),
        (action_title, render.query, FOCUS_QUERY),
    ]


def _status_text(render: RenderState) -> str:
    if render.exchange_state == EXCHANGE_AWAITING_REPLY:
        return f"Awaiting reply from {render.connected_endpoint}..."
    return render.status_line


def draw_screen(stdscr: curses.window, model: SessionModel) -> None:
    stdscr.erase()
    max_y, max_x = stdscr.getmaxyx()
    render = model.render()

    top = 0
    for title, value, focus in _input_fields(render):
        focused = render.mode == MODE_FOCUS and render.focus == focus
        _draw_field(stdscr, top, max_x, title, value, focused)
        top += 3

    panel_height = max(2, max_y - top - 2)
    half = max_x // 2
    _draw_panel(stdscr, top, 0, panel_height, half, "Request", render.last_request)
    _draw_panel(stdscr, top, half, panel_height, max_x - half, "Response", render.last_response)

    _render_text(stdscr, max_y - 2, 1, _status_text(render))
    _render_text(stdscr, max_y - 1, 0, _FOOTERS[render.mode], curses.A_DIM)
    stdscr.refresh()


def _build_default_settings() -> Dict[str, Any]:
    return {
        "endpoint_url": DEFAULT_ENDPOINT_URL,
        "tui_mode": MODE_SIMPLE,
        "connect_timeout_s": DEFAULT_CONNECT_TIMEOUT_S,
        "receive_timeout_s": None,
        "log_file": "",
    }


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="action-tui", description="Send action envelopes over a websocket.")
    parser.add_argument("--url", help=f"websocket endpoint (default {DEFAULT_ENDPOINT_URL})")
    parser.add_argument("--mode", choices=["simple", "focus"], help="input layout; focus adds an editable endpoint")
    parser.add_argument("--settings", default=str(DEFAULT_SETTINGS_FILE), help="settings JSON file")
    parser.add_argument("--receive-timeout", type=float, help="seconds to wait for a reply (default: forever)")
    parser.add_argument("--log-file", help="append log records to this file")
    return parser.parse_args(argv)


def _resolve_settings(args: argparse.Namespace) -> Dict[str, Any]:
    settings = _build_default_settings()
    settings.update(load_settings(args.settings))
    if args.url:
        settings["endpoint_url"] = args.url
    if args.mode:
        settings["tui_mode"] = args.mode.upper()
    if args.receive_timeout is not None:
        settings["receive_timeout_s"] = args.receive_timeout
    if args.log_file:
        settings["log_file"] = args.log_file
    return settings


def _configure_logging(log_file: str) -> None:
    # The terminal belongs to curses; never log to stderr while it is active.
    package_logger = logging.getLogger("action_tui")
    if not log_file:
        package_logger.addHandler(logging.NullHandler())
        package_logger.propagate = False
        return
    handler = logging.FileHandler(Path(log_file).expanduser(), encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG)
    package_logger.propagate = False


def _optional_float(name: str, value: object, default: Optional[float] = None) -> Optional[float]:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("ignoring invalid %s=%r; using %s", name, value, default)
        return default


def run(stdscr: curses.window, model: SessionModel, connection: Connection) -> None:
    curses.curs_set(0)
    curses.raw()
    _init_default_colors(stdscr)
    stdscr.nodelay(False)
    stdscr.keypad(True)

    while True:
        # Rendering can fail during terminal resize; redraw on the next key.
        try:
            draw_screen(stdscr, model)
        except curses.error:
            pass

        key = stdscr.getch()
        normalized, char = _normalize_key(key)
        action = model.handle_key(normalized, char)
        if action == "quit":
            break
        if action == "exchange":
            try:
                draw_screen(stdscr, model)
            except curses.error:
                pass
            run_exchange(model, connection)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    settings = _resolve_settings(args)
    _configure_logging(str(settings.get("log_file") or ""))
    model = SessionModel(settings, settings_path=args.settings)

    try:
        connection = connect(
            model.endpoint,
            connect_timeout=_optional_float(
                "connect_timeout_s", settings.get("connect_timeout_s"), DEFAULT_CONNECT_TIMEOUT_S
            ),
            receive_timeout=_optional_float("receive_timeout_s", settings.get("receive_timeout_s")),
        )
    except ConnectError as exc:
        logger.error("%s", exc)
        print(str(exc), file=sys.stderr)
        return 1
    model.mark_connected(connection.address)

    try:
        curses.wrapper(run, model, connection)
    finally:
        connection.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
