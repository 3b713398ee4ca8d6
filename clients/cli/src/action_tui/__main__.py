"""Thin runnable wrapper: ``python -m action_tui``."""

from action_tui.tui_app import main


if __name__ == "__main__":
    raise SystemExit(main())
