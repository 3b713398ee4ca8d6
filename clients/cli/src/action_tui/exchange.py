"""Send-one / await-one exchange over a blocking connection."""

from __future__ import annotations

import logging
from typing import Optional

from action_tui.connection import Connection, NoMoreData, ReceiveError, SendError, TextFrame
from action_tui.session_model import SessionModel

logger = logging.getLogger(__name__)


def await_reply(connection: Connection, late_replies: int = 0) -> tuple[Optional[str], int]:
    """Block until the first text frame; other frame kinds are discarded.

    The first ``late_replies`` text frames answer earlier requests whose wait
    timed out and are dropped. Returns ``(reply, dropped)``; ``reply`` is
    ``None`` when the connection reports that no more data is available.
    """

    dropped = 0
    while True:
        frame = connection.receive()
        if isinstance(frame, NoMoreData):
            return None, dropped
        if not isinstance(frame, TextFrame):
            logger.debug("discarding %s frame while awaiting reply", frame.kind)
            continue
        if dropped < late_replies:
            dropped += 1
            logger.info("dropping late reply to an earlier request")
            continue
        return frame.text, dropped


def run_exchange(model: SessionModel, connection: Connection) -> None:
    """Transmit the pending request and store the reply or failure on ``model``."""

    if not model.awaiting_reply:
        raise RuntimeError("no exchange in progress")
    try:
        connection.send(model.last_request)
        reply, dropped = await_reply(connection, model.late_replies)
    except (SendError, ReceiveError) as exc:
        model.fail_exchange(str(exc))
        return
    model.late_replies -= dropped
    logger.info("exchange finished: %s", "reply received" if reply is not None else "no reply")
    model.complete_exchange(reply)
