"""Fixed-template action envelope."""

from __future__ import annotations

TEMPLATE_BEGIN = '{"General":{"action":"'
TEMPLATE_END = '"}}'


class EnvelopeError(ValueError):
    """Raised when a payload does not carry the action envelope."""


def build(action: str) -> str:
    # No escaping: quotes or backslashes in ``action`` produce invalid JSON.
    return f"{TEMPLATE_BEGIN}{action}{TEMPLATE_END}"


def extract_action(payload: str) -> str:
    if not payload.startswith(TEMPLATE_BEGIN) or not payload.endswith(TEMPLATE_END):
        raise EnvelopeError("payload is not an action envelope")
    if len(payload) < len(TEMPLATE_BEGIN) + len(TEMPLATE_END):
        raise EnvelopeError("payload is not an action envelope")
    return payload[len(TEMPLATE_BEGIN) : len(payload) - len(TEMPLATE_END)]
