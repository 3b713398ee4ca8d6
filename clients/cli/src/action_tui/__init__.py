"""Terminal client for action envelopes over a websocket."""
