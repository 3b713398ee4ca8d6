"""Blocking websocket connection built on aiohttp.

Each ``Connection`` owns a private asyncio event loop and drives it with
``run_until_complete`` so callers see plain blocking calls. There is no
background task: nothing is read from the socket unless ``receive`` is called.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Union

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT_S = 10.0


class TransportError(Exception):
    """Base class for connection failures."""


class ConnectError(TransportError):
    def __init__(self, address: str, reason: str):
        self.address = address
        self.reason = reason
        super().__init__(f"Can't connect to {address}: {reason}")


class SendError(TransportError):
    """Raised when a text frame cannot be written."""


class ReceiveError(TransportError):
    """Raised when the connection fails while waiting for a frame."""


@dataclass(frozen=True)
class TextFrame:
    text: str


@dataclass(frozen=True)
class OtherFrame:
    kind: str


@dataclass(frozen=True)
class NoMoreData:
    """Nothing arrived before the receive timeout expired."""


Frame = Union[TextFrame, OtherFrame, NoMoreData]


def _describe(exc: BaseException) -> str:
    text = str(exc)
    return text if text else type(exc).__name__


async def _open(
    address: str, connect_timeout: float
) -> tuple[aiohttp.ClientSession, aiohttp.ClientWebSocketResponse]:
    session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None, sock_connect=connect_timeout))
    try:
        ws = await asyncio.wait_for(session.ws_connect(address, autoping=True), timeout=connect_timeout)
    except BaseException:
        await session.close()
        raise
    return session, ws


def connect(
    address: str,
    *,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_S,
    receive_timeout: Optional[float] = None,
) -> "Connection":
    loop = asyncio.new_event_loop()
    try:
        session, ws = loop.run_until_complete(_open(address, connect_timeout))
    except asyncio.TimeoutError as exc:
        loop.close()
        raise ConnectError(address, f"timed out after {connect_timeout}s") from exc
    except (aiohttp.ClientError, OSError, ValueError) as exc:
        loop.close()
        raise ConnectError(address, _describe(exc)) from exc
    logger.info("connected to %s", address)
    return Connection(address, loop, session, ws, receive_timeout=receive_timeout)


class Connection:
    """One open websocket to a single endpoint."""

    def __init__(
        self,
        address: str,
        loop: asyncio.AbstractEventLoop,
        session: aiohttp.ClientSession,
        ws: aiohttp.ClientWebSocketResponse,
        *,
        receive_timeout: Optional[float] = None,
    ) -> None:
        self.address = address
        self.receive_timeout = receive_timeout
        self._loop = loop
        self._session = session
        self._ws = ws

    @property
    def closed(self) -> bool:
        return self._loop.is_closed() or self._ws.closed

    def send(self, text: str) -> None:
        if self.closed:
            raise SendError("Trying to work with closed connection")
        try:
            self._loop.run_until_complete(self._ws.send_str(text))
        except (aiohttp.ClientError, OSError, RuntimeError) as exc:
            raise SendError(_describe(exc)) from exc

    def receive(self) -> Frame:
        if self._loop.is_closed():
            raise ReceiveError("Trying to work with closed connection")
        try:
            msg = self._loop.run_until_complete(self._ws.receive(timeout=self.receive_timeout))
        except asyncio.TimeoutError:
            return NoMoreData()
        except (aiohttp.ClientError, OSError, RuntimeError) as exc:
            raise ReceiveError(_describe(exc)) from exc

        if msg.type == aiohttp.WSMsgType.TEXT:
            return TextFrame(msg.data)
        if msg.type == aiohttp.WSMsgType.ERROR:
            raise ReceiveError(_describe(msg.data) if msg.data else "WebSocket protocol error")
        if msg.type in (aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
            raise ReceiveError("Connection closed normally")
        return OtherFrame(msg.type.name.lower())

    def close(self) -> None:
        if self._loop.is_closed():
            return
        try:
            self._loop.run_until_complete(self._shutdown())
        except Exception as exc:
            logger.warning("closing %s failed: %s", self.address, _describe(exc))
        finally:
            self._loop.close()
        logger.info("closed connection to %s", self.address)

    async def _shutdown(self) -> None:
        try:
            await self._ws.close()
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            logger.warning("websocket close failed: %s", _describe(exc))
        await self._session.close()
