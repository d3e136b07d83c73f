from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal, Optional, Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from .codec import Codec
from .config import Settings, settings as default_settings
from .models import GameMessage

logger = logging.getLogger(__name__)

Role = Literal["host", "player"]


class Subscriber(Protocol):
    def on_open(self) -> None: ...

    def on_message(self, message: GameMessage) -> None: ...

    def on_close(self) -> None: ...

    def on_error(self, exc: BaseException) -> None: ...


def endpoint_url(role: Role, pin: int, settings: Optional[Settings] = None) -> str:
    settings = settings or default_settings
    scheme = "wss" if settings.USE_TLS else "ws"
    path = settings.HOST_PATH if role == "host" else settings.PLAY_PATH
    return f"{scheme}://{settings.SERVER_HOST}{path}{pin}"


class Connection:
    """One WebSocket connection feeding a single subscriber.

    Exactly one terminal event (``on_close`` or ``on_error``) is delivered per
    run. There is no reconnection: a lost connection ends the session.
    """

    def __init__(self, url: str, codec: Optional[Codec] = None, open_timeout: float = 10.0):
        self.url = url
        self.codec = codec or Codec()
        self.open_timeout = open_timeout
        self.state: Literal["idle", "open", "closed"] = "idle"
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._ws: Optional[ClientConnection] = None
        self._subscriber: Optional[Subscriber] = None

    def send(self, action: str, payload: Any = None) -> None:
        if self.state == "closed":
            logger.warning("Dropping %s: connection to %s is closed", action, self.url)
            return
        line = self.codec.encode(action, payload)
        logger.debug("-> %s", line)
        self._outbox.put_nowait(line)

    async def run(self, subscriber: Subscriber) -> None:
        self._subscriber = subscriber
        error: Optional[BaseException] = None
        try:
            async with connect(self.url, open_timeout=self.open_timeout) as ws:
                self._ws = ws
                self.state = "open"
                logger.info("Connected to %s", self.url)
                writer = asyncio.create_task(self._writer(ws))
                try:
                    subscriber.on_open()
                    async for raw in ws:
                        logger.debug("<- %s", raw)
                        subscriber.on_message(self.codec.decode(raw))
                finally:
                    writer.cancel()
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            # Transport failures end the session but are not raised
            logger.warning("Connection to %s failed: %s", self.url, exc)
            error = exc
        except Exception as exc:
            logger.error("Fatal fault on %s: %s", self.url, exc)
            error = exc
            raise
        finally:
            self._ws = None
            self._terminate(error)

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()

    async def _writer(self, ws: ClientConnection) -> None:
        while True:
            line = await self._outbox.get()
            try:
                await ws.send(line)
            except ConnectionClosed:
                return

    def _terminate(self, error: Optional[BaseException]) -> None:
        if self.state == "closed":
            return
        self.state = "closed"
        logger.info("Connection to %s closed", self.url)
        if self._subscriber is None:
            return
        if error is not None:
            self._subscriber.on_error(error)
        else:
            self._subscriber.on_close()
