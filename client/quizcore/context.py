from __future__ import annotations

import asyncio
import logging
from typing import Hashable, Optional

from .base import BaseSession
from .codec import Codec
from .config import Settings, settings as default_settings
from .connection import Connection, Role, endpoint_url
from .host import HostSession
from .player import PlayerSession
from .timers import CountdownService

logger = logging.getLogger(__name__)


class SessionContext:
    """Owns one connection, its timers and the session they drive.

    Build one per page (or process) with ``for_host`` / ``for_player`` and
    hand ``session`` to the rendering layer. A context runs once; after a lost
    connection the caller must build a fresh one.
    """

    def __init__(self, session: BaseSession, connection: Connection, timers: CountdownService):
        self.session = session
        self.connection = connection
        self.timers = timers
        self.fault: Optional[Exception] = None
        timers.on_fault = self._timer_fault

    @classmethod
    def for_host(cls, pin: int, settings: Optional[Settings] = None) -> "SessionContext":
        settings = settings or default_settings
        connection, timers = cls._wire("host", pin, settings)
        session = HostSession(pin, connection, timers=timers, settings=settings)
        return cls(session, connection, timers)

    @classmethod
    def for_player(cls, pin: int, uid: int, settings: Optional[Settings] = None) -> "SessionContext":
        settings = settings or default_settings
        connection, timers = cls._wire("player", pin, settings)
        session = PlayerSession(pin, uid, connection, timers=timers, settings=settings)
        return cls(session, connection, timers)

    @staticmethod
    def _wire(role: Role, pin: int, settings: Settings) -> tuple[Connection, CountdownService]:
        connection = Connection(
            endpoint_url(role, pin, settings),
            codec=Codec(settings.PROTOCOL_REVISION),
            open_timeout=settings.OPEN_TIMEOUT_SEC,
        )
        return connection, CountdownService(interval=settings.TICK_INTERVAL_SEC)

    def _timer_fault(self, owner: Hashable, exc: Exception) -> None:
        if self.fault is None:
            self.fault = exc
        self.session._timer_fault(owner, exc)
        asyncio.get_running_loop().create_task(self.connection.close())

    async def run(self) -> None:
        logger.info("Joining game %s via %s", self.session.pin, self.connection.url)
        try:
            await self.connection.run(self.session)
        finally:
            self.timers.cancel_all()
        if self.fault is not None:
            raise self.fault

    async def close(self) -> None:
        await self.connection.close()
        self.timers.cancel_all()
