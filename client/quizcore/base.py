from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Optional, Protocol, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .config import Settings, settings as default_settings
from .errors import MalformedMessage
from .models import CountdownSpec, CountdownView, GameMessage
from .timers import CountdownService

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

Listener = Callable[["BaseSession", str], None]

# Owner keys for the session's timers; COUNTDOWN is the visible one
COUNTDOWN = "countdown"


class Sender(Protocol):
    def send(self, action: str, payload: Any = None) -> None: ...


class BaseSession:
    """Shared machinery for the host and player state machines.

    Subclasses declare ``handlers``, a table from state tag to the name of the
    method handling messages in that state. Each handler returns the next
    state; ``state`` is the only record of where the session is.
    """

    handlers: ClassVar[Dict[Enum, str]] = {}
    terminal_state: ClassVar[Enum]
    exit_path_setting: ClassVar[str]

    def __init__(
        self,
        pin: int,
        connection: Sender,
        timers: Optional[CountdownService] = None,
        settings: Optional[Settings] = None,
    ):
        self.pin = pin
        self.connection = connection
        self.settings = settings or default_settings
        self.timers = timers or CountdownService(interval=self.settings.TICK_INTERVAL_SEC)
        self.connected = False
        self.countdown: Optional[CountdownView] = None
        self.redirect_to: Optional[str] = None
        self._listeners: List[Listener] = []
        # Topics raised while a handler runs; flushed once the new state is set
        self._pending: Optional[List[str]] = None
        self.timers.on_fault = self._timer_fault
        self.state = self.initial_state()

    def initial_state(self) -> Enum:
        raise NotImplementedError

    # -- change notification -------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self, topic: str) -> None:
        if self._pending is not None:
            if topic not in self._pending:
                self._pending.append(topic)
            return
        for listener in list(self._listeners):
            listener(self, topic)

    def view(self) -> BaseModel:
        raise NotImplementedError

    # -- message dispatch -----------------------------------------------------

    def on_message(self, message: GameMessage) -> None:
        handler = getattr(self, self.handlers[self.state])
        self._pending = []
        try:
            state = handler(message)
        finally:
            pending, self._pending = self._pending, None
        self._set_state(state)
        for topic in pending:
            self._changed(topic)

    def _set_state(self, state: Enum) -> None:
        if state == self.state:
            return
        logger.info("%s %s: %s -> %s", type(self).__name__, self.pin, self.state.value, state.value)
        self.state = state
        self._changed("state")

    def _unexpected(self, message: GameMessage) -> Enum:
        logger.warning(
            "%s %s: unexpected %r in state %s", type(self).__name__, self.pin, message.action, self.state.value
        )
        return self.state

    def _parse(self, model: Type[M], message: GameMessage) -> M:
        try:
            return model.model_validate(message.payload if message.payload is not None else {})
        except ValidationError as exc:
            raise MalformedMessage(f"Bad {message.action!r} payload: {exc}") from exc

    # -- countdowns -----------------------------------------------------------

    def _start_countdown(self, spec: CountdownSpec, on_expire: Optional[Callable[[], None]] = None) -> None:
        self.countdown = CountdownView(remaining=spec.duration, title=spec.title)
        self._changed("countdown")

        def tick(remaining: int) -> None:
            self.countdown = CountdownView(remaining=remaining, title=spec.title)
            self._changed("countdown")

        def expire() -> None:
            self.countdown = None
            self._changed("countdown")
            if on_expire:
                on_expire()

        self.timers.start(COUNTDOWN, spec.duration, on_tick=tick, on_expire=expire)

    def _cancel_countdown(self) -> None:
        self.timers.cancel(COUNTDOWN)
        if self.countdown is not None:
            self.countdown = None
            self._changed("countdown")

    # -- connection lifecycle -------------------------------------------------

    def on_open(self) -> None:
        raise NotImplementedError

    def on_close(self) -> None:
        self._connection_lost(None)

    def on_error(self, exc: BaseException) -> None:
        self._connection_lost(exc)

    def _timer_fault(self, owner: Any, exc: Exception) -> None:
        logger.error("%s %s: timer %r failed, leaving the game", type(self).__name__, self.pin, owner)
        self.on_error(exc)

    def _connection_lost(self, exc: Optional[BaseException]) -> None:
        self.timers.cancel_all()
        if self.state == self.terminal_state:
            # Expected end of life; observers see nothing
            logger.info("%s %s: connection closed after the game ended", type(self).__name__, self.pin)
            return
        if self.redirect_to is not None:
            return

        self.countdown = None
        self.connected = False
        self._changed("connection")

        if exc is not None:
            logger.warning("%s %s: connection lost: %s", type(self).__name__, self.pin, exc)
        else:
            logger.warning("%s %s: connection closed mid-game", type(self).__name__, self.pin)
        self.redirect_to = getattr(self.settings, self.exit_path_setting)
        self._changed("redirect")
