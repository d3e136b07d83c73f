from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Hashable, Optional

logger = logging.getLogger(__name__)

TickCallback = Callable[[int], None]
ExpireCallback = Callable[[], None]
FaultCallback = Callable[[Hashable, Exception], None]


class Countdown:
    """Handle for one live countdown."""

    def __init__(self, owner: Hashable, duration: int, interval: float):
        self.owner = owner
        self.duration = duration
        self.interval = interval
        self.remaining = duration
        self.task: Optional[asyncio.Task] = None

    @property
    def done(self) -> bool:
        return self.task is None or self.task.done()


class CountdownService:
    """Owner-keyed ticking timers on the running event loop.

    Starting a countdown for an owner cancels whatever that owner had running,
    so each owner has at most one live timer. Callbacks for a cancelled or
    replaced countdown never fire. An exception raised by a callback stops
    that countdown and is handed to ``on_fault`` with the owner key.
    """

    def __init__(self, interval: float = 1.0, on_fault: Optional[FaultCallback] = None):
        self.interval = interval
        self.on_fault = on_fault
        self._timers: Dict[Hashable, Countdown] = {}

    def start(
        self,
        owner: Hashable,
        duration: int,
        on_tick: Optional[TickCallback] = None,
        on_expire: Optional[ExpireCallback] = None,
        interval: Optional[float] = None,
    ) -> Countdown:
        self.cancel(owner)
        countdown = Countdown(owner, max(0, int(duration)), self.interval if interval is None else interval)
        self._timers[owner] = countdown
        countdown.task = asyncio.get_running_loop().create_task(self._run(countdown, on_tick, on_expire))
        return countdown

    def cancel(self, owner: Hashable) -> bool:
        countdown = self._timers.pop(owner, None)
        if countdown is None or countdown.done:
            return False
        countdown.task.cancel()
        return True

    def cancel_all(self) -> None:
        for owner in list(self._timers):
            self.cancel(owner)

    def active(self, owner: Hashable) -> bool:
        countdown = self._timers.get(owner)
        return countdown is not None and not countdown.done

    def remaining(self, owner: Hashable) -> Optional[int]:
        countdown = self._timers.get(owner)
        if countdown is None or countdown.done:
            return None
        return countdown.remaining

    def _live(self, countdown: Countdown) -> bool:
        return self._timers.get(countdown.owner) is countdown

    def _fault(self, countdown: Countdown, exc: Exception) -> None:
        if self._live(countdown):
            del self._timers[countdown.owner]
        logger.exception("countdown %r callback failed", countdown.owner)
        if self.on_fault:
            self.on_fault(countdown.owner, exc)

    async def _run(
        self,
        countdown: Countdown,
        on_tick: Optional[TickCallback],
        on_expire: Optional[ExpireCallback],
    ) -> None:
        try:
            while countdown.remaining > 0:
                await asyncio.sleep(countdown.interval)
                if not self._live(countdown):
                    return
                countdown.remaining -= 1
                if on_tick:
                    on_tick(countdown.remaining)

            if not self._live(countdown):
                return
            # Inert from here on; a restart creates a new Countdown
            del self._timers[countdown.owner]
            logger.debug("countdown %r expired after %ss", countdown.owner, countdown.duration)
            if on_expire:
                on_expire()
        except Exception as exc:
            self._fault(countdown, exc)
