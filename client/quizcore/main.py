"""Headless host and player runners, mostly useful against a dev server."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

import click

from .base import BaseSession
from .config import get_settings
from .context import SessionContext
from .host import HostSession
from .logging_config import configure_logging
from .models import HostState, PlayerState
from .player import PlayerSession

logger = logging.getLogger(__name__)


def log_changes(session: BaseSession, topic: str) -> None:
    logger.info("[%s] %s", topic, session.view().model_dump_json(exclude_none=True))


def host_autopilot(start_at: int, auto_next: bool) -> Callable[[BaseSession, str], None]:
    """Start once ``start_at`` players are in and optionally advance rounds."""

    def listener(session: BaseSession, topic: str) -> None:
        if not isinstance(session, HostSession):
            return
        if topic == "roster" and session.state == HostState.JOIN_WAITING and len(session.roster) >= start_at:
            session.start_game()
        elif topic == "state" and auto_next and session.state == HostState.QUESTION_FEEDBACK:
            session.next_round()

    return listener


def player_autopilot(pick: int) -> Callable[[BaseSession, str], None]:
    """Answer every question with option ``pick`` (clamped to the options shown)."""

    def listener(session: BaseSession, topic: str) -> None:
        if not isinstance(session, PlayerSession):
            return
        if session.state != PlayerState.QUESTION or session.submitted or session.question is None:
            return
        if topic in ("question", "state") and session.question.answers:
            session.answer(min(pick, len(session.question.answers) - 1))

    return listener


def _run(ctx: SessionContext) -> None:
    ctx.session.subscribe(log_changes)
    asyncio.run(ctx.run())
    if ctx.session.redirect_to:
        logger.warning("Session ended early; rejoin via %s", ctx.session.redirect_to)


@click.group()
@click.option("--log-level", default=None, help="Overrides LOG_LEVEL.")
@click.option("--log-file", default=None, help="Also write logs to this file.")
def cli(log_level: Optional[str], log_file: Optional[str]) -> None:
    configure_logging(level=log_level, log_file=log_file)


@cli.command()
@click.argument("pin", type=int)
@click.option("--start-at", type=int, default=None, help="Start the game once this many players joined.")
@click.option("--auto-next/--no-auto-next", default=False, help="Advance to the next round after feedback.")
def host(pin: int, start_at: Optional[int], auto_next: bool) -> None:
    ctx = SessionContext.for_host(pin, settings=get_settings())
    if start_at is not None:
        ctx.session.subscribe(host_autopilot(start_at, auto_next))
    _run(ctx)


@cli.command()
@click.argument("pin", type=int)
@click.argument("uid", type=int)
@click.option("--pick", type=int, default=None, help="Always answer with this 0-based option.")
def play(pin: int, uid: int, pick: Optional[int]) -> None:
    ctx = SessionContext.for_player(pin, uid, settings=get_settings())
    if pick is not None:
        ctx.session.subscribe(player_autopilot(pick))
    _run(ctx)


if __name__ == "__main__":
    cli()
