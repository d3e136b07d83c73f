from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .base import BaseSession, Sender
from .config import Settings
from .errors import UnknownPlayer
from .models import (
    CountdownSpec,
    GameMessage,
    HostState,
    HostView,
    LeaderboardEntry,
    PlayerRecord,
    QuestionSnapshot,
)
from .protocol import (
    ANSWER_RECEIVED,
    CLAIM_HOST,
    DISCONNECTED_PLAYER,
    END_QUESTION,
    GAME_ENDED,
    JOINED_PLAYER,
    KICK,
    LEFT_PLAYER,
    NEW_QUESTION,
    QUESTION_ENDED,
    QUESTION_LIVE,
    SKIP_COUNTDOWN,
    START_ACKNOWLEDGE,
    START_ROUND,
)
from .schemas import LeaderboardIn, PlayerNameIn
from .timers import CountdownService
from .utils import now_ts, sort_leaderboard

logger = logging.getLogger(__name__)

START_ERROR = "start-error"


class HostSession(BaseSession):
    """Host side of a game: roster, question flow and round control."""

    handlers = {
        HostState.JOIN_WAITING: "_state_join_waiting",
        HostState.START_COUNTDOWN: "_state_start_countdown",
        HostState.QUESTION_COUNTDOWN: "_state_question_countdown",
        HostState.QUESTION_OPEN: "_state_question_open",
        HostState.QUESTION_FEEDBACK: "_state_question_feedback",
        HostState.GAME_OVER: "_state_game_over",
    }
    terminal_state = HostState.GAME_OVER
    exit_path_setting = "HOST_EXIT_PATH"

    def __init__(
        self,
        pin: int,
        connection: Sender,
        timers: Optional[CountdownService] = None,
        settings: Optional[Settings] = None,
    ):
        self.roster: Dict[int, PlayerRecord] = {}
        self.question: Optional[QuestionSnapshot] = None
        self.answers_received = 0
        self.start_error = False
        self.end_requested = False
        self.question_deadline_ts: Optional[float] = None
        self.leaderboard: List[LeaderboardEntry] = []
        super().__init__(pin, connection, timers, settings)

    def initial_state(self) -> HostState:
        return HostState.JOIN_WAITING

    def view(self) -> HostView:
        return HostView(
            pin=self.pin,
            state=self.state,
            connected=self.connected,
            roster=self.roster,
            question=self.question,
            answers_received=self.answers_received,
            countdown=self.countdown,
            start_error=self.start_error,
            end_requested=self.end_requested,
            question_deadline_ts=self.question_deadline_ts,
            leaderboard=self.leaderboard,
            redirect_to=self.redirect_to,
        ).model_copy(deep=True)

    def leaderboard_view(self) -> List[PlayerRecord]:
        return sort_leaderboard(self.roster.values())

    def on_open(self) -> None:
        self.connection.send(CLAIM_HOST, self.pin)
        logger.info("Claimed host for game %s", self.pin)
        self.connected = True
        self._changed("connection")

    # -- host actions ---------------------------------------------------------

    def start_game(self) -> bool:
        if self.state != HostState.JOIN_WAITING:
            logger.warning("Game %s: start requested in state %s", self.pin, self.state.value)
            return False

        if len(self.roster) < self.settings.MIN_PLAYERS:
            logger.info(
                "Game %s: cannot start with %d of %d players", self.pin, len(self.roster), self.settings.MIN_PLAYERS
            )
            self.start_error = True
            self._changed("notice")
            self.timers.start(
                START_ERROR, 1, on_expire=self._clear_start_error, interval=self.settings.START_ERROR_CLEAR_SEC
            )
            return False

        if self.timers.cancel(START_ERROR) or self.start_error:
            self._clear_start_error()
        self.connection.send(START_ROUND, {})
        self._set_state(HostState.START_COUNTDOWN)
        return True

    def next_round(self) -> bool:
        if self.state != HostState.QUESTION_FEEDBACK:
            logger.warning("Game %s: next round requested in state %s", self.pin, self.state.value)
            return False
        self.connection.send(START_ROUND, {})
        self._set_state(HostState.QUESTION_COUNTDOWN)
        return True

    def kick(self, player_id: int) -> bool:
        record = self.roster.get(player_id)
        if record is None:
            raise UnknownPlayer(f"No player with id {player_id} in game {self.pin}")
        if self.state == self.terminal_state:
            logger.warning("Game %s: kick of %s after the game ended", self.pin, record.name)
            return False

        # Removal waits for the server's left-player notice
        record.pending_action = True
        self._changed("roster")
        self.connection.send(KICK, player_id)
        return True

    def _clear_start_error(self) -> None:
        self.start_error = False
        self._changed("notice")

    # -- states ---------------------------------------------------------------

    def _state_join_waiting(self, message: GameMessage) -> HostState:
        if self._roster_update(message):
            return self.state
        return self._unexpected(message)

    def _state_start_countdown(self, message: GameMessage) -> HostState:
        if message.action == START_ACKNOWLEDGE:
            spec = self._parse(CountdownSpec, message)
            if spec.duration:
                self._start_countdown(spec)
            return HostState.QUESTION_COUNTDOWN
        if self._roster_update(message):
            return self.state
        return self._unexpected(message)

    def _state_question_countdown(self, message: GameMessage) -> HostState:
        if message.action == NEW_QUESTION:
            return self._new_question(message)
        if message.action == GAME_ENDED:
            return self._game_ended(message)
        if self._roster_update(message):
            return self.state
        return self._unexpected(message)

    def _state_question_open(self, message: GameMessage) -> HostState:
        if message.action == QUESTION_LIVE:
            duration = self.question.duration if self.question else 0
            self.question_deadline_ts = now_ts() + duration
            self._start_countdown(CountdownSpec(duration=duration), on_expire=self._request_end)
            return self.state

        if message.action == ANSWER_RECEIVED:
            self.answers_received += 1
            self._changed("answers")
            return self.state

        if message.action == QUESTION_ENDED:
            # The server decides when a question is over, whatever our timer says
            self._cancel_countdown()
            self.question_deadline_ts = None
            self._apply_leaderboard(message)
            return HostState.QUESTION_FEEDBACK

        if message.action == GAME_ENDED:
            return self._game_ended(message)
        if self._roster_update(message):
            return self.state
        return self._unexpected(message)

    def _state_question_feedback(self, message: GameMessage) -> HostState:
        if message.action == NEW_QUESTION:
            return self._new_question(message)
        if message.action == GAME_ENDED:
            return self._game_ended(message)
        if self._roster_update(message):
            return self.state
        return self._unexpected(message)

    def _state_game_over(self, message: GameMessage) -> HostState:
        logger.debug("Game %s over, ignoring %r", self.pin, message.action)
        return self.state

    # -- transitions ----------------------------------------------------------

    def _new_question(self, message: GameMessage) -> HostState:
        question = self._parse(QuestionSnapshot, message)
        self.question = question
        self.answers_received = 0
        self.end_requested = False
        self.question_deadline_ts = None
        self._changed("question")

        spec = CountdownSpec(duration=self.settings.QUESTION_COUNTDOWN_SEC, title=question.title)
        self._start_countdown(spec, on_expire=self._skip_countdown)
        return HostState.QUESTION_OPEN

    def _skip_countdown(self) -> None:
        if self.state == HostState.QUESTION_OPEN:
            self.connection.send(SKIP_COUNTDOWN, {})

    def _request_end(self) -> None:
        if self.state != HostState.QUESTION_OPEN or self.end_requested:
            return
        logger.info("Game %s: answer time is up, asking the server to end the question", self.pin)
        self.end_requested = True
        self._changed("question")
        self.connection.send(END_QUESTION, {})

    def _game_ended(self, message: GameMessage) -> HostState:
        self._cancel_countdown()
        self.question_deadline_ts = None
        self._apply_leaderboard(message)
        return HostState.GAME_OVER

    def _apply_leaderboard(self, message: GameMessage) -> None:
        entries = self._parse(LeaderboardIn, message).leaderboard
        if not entries:
            return
        self.leaderboard = entries
        for entry in entries:
            record = self.roster.get(entry.id) if entry.id is not None else None
            if record is None:
                continue
            record.score = max(record.score, entry.score)
            record.correct_count = max(record.correct_count, entry.correct_count)
        self._changed("roster")
        self._changed("feedback")

    # -- roster ---------------------------------------------------------------

    def _roster_update(self, message: GameMessage) -> bool:
        if message.action == JOINED_PLAYER:
            self._player_joined(self._parse(PlayerRecord, message))
        elif message.action == LEFT_PLAYER:
            self._player_left(self._parse(PlayerNameIn, message).name)
        elif message.action == DISCONNECTED_PLAYER:
            self._player_disconnected(self._parse(PlayerNameIn, message).name)
        else:
            return False
        return True

    def _find(self, name: str) -> Optional[PlayerRecord]:
        for record in self.roster.values():
            if record.name == name:
                return record
        return None

    def _player_joined(self, record: PlayerRecord) -> None:
        existing = self.roster.get(record.id)
        if existing is None:
            record.connected = True
            record.pending_action = False
            self.roster[record.id] = record
            logger.info("Game %s: %s (id %d) joined", self.pin, record.name, record.id)
        elif not existing.connected:
            existing.connected = True
            existing.name = record.name
            existing.score = max(existing.score, record.score)
            existing.correct_count = max(existing.correct_count, record.correct_count)
            logger.info("Game %s: %s (id %d) reconnected", self.pin, existing.name, existing.id)
        else:
            logger.warning("Game %s: duplicate join for id %d (%s), ignoring", self.pin, record.id, record.name)
            return
        self._changed("roster")

    def _player_left(self, name: str) -> None:
        record = self._find(name)
        if record is None:
            logger.warning("Game %s: %s left but is not in the roster", self.pin, name)
            return
        del self.roster[record.id]
        logger.info("Game %s: %s (id %d) left", self.pin, record.name, record.id)
        self._changed("roster")

    def _player_disconnected(self, name: str) -> None:
        record = self._find(name)
        if record is None:
            logger.warning("Game %s: %s disconnected but is not in the roster", self.pin, name)
            return
        if not record.connected:
            return
        record.connected = False
        logger.info("Game %s: %s (id %d) disconnected", self.pin, record.name, record.id)
        self._changed("roster")
