from __future__ import annotations

import logging
from typing import Optional

from .base import BaseSession, Sender
from .config import Settings
from .models import (
    CountdownSpec,
    FeedbackSnapshot,
    GameMessage,
    PlayerState,
    PlayerView,
    QuestionSnapshot,
)
from .protocol import (
    ANSWER,
    ANSWER_ACKNOWLEDGED,
    COUNTDOWN_ACTIONS,
    GAME_ENDED,
    IDENTIFY,
    NEW_QUESTION,
    QUESTION_ENDED,
)
from .timers import CountdownService

logger = logging.getLogger(__name__)

HANDSHAKE = "handshake"


class PlayerSession(BaseSession):
    """Player side of a game.

    The session starts in ``loading`` and identifies itself to the server a
    short moment after the connection opens. Scores are never computed here:
    ``points`` is the running sum of what the server awarded, and ``rank`` is
    the placement from the latest feedback.
    """

    handlers = {
        PlayerState.LOADING: "_state_loading",
        PlayerState.WAITING: "_state_waiting",
        PlayerState.COUNTDOWN: "_state_countdown",
        PlayerState.QUESTION: "_state_question",
        PlayerState.ANSWER: "_state_answer",
        PlayerState.FEEDBACK: "_state_feedback",
        PlayerState.FINISHED: "_state_finished",
    }
    terminal_state = PlayerState.FINISHED
    exit_path_setting = "PLAYER_EXIT_PATH"

    def __init__(
        self,
        pin: int,
        uid: int,
        connection: Sender,
        timers: Optional[CountdownService] = None,
        settings: Optional[Settings] = None,
    ):
        self.uid = uid
        self.points = 0
        self.rank = 0
        self.question: Optional[QuestionSnapshot] = None
        self.feedback: Optional[FeedbackSnapshot] = None
        self.feedback_pending = False
        self.submitted = False
        super().__init__(pin, connection, timers, settings)

    def initial_state(self) -> PlayerState:
        return PlayerState.LOADING

    def view(self) -> PlayerView:
        return PlayerView(
            pin=self.pin,
            uid=self.uid,
            state=self.state,
            connected=self.connected,
            points=self.points,
            rank=self.rank,
            question=self.question,
            feedback=self.feedback,
            feedback_pending=self.feedback_pending,
            submitted=self.submitted,
            countdown=self.countdown,
            redirect_to=self.redirect_to,
        ).model_copy(deep=True)

    def on_open(self) -> None:
        self.timers.start(HANDSHAKE, 1, on_expire=self._identify, interval=self.settings.HANDSHAKE_DELAY_SEC)

    def _identify(self) -> None:
        self.connection.send(IDENTIFY, self.uid)
        logger.info("Authenticated to game %s as player %s", self.pin, self.uid)
        self.connected = True
        self._changed("connection")
        self._set_state(PlayerState.WAITING)

    def answer(self, index: int) -> bool:
        """Submit the 0-based ``index`` of the chosen option.

        The server numbers options from 1, so the index is shifted on the
        wire. State does not change here; the acknowledgement does that.
        """
        if self.state != PlayerState.QUESTION or self.question is None:
            logger.warning("Game %s: answer submitted in state %s", self.pin, self.state.value)
            return False
        if self.submitted:
            logger.warning("Game %s: answer already submitted for %r", self.pin, self.question.title)
            return False
        if not 0 <= index < len(self.question.answers):
            raise ValueError(f"Answer index {index} out of range for {len(self.question.answers)} options")

        self.connection.send(ANSWER, index + 1)
        self.submitted = True
        self._changed("question")
        return True

    # -- states ---------------------------------------------------------------

    def _state_loading(self, message: GameMessage) -> PlayerState:
        return self._unexpected(message)

    def _state_waiting(self, message: GameMessage) -> PlayerState:
        if message.action in COUNTDOWN_ACTIONS:
            return self._begin_countdown(message)
        if message.action == NEW_QUESTION:
            # Joined after the countdown already ran
            return self._store_question(message)
        if message.action == GAME_ENDED:
            return self._finish()
        return self._unexpected(message)

    def _state_countdown(self, message: GameMessage) -> PlayerState:
        if message.action in COUNTDOWN_ACTIONS:
            return self._begin_countdown(message)
        if message.action == NEW_QUESTION:
            self._cancel_countdown()
            return self._store_question(message)
        if message.action == GAME_ENDED:
            return self._finish()
        return self._unexpected(message)

    def _state_question(self, message: GameMessage) -> PlayerState:
        if message.action == NEW_QUESTION:
            return self._store_question(message)
        if message.action == ANSWER_ACKNOWLEDGED:
            self.feedback_pending = True
            self._changed("feedback")
            return PlayerState.ANSWER
        if message.action == QUESTION_ENDED:
            return self._store_feedback(message)
        if message.action == GAME_ENDED:
            return self._finish()
        return self._unexpected(message)

    def _state_answer(self, message: GameMessage) -> PlayerState:
        if message.action == QUESTION_ENDED:
            return self._store_feedback(message)
        if message.action == GAME_ENDED:
            return self._finish()
        return self._unexpected(message)

    def _state_feedback(self, message: GameMessage) -> PlayerState:
        if message.action in COUNTDOWN_ACTIONS:
            return self._begin_countdown(message)
        if message.action == GAME_ENDED:
            return self._finish()
        return self._unexpected(message)

    def _state_finished(self, message: GameMessage) -> PlayerState:
        # Done: ignore everything, including the connection closing
        return self.state

    # -- transitions ----------------------------------------------------------

    def _begin_countdown(self, message: GameMessage) -> PlayerState:
        spec = self._parse(CountdownSpec, message)
        self.question = None
        self.submitted = False
        self._start_countdown(spec, on_expire=self._countdown_expired)
        return PlayerState.COUNTDOWN

    def _countdown_expired(self) -> None:
        if self.state == PlayerState.COUNTDOWN:
            self._set_state(PlayerState.QUESTION)

    def _store_question(self, message: GameMessage) -> PlayerState:
        self.question = self._parse(QuestionSnapshot, message)
        self.submitted = False
        self._changed("question")
        return PlayerState.QUESTION

    def _store_feedback(self, message: GameMessage) -> PlayerState:
        feedback = self._parse(FeedbackSnapshot, message)
        self.feedback = feedback
        self.points += feedback.points
        self.rank = feedback.placement
        self.feedback_pending = False
        self._changed("feedback")
        return PlayerState.FEEDBACK

    def _finish(self) -> PlayerState:
        self._cancel_countdown()
        return PlayerState.FINISHED
