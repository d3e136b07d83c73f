from __future__ import annotations

import asyncio
import json
from unittest import IsolatedAsyncioTestCase

from client.quizcore.base import COUNTDOWN
from client.quizcore.codec import Codec, decode, encode
from client.quizcore.config import Settings
from client.quizcore.errors import MalformedMessage
from client.quizcore.models import PlayerState
from client.quizcore.player import PlayerSession
from client.quizcore.timers import CountdownService


class _FakeConnection:
    def __init__(self):
        self.sent: list[str] = []

    def send(self, action, payload=None):
        self.sent.append(encode(action, payload))


def _msg(action: str, payload=None):
    return decode(f"{action} {json.dumps({} if payload is None else payload)}")


async def _until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


class PlayerSessionTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:  # noqa: D401 - standard unittest hook
        self.conn = _FakeConnection()
        self.settings = Settings(TICK_INTERVAL_SEC=0.001, HANDSHAKE_DELAY_SEC=0)
        self.timers = CountdownService(interval=0.001)
        self.player = PlayerSession(1234, 42, self.conn, timers=self.timers, settings=self.settings)
        self.topics: list[str] = []
        self.player.subscribe(lambda session, topic: self.topics.append(topic))

    async def asyncTearDown(self) -> None:
        self.timers.cancel_all()

    async def _identified(self):
        self.player.on_open()
        await _until(lambda: self.player.state == PlayerState.WAITING)

    def _question(self, title="Q1", answers=("A", "B")):
        self.player.on_message(_msg("new-question", {"title": title, "answers": list(answers)}))

    async def test_identifies_after_handshake_delay(self):
        self.assertEqual(self.player.state, PlayerState.LOADING)
        self.assertFalse(self.player.connected)

        await self._identified()

        self.assertEqual(self.conn.sent, ["identify 42"])
        self.assertTrue(self.player.connected)
        self.assertIn("state", self.topics)

    async def test_messages_before_identification_are_unexpected(self):
        with self.assertLogs("client.quizcore.base", level="WARNING"):
            self._question()

        self.assertEqual(self.player.state, PlayerState.LOADING)
        self.assertIsNone(self.player.question)

    async def test_game_countdown_leads_to_question(self):
        await self._identified()

        self.player.on_message(_msg("game-starting", {"duration": 3, "title": "Get ready"}))

        self.assertEqual(self.player.state, PlayerState.COUNTDOWN)
        self.assertEqual(self.player.countdown.remaining, 3)
        self.assertEqual(self.player.countdown.title, "Get ready")
        await _until(lambda: self.player.state == PlayerState.QUESTION)
        self.assertIsNone(self.player.countdown)

    async def test_answer_is_sent_one_based(self):
        await self._identified()
        self._question("Q1", ["A", "B"])
        self.assertEqual(self.player.state, PlayerState.QUESTION)

        self.assertTrue(self.player.answer(1))

        self.assertEqual(self.conn.sent[-1], "answer 2")
        self.assertTrue(self.player.submitted)
        self.assertEqual(self.player.state, PlayerState.QUESTION)

    async def test_answer_guards(self):
        await self._identified()
        self.assertFalse(self.player.answer(0))

        self._question(answers=["A", "B", "C"])
        with self.assertRaises(ValueError):
            self.player.answer(3)
        with self.assertRaises(ValueError):
            self.player.answer(-1)

        self.assertTrue(self.player.answer(0))
        self.assertFalse(self.player.answer(2))
        self.assertEqual(self.conn.sent, ["identify 42", "answer 1"])

    async def test_acknowledge_then_feedback(self):
        await self._identified()
        self._question()
        self.player.answer(0)

        self.player.on_message(_msg("answer-acknowledged"))
        self.assertEqual(self.player.state, PlayerState.ANSWER)
        self.assertTrue(self.player.feedback_pending)

        self.player.on_message(
            _msg("question-ended", {"correct": True, "points": 950, "placement": 1, "ahead": None})
        )
        self.assertEqual(self.player.state, PlayerState.FEEDBACK)
        self.assertFalse(self.player.feedback_pending)
        self.assertTrue(self.player.feedback.correct)
        self.assertEqual(self.player.points, 950)
        self.assertEqual(self.player.rank, 1)

    async def test_points_accumulate_and_rank_follows_latest(self):
        await self._identified()
        rounds = [
            {"correct": True, "points": 800, "placement": 3},
            {"correct": False, "points": 0, "rank": 4, "ahead": "Ada"},
            {"correct": True, "points": 650, "placement": 2},
        ]

        for i, feedback in enumerate(rounds):
            self.player.on_message(_msg("next-countdown", {"duration": 50}))
            self.assertEqual(self.player.state, PlayerState.COUNTDOWN)
            self._question(title=f"Q{i}")
            self.player.on_message(_msg("question-ended", feedback))

        self.assertEqual(self.player.points, 1450)
        self.assertEqual(self.player.rank, 2)
        self.assertEqual(self.player.state, PlayerState.FEEDBACK)

    async def test_hint_replaces_leaderboard_wholesale(self):
        await self._identified()
        self._question()
        self.player.on_message(
            _msg("question-ended", {"points": 10, "placement": 2, "leaderboard": [{"name": "Ada", "score": 20}]})
        )
        self.player.on_message(_msg("next-countdown", {"duration": 50}))
        self._question()
        self.player.on_message(_msg("question-ended", {"points": 5, "placement": 2, "ahead": "Ada"}))

        self.assertEqual(self.player.feedback.leaderboard, [])
        self.assertEqual(self.player.feedback.ahead, "Ada")

    async def test_question_during_countdown_cancels_it(self):
        await self._identified()
        self.player.on_message(_msg("game-starting", {"duration": 500}))

        self._question()

        self.assertEqual(self.player.state, PlayerState.QUESTION)
        self.assertFalse(self.timers.active(COUNTDOWN))
        self.assertIsNone(self.player.countdown)

    async def test_new_countdown_clears_previous_question(self):
        await self._identified()
        self._question()
        self.player.answer(1)
        self.player.on_message(_msg("question-ended", {"points": 0}))

        self.player.on_message(_msg("next-countdown", {"duration": 1}))
        await _until(lambda: self.player.state == PlayerState.QUESTION)

        self.assertIsNone(self.player.question)
        self.assertFalse(self.player.submitted)
        self.assertFalse(self.player.answer(0))

    async def test_unexpected_action_changes_nothing_in_any_state(self):
        steps = [
            lambda player: player._identify(),
            lambda player: player.on_message(_msg("game-starting", {"duration": 500})),
            lambda player: player.on_message(_msg("new-question", {"title": "Q1", "answers": ["A", "B"]})),
            lambda player: player.on_message(_msg("answer-acknowledged")),
            lambda player: player.on_message(_msg("question-ended", {"points": 5, "placement": 2})),
        ]
        states = [
            PlayerState.LOADING,
            PlayerState.WAITING,
            PlayerState.COUNTDOWN,
            PlayerState.QUESTION,
            PlayerState.ANSWER,
            PlayerState.FEEDBACK,
        ]

        for depth, state in enumerate(states):
            with self.subTest(state=state.value):
                player = PlayerSession(1234, 42, self.conn, timers=self.timers, settings=self.settings)
                for step in steps[:depth]:
                    step(player)
                self.assertEqual(player.state, state)
                before = player.view().model_dump()
                topics: list[str] = []
                player.subscribe(lambda session, topic: topics.append(topic))

                with self.assertLogs("client.quizcore.base", level="WARNING"):
                    player.on_message(_msg("question-live"))

                self.assertEqual(player.view().model_dump(), before)
                self.assertEqual(topics, [])

    async def test_observers_see_feedback_after_the_state_change(self):
        await self._identified()
        self._question()
        seen = []
        self.player.subscribe(lambda session, topic: seen.append((topic, session.state, session.points)))

        self.player.on_message(_msg("question-ended", {"correct": True, "points": 5, "placement": 1}))

        self.assertEqual(seen, [("state", PlayerState.FEEDBACK, 5), ("feedback", PlayerState.FEEDBACK, 5)])

    async def test_failing_countdown_observer_fails_the_session(self):
        await self._identified()

        def fragile(session, topic):
            if topic == "countdown" and session.countdown is not None and session.countdown.remaining == 1:
                raise RuntimeError("render failed")

        self.player.subscribe(fragile)
        with self.assertLogs("client.quizcore.timers", level="ERROR") as logs:
            self.player.on_message(_msg("game-starting", {"duration": 3}))
            await _until(lambda: self.player.redirect_to is not None)

        self.assertEqual(self.player.redirect_to, "/join")
        self.assertFalse(self.player.connected)
        self.assertIsNone(self.player.countdown)
        self.assertFalse(self.timers.active(COUNTDOWN))
        self.assertIs(logs.records[0].exc_info[0], RuntimeError)

    async def test_finished_ignores_messages_and_close(self):
        await self._identified()
        self._question()
        self.player.on_message(_msg("game-ended"))
        self.assertEqual(self.player.state, PlayerState.FINISHED)
        before = self.player.view().model_dump()

        self.player.on_message(_msg("next-countdown", {"duration": 3}))
        self.player.on_close()

        self.assertEqual(self.player.view().model_dump(), before)
        self.assertIsNone(self.player.redirect_to)

    async def test_connection_loss_mid_game_redirects_to_join(self):
        await self._identified()
        self.player.on_message(_msg("game-starting", {"duration": 500}))
        self.topics.clear()

        self.player.on_close()

        self.assertEqual(self.player.redirect_to, "/join")
        self.assertFalse(self.player.connected)
        self.assertIn("redirect", self.topics)
        self.assertFalse(self.timers.active(COUNTDOWN))

    async def test_loss_during_handshake_cancels_identification(self):
        slow = PlayerSession(
            1234, 42, self.conn, timers=self.timers, settings=Settings(HANDSHAKE_DELAY_SEC=0.05)
        )
        slow.on_open()
        slow.on_close()
        await asyncio.sleep(0.1)

        self.assertEqual(self.conn.sent, [])
        self.assertEqual(slow.redirect_to, "/join")

    async def test_legacy_countdown_payload(self):
        await self._identified()

        self.player.on_message(Codec("legacy").decode('gcount {"count": 4, "title": "Get ready"}'))

        self.assertEqual(self.player.state, PlayerState.COUNTDOWN)
        self.assertEqual(self.player.countdown.title, "Get ready")

    async def test_negative_points_are_malformed(self):
        await self._identified()
        self._question()

        with self.assertRaises(MalformedMessage):
            self.player.on_message(_msg("question-ended", {"points": -5}))
        self.assertEqual(self.player.points, 0)
