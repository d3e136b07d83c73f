"""Action vocabulary shared by the host and player channels."""

from __future__ import annotations

from typing import Dict

# Host channel, inbound
JOINED_PLAYER = "joined-player"
LEFT_PLAYER = "left-player"
DISCONNECTED_PLAYER = "disconnected-player"
START_ACKNOWLEDGE = "start-acknowledge"
QUESTION_LIVE = "question-live"
ANSWER_RECEIVED = "answer-received"

# Player channel, inbound
GAME_STARTING = "game-starting"
NEXT_COUNTDOWN = "next-countdown"
ANSWER_ACKNOWLEDGED = "answer-acknowledged"

# Both channels, inbound
NEW_QUESTION = "new-question"
QUESTION_ENDED = "question-ended"
GAME_ENDED = "game-ended"

# Outbound
IDENTIFY = "identify"
CLAIM_HOST = "claim-host"
ANSWER = "answer"
START_ROUND = "start-round"
SKIP_COUNTDOWN = "skip-countdown"
END_QUESTION = "end-question"
KICK = "kick"

ROSTER_ACTIONS = frozenset({JOINED_PLAYER, LEFT_PLAYER, DISCONNECTED_PLAYER})
COUNTDOWN_ACTIONS = frozenset({GAME_STARTING, NEXT_COUNTDOWN})

# Short tokens spoken by servers on the older protocol revision
LEGACY_INBOUND: Dict[str, str] = {
    "ques": NEW_QUESTION,
    "qend": QUESTION_ENDED,
    "gcount": GAME_STARTING,
    "count": NEXT_COUNTDOWN,
    "ansack": ANSWER_ACKNOWLEDGED,
    "gend": GAME_ENDED,
}

LEGACY_OUTBOUND: Dict[str, str] = {
    IDENTIFY: "ident",
    ANSWER: "ans",
    CLAIM_HOST: "host",
}

REVISIONS = ("current", "legacy")
