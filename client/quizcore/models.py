from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class _WireModel(BaseModel):
    # Payloads come from the server; tolerate extra keys and camelCase names
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class GameMessage(BaseModel):
    action: str
    payload: Any = None


class HostState(str, Enum):
    JOIN_WAITING = "join_waiting"
    START_COUNTDOWN = "start_countdown"
    QUESTION_COUNTDOWN = "question_countdown"
    QUESTION_OPEN = "question_open"
    QUESTION_FEEDBACK = "question_feedback"
    GAME_OVER = "game_over"


class PlayerState(str, Enum):
    LOADING = "loading"
    WAITING = "waiting"
    COUNTDOWN = "countdown"
    QUESTION = "question"
    ANSWER = "answer"
    FEEDBACK = "feedback"
    FINISHED = "finished"


class PlayerRecord(_WireModel):
    id: int
    name: str
    score: int = 0
    correct_count: int = Field(default=0, alias="correctCount")
    connected: bool = True
    pending_action: bool = Field(default=False, alias="pendingAction")


class AnswerOption(_WireModel):
    title: str
    # Only the host channel carries correctness
    correct: Optional[bool] = None

    @classmethod
    def from_wire(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"title": value}
        return value


class QuestionSnapshot(_WireModel):
    title: str
    image: Optional[str] = None
    duration: int = Field(default=20, ge=0, validation_alias=AliasChoices("duration", "time"))
    answers: List[AnswerOption] = Field(default_factory=list)
    index: int = 0
    total: int = 0

    @field_validator("answers", mode="before")
    @classmethod
    def _plain_answers(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [AnswerOption.from_wire(v) for v in value]
        return value


class LeaderboardEntry(_WireModel):
    id: Optional[int] = None
    name: str
    score: int = 0
    correct_count: int = Field(default=0, alias="correctCount")


class FeedbackSnapshot(_WireModel):
    correct: bool = False
    points: int = Field(default=0, ge=0)
    placement: int = Field(default=0, validation_alias=AliasChoices("placement", "rank"))
    leaderboard: List[LeaderboardEntry] = Field(default_factory=list)
    # "who is ahead of you" hint, sent instead of a leaderboard by newer servers
    ahead: Optional[str] = None


class CountdownSpec(_WireModel):
    duration: int = Field(default=0, ge=0, validation_alias=AliasChoices("duration", "count"))
    title: Optional[str] = None

    @property
    def full(self) -> bool:
        return bool(self.title)


class CountdownView(BaseModel):
    remaining: int
    title: Optional[str] = None


class HostView(BaseModel):
    pin: int
    state: HostState
    connected: bool
    roster: Dict[int, PlayerRecord]
    question: Optional[QuestionSnapshot] = None
    answers_received: int = 0
    countdown: Optional[CountdownView] = None
    start_error: bool = False
    end_requested: bool = False
    question_deadline_ts: Optional[float] = None
    leaderboard: List[LeaderboardEntry] = Field(default_factory=list)
    redirect_to: Optional[str] = None


class PlayerView(BaseModel):
    pin: int
    uid: int
    state: PlayerState
    connected: bool
    points: int = 0
    rank: int = 0
    question: Optional[QuestionSnapshot] = None
    feedback: Optional[FeedbackSnapshot] = None
    feedback_pending: bool = False
    submitted: bool = False
    countdown: Optional[CountdownView] = None
    redirect_to: Optional[str] = None
