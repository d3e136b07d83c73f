from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from .models import LeaderboardEntry


class _PayloadIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PlayerNameIn(_PayloadIn):
    name: str


class LeaderboardIn(_PayloadIn):
    leaderboard: List[LeaderboardEntry] = Field(default_factory=list)
