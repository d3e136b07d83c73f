import time
from typing import Iterable

from .models import PlayerRecord


def now_ts() -> float:
    return time.time()


def sort_leaderboard(players: Iterable[PlayerRecord]) -> list[PlayerRecord]:
    return sorted(players, key=lambda p: (-p.score, p.name.lower()))
