"""Bounded per-player fatigue history and slope derivation."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime

from scout_engine.time_utils import minutes_between

FATIGUE_SLOPE_WINDOW = 5


@dataclass(frozen=True)
class FatigueReading:
    score: float
    at: datetime


class FatigueTrendTracker:
    """Sliding window of the most recent fatigue readings per player."""

    def __init__(self, window: int = FATIGUE_SLOPE_WINDOW) -> None:
        self.window = max(2, int(window))
        self._history: dict[str, deque[FatigueReading]] = {}

    def seed(self, player: str, score: float, at: datetime) -> None:
        """Replace a player's history with a single baseline reading."""
        self._history[player] = deque([FatigueReading(score, at)], maxlen=self.window)

    def record(self, player: str, score: float, at: datetime) -> float:
        """Append a reading and return the updated slope in points per minute."""
        history = self._history.get(player)
        if history is None:
            history = deque(maxlen=self.window)
            self._history[player] = history
        history.append(FatigueReading(score, at))
        return self.slope(player)

    def slope(self, player: str) -> float:
        history = self._history.get(player)
        if not history or len(history) < 2:
            return 0.0
        oldest = history[0]
        newest = history[-1]
        elapsed = minutes_between(oldest.at, newest.at)
        if elapsed <= 0:
            return 0.0
        return (newest.score - oldest.score) / elapsed

    def readings(self, player: str) -> list[FatigueReading]:
        return list(self._history.get(player, ()))

    def clear(self) -> None:
        self._history.clear()
