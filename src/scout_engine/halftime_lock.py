"""One-way halftime lock that freezes second-half recommendations."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from scout_engine.models import HalftimeLockedProp, PlayerLiveState
from scout_engine.player_state import PlayerStateStore
from scout_engine.prop_ledger import PropEdgeLedger
from scout_engine.time_utils import iso_z, parse_iso_z
from scout_engine.util.parsing import round_half_up

logger = logging.getLogger(__name__)

MIN_MINUTES_ESTIMATE = 5.0
FATIGUED_SCORE = 40.0
FATIGUED_SLOPE_PER_MIN = 2.0
ENERGIZED_MAX_FATIGUE = 25.0
ENERGIZED_MIN_EFFORT = 60.0
POOR_POSITIONING = 50.0
GOOD_POSITIONING = 70.0
FOUL_TROUBLE_FOULS = 3
DEFAULT_POINTS_LINE = 22.5
DEFAULT_REBOUNDS_LINE = 10.5
SECOND_HALF_PERIOD = 3


def _project_final(player: PlayerLiveState, prop: str) -> float:
    current = float(player.box_score.stat_for(prop))
    if player.minutes_played <= 0:
        return current
    remaining = max(0.0, player.minutes_estimate - player.minutes_played)
    return round(current + (current / player.minutes_played) * remaining, 1)


def _points_recommendation(
    player: PlayerLiveState, *, line: float, lock_time: str
) -> HalftimeLockedProp | None:
    if player.role not in ("PRIMARY", "SECONDARY"):
        return None
    slope = player.fatigue_slope
    fatigued = player.fatigue_score >= FATIGUED_SCORE or slope > FATIGUED_SLOPE_PER_MIN
    energized = (
        player.fatigue_score < ENERGIZED_MAX_FATIGUE and player.effort_score > ENERGIZED_MIN_EFFORT
    )
    if not (fatigued or energized):
        return None
    if fatigued:
        confidence = min(90.0, 50.0 + player.fatigue_score * 0.5)
        lead_driver = f"Fatigue: {player.fatigue_score:g}/100 (slope: {slope:.1f}/min)"
    else:
        confidence = min(85.0, 40.0 + player.effort_score * 0.4)
        lead_driver = f"Energy: {player.effort_score:g}/100"
    return HalftimeLockedProp(
        player=player.player_name,
        prop="Points",
        line=line,
        lean="UNDER" if fatigued else "OVER",
        confidence=round_half_up(confidence),
        expected_final=_project_final(player, "Points"),
        drivers=(
            lead_driver,
            f"Speed index: {player.speed_index:g}/100",
            f"Minutes: {player.minutes_estimate:.1f}",
        ),
        risk_flags=("foul_trouble",) if player.foul_count >= FOUL_TROUBLE_FOULS else (),
        lock_time=lock_time,
        first_half_stats=player.box_score.to_dict(),
    )


def _rebounds_recommendation(
    player: PlayerLiveState, *, line: float, lock_time: str
) -> HalftimeLockedProp | None:
    if player.role != "BIG":
        return None
    position = player.rebound_position_score
    poorly_positioned = position < POOR_POSITIONING
    well_positioned = position > GOOD_POSITIONING
    if not (poorly_positioned or well_positioned):
        return None
    if poorly_positioned:
        confidence = min(85.0, 50.0 + (POOR_POSITIONING - position) * 0.7)
    else:
        confidence = min(80.0, 40.0 + position * 0.4)
    return HalftimeLockedProp(
        player=player.player_name,
        prop="Rebounds",
        line=line,
        lean="UNDER" if poorly_positioned else "OVER",
        confidence=round_half_up(confidence),
        expected_final=_project_final(player, "Rebounds"),
        drivers=(
            f"Rebound positioning: {position:g}/100",
            (
                "Fatigue affecting box-outs"
                if player.fatigue_score > FATIGUED_SCORE
                else "Active on glass"
            ),
        ),
        risk_flags=(),
        lock_time=lock_time,
        first_half_stats=player.box_score.to_dict(),
    )


def compute_locked_recommendations(
    players: PlayerStateStore, ledger: PropEdgeLedger, *, lock_time: str
) -> list[HalftimeLockedProp]:
    """Evaluate the points and rebounds rules for every rotation player."""
    locked: list[HalftimeLockedProp] = []
    for player in players:
        if player.minutes_estimate < MIN_MINUTES_ESTIMATE:
            continue
        edges = {edge.prop: edge for edge in ledger.edges_for(player.player_name)}
        points_edge = edges.get("Points")
        points = _points_recommendation(
            player,
            line=points_edge.line if points_edge else DEFAULT_POINTS_LINE,
            lock_time=lock_time,
        )
        if points is not None:
            locked.append(points)
        rebounds_edge = edges.get("Rebounds")
        rebounds = _rebounds_recommendation(
            player,
            line=rebounds_edge.line if rebounds_edge else DEFAULT_REBOUNDS_LINE,
            lock_time=lock_time,
        )
        if rebounds is not None:
            locked.append(rebounds)
    return locked


def crosses_into_second_half(previous_period: int | None, period: int) -> bool:
    return previous_period is not None and 0 < previous_period < SECOND_HALF_PERIOD <= period


@dataclass
class HalftimeLockState:
    is_locked: bool = False
    lock_time: str | None = None
    lock_timestamp: datetime | None = None
    locked_recommendations: list[HalftimeLockedProp] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "isLocked": self.is_locked,
            "lockTime": self.lock_time,
            "lockTimestamp": iso_z(self.lock_timestamp) if self.lock_timestamp else None,
            "lockedRecommendations": [item.to_dict() for item in self.locked_recommendations],
        }

    @classmethod
    def from_dict(cls, payload: Any) -> HalftimeLockState:
        if not isinstance(payload, dict) or payload.get("isLocked") is not True:
            return cls()
        raw_recs = payload.get("lockedRecommendations")
        recommendations: list[HalftimeLockedProp] = []
        if isinstance(raw_recs, list):
            for row in raw_recs:
                if isinstance(row, dict):
                    parsed = HalftimeLockedProp.from_dict(row)
                    if parsed is not None:
                        recommendations.append(parsed)
        raw_ts = payload.get("lockTimestamp")
        lock_time = payload.get("lockTime")
        return cls(
            is_locked=True,
            lock_time=lock_time if isinstance(lock_time, str) else None,
            lock_timestamp=parse_iso_z(raw_ts) if isinstance(raw_ts, str) else None,
            locked_recommendations=recommendations,
        )


class HalftimeLockMachine:
    """UNLOCKED -> LOCKED gate; only `reset` reopens it."""

    def __init__(self) -> None:
        self.state = HalftimeLockState()

    @property
    def is_locked(self) -> bool:
        return self.state.is_locked

    def lock(
        self,
        players: PlayerStateStore,
        ledger: PropEdgeLedger,
        *,
        lock_time: str,
        at: datetime,
        supplied: Sequence[HalftimeLockedProp] | None = None,
    ) -> bool:
        """Freeze recommendations; returns False without changes when already locked."""
        if self.state.is_locked:
            return False
        if supplied:
            recommendations = list(supplied)
            source = "supplied"
        else:
            recommendations = compute_locked_recommendations(players, ledger, lock_time=lock_time)
            source = "computed"
        self.state = HalftimeLockState(
            is_locked=True,
            lock_time=lock_time,
            lock_timestamp=at,
            locked_recommendations=recommendations,
        )
        logger.info(
            "halftime lock engaged at %s with %d %s recommendations",
            lock_time,
            len(recommendations),
            source,
        )
        return True

    def recommendations(self) -> list[HalftimeLockedProp]:
        return list(self.state.locked_recommendations)

    def reset(self) -> None:
        self.state = HalftimeLockState()

    def restore(self, payload: Any) -> None:
        self.state = HalftimeLockState.from_dict(payload)

    def to_dict(self) -> dict[str, Any]:
        return self.state.to_dict()


def supplied_recommendations(rows: Iterable[Any]) -> list[HalftimeLockedProp]:
    parsed: list[HalftimeLockedProp] = []
    for row in rows:
        if isinstance(row, dict):
            item = HalftimeLockedProp.from_dict(row)
            if item is not None:
                parsed.append(item)
    return parsed
