"""Player state arena keyed by player name."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import replace
from typing import Any

from scout_engine.models import (
    PBPSnapshot,
    PlayerLiveState,
    PlayerRole,
    PreGameBaseline,
    RosterEntry,
)
from scout_engine.util.parsing import clamp

DEFAULT_FATIGUE = 15.0
DEFAULT_EFFORT = 55.0
DEFAULT_SPEED = 65.0
DEFAULT_REBOUND_POSITION = 50.0
DEFAULT_MINUTES_ESTIMATE = 25.0


def role_from_position(position: str) -> PlayerRole:
    """Map a roster position string onto a coarse usage role."""
    pos = position.lower()
    if "c" in pos or "pf" in pos:
        return "BIG"
    if "pg" in pos or "sg" in pos:
        return "SECONDARY"
    return "SPACER"


def _baseline_index(baselines: Iterable[PreGameBaseline]) -> dict[str, PreGameBaseline]:
    return {
        baseline.player_name.lower(): baseline for baseline in baselines if baseline.player_name
    }


def _seed(value: float | None, default: float) -> float:
    return default if value is None else clamp(value)


def build_player_state(entry: RosterEntry, baseline: PreGameBaseline | None) -> PlayerLiveState:
    role = entry.role or (baseline.role if baseline else None) or role_from_position(entry.position)
    minutes_estimate = DEFAULT_MINUTES_ESTIMATE
    if baseline is not None and baseline.minutes_estimate is not None:
        minutes_estimate = max(0.0, baseline.minutes_estimate)
    return PlayerLiveState(
        player_name=entry.name,
        jersey=entry.jersey,
        team=entry.team,
        position=entry.position,
        role=role,
        fatigue_score=_seed(baseline.fatigue_score if baseline else None, DEFAULT_FATIGUE),
        effort_score=_seed(baseline.effort_score if baseline else None, DEFAULT_EFFORT),
        speed_index=_seed(baseline.speed_index if baseline else None, DEFAULT_SPEED),
        rebound_position_score=DEFAULT_REBOUND_POSITION,
        minutes_estimate=minutes_estimate,
        pre_game_trend=baseline.trend if baseline else None,
        pre_game_consistency=baseline.consistency if baseline else None,
    )


class PlayerStateStore:
    """Arena of PlayerLiveState records; membership is fixed once initialized."""

    def __init__(self) -> None:
        self._players: dict[str, PlayerLiveState] = {}

    def __len__(self) -> int:
        return len(self._players)

    def __contains__(self, name: object) -> bool:
        return name in self._players

    def __iter__(self) -> Iterator[PlayerLiveState]:
        return iter(self._players.values())

    def names(self) -> list[str]:
        return list(self._players)

    def get(self, name: str) -> PlayerLiveState | None:
        return self._players.get(name)

    def initialize(
        self,
        roster: Iterable[RosterEntry],
        baselines: Iterable[PreGameBaseline] = (),
    ) -> list[PlayerLiveState]:
        """Replace all records with fresh ones built from the roster."""
        by_name = _baseline_index(baselines)
        self._players = {}
        for entry in roster:
            if not entry.name or entry.name in self._players:
                continue
            self._players[entry.name] = build_player_state(entry, by_name.get(entry.name.lower()))
        return list(self._players.values())

    def apply_pbp(self, snapshot: PBPSnapshot) -> int:
        """Overwrite box scores from an authoritative play-by-play snapshot.

        `minutes_estimate` is a projection of total minutes and is never
        replaced by live minutes played. Returns the number of players updated.
        """
        updated = 0
        for row in snapshot.players:
            player = self._players.get(row.player_name)
            if player is None:
                continue
            player.box_score = replace(row.box_score)
            player.foul_count = row.box_score.fouls
            player.minutes_played = max(0.0, row.minutes)
            player.on_court = row.minutes > 0
            updated += 1
        return updated

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {name: player.to_dict() for name, player in self._players.items()}

    def restore(self, payload: dict[str, Any]) -> None:
        players: dict[str, PlayerLiveState] = {}
        for name, row in payload.items():
            if not isinstance(name, str) or not isinstance(row, dict):
                continue
            state = PlayerLiveState.from_dict(row)
            if not state.player_name:
                state.player_name = name
            players[name] = state
        self._players = players
