"""Core value types for the live scouting engine."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Literal

from scout_engine.contracts import (
    HalftimeLockedPropPayload,
    PreGameBaselinePayload,
    RosterEntryPayload,
)
from scout_engine.util.parsing import clamp, round_half_up, safe_float, safe_int, safe_str

PlayerRole = Literal["PRIMARY", "SECONDARY", "BIG", "SPACER"]
PropType = Literal["Points", "Rebounds", "Assists", "PRA", "Steals", "Blocks", "Threes"]
Lean = Literal["OVER", "UNDER"]
TrendDirection = Literal["strengthening", "weakening", "stable"]
SignalType = Literal["fatigue", "speed", "effort", "positioning"]

PLAYER_ROLES: tuple[str, ...] = ("PRIMARY", "SECONDARY", "BIG", "SPACER")
PROP_TYPES: tuple[str, ...] = ("Points", "Rebounds", "Assists", "PRA", "Steals", "Blocks", "Threes")
SIGNAL_TYPES: tuple[str, ...] = ("fatigue", "speed", "effort", "positioning")
LEANS: tuple[str, ...] = ("OVER", "UNDER")
TRENDS: tuple[str, ...] = ("strengthening", "weakening", "stable")
PRE_GAME_TRENDS: tuple[str, ...] = ("hot", "cold", "stable")

HALFTIME_LOCK_MODE = "HALFTIME_LOCK"
PRE_GAME_CLOCK = "Pre-game"


def _as_choice(value: Any, choices: tuple[str, ...]) -> str | None:
    raw = safe_str(value)
    return raw if raw in choices else None


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if isinstance(item, str) and item.strip()]


def _num(payload: dict[str, Any], key: str, default: float) -> float:
    parsed = safe_float(payload.get(key))
    return default if parsed is None else parsed


def _count(payload: dict[str, Any], key: str) -> int:
    parsed = safe_int(payload.get(key))
    return 0 if parsed is None else parsed


@dataclass
class BoxScore:
    """Play-by-play box score line; replaced wholesale on every snapshot."""

    points: int = 0
    rebounds: int = 0
    assists: int = 0
    fouls: int = 0
    fga: int = 0
    fta: int = 0
    turnovers: int = 0
    threes: int = 0
    steals: int = 0
    blocks: int = 0

    def to_dict(self) -> dict[str, int]:
        return {item.name: int(getattr(self, item.name)) for item in fields(self)}

    @classmethod
    def from_dict(cls, payload: Any) -> BoxScore:
        if not isinstance(payload, dict):
            return cls()
        return cls(**{item.name: _count(payload, item.name) for item in fields(cls)})

    def stat_for(self, prop: str) -> int:
        if prop == "Points":
            return self.points
        if prop == "Rebounds":
            return self.rebounds
        if prop == "Assists":
            return self.assists
        if prop == "PRA":
            return self.points + self.rebounds + self.assists
        if prop == "Steals":
            return self.steals
        if prop == "Blocks":
            return self.blocks
        if prop == "Threes":
            return self.threes
        return 0


@dataclass(frozen=True)
class RosterEntry:
    name: str
    jersey: str
    position: str
    team: str
    role: PlayerRole | None = None

    @classmethod
    def from_dict(cls, payload: RosterEntryPayload, *, team: str) -> RosterEntry:
        return cls(
            name=safe_str(payload.get("name")),
            jersey=safe_str(payload.get("jersey")),
            position=safe_str(payload.get("position")),
            team=team,
            role=_as_choice(payload.get("role"), PLAYER_ROLES),  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class PreGameBaseline:
    """Optional pre-game seed for one player; consulted only at initialization."""

    player_name: str
    fatigue_score: float | None = None
    effort_score: float | None = None
    speed_index: float | None = None
    minutes_estimate: float | None = None
    trend: str | None = None
    consistency: float | None = None
    role: PlayerRole | None = None

    @classmethod
    def from_dict(cls, payload: PreGameBaselinePayload) -> PreGameBaseline:
        return cls(
            player_name=safe_str(payload.get("playerName")),
            fatigue_score=safe_float(payload.get("fatigueScore")),
            effort_score=safe_float(payload.get("effortScore")),
            speed_index=safe_float(payload.get("speedIndex")),
            minutes_estimate=safe_float(payload.get("minutesEstimate")),
            trend=_as_choice(payload.get("trend"), PRE_GAME_TRENDS),
            consistency=safe_float(payload.get("consistency")),
            role=_as_choice(payload.get("role"), PLAYER_ROLES),  # type: ignore[arg-type]
        )


@dataclass
class PlayerLiveState:
    """Mutable per-player record; the unit of fusion."""

    player_name: str
    jersey: str
    team: str
    position: str
    role: PlayerRole
    fatigue_score: float = 15.0
    effort_score: float = 55.0
    speed_index: float = 65.0
    rebound_position_score: float = 50.0
    fatigue_slope: float = 0.0
    minutes_estimate: float = 25.0
    minutes_played: float = 0.0
    on_court: bool = True
    foul_count: int = 0
    sprint_count: int = 0
    hands_on_knees_count: int = 0
    slow_recovery_count: int = 0
    visual_flags: list[str] = field(default_factory=list)
    last_updated: str = PRE_GAME_CLOCK
    box_score: BoxScore = field(default_factory=BoxScore)
    pre_game_trend: str | None = None
    pre_game_consistency: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "playerName": self.player_name,
            "jersey": self.jersey,
            "team": self.team,
            "position": self.position,
            "role": self.role,
            "fatigueScore": self.fatigue_score,
            "effortScore": self.effort_score,
            "speedIndex": self.speed_index,
            "reboundPositionScore": self.rebound_position_score,
            "fatigueSlope": self.fatigue_slope,
            "minutesEstimate": self.minutes_estimate,
            "minutesPlayed": self.minutes_played,
            "onCourt": self.on_court,
            "foulCount": self.foul_count,
            "sprintCount": self.sprint_count,
            "handsOnKneesCount": self.hands_on_knees_count,
            "slowRecoveryCount": self.slow_recovery_count,
            "visualFlags": list(self.visual_flags),
            "lastUpdated": self.last_updated,
            "boxScore": self.box_score.to_dict(),
            "preGameTrend": self.pre_game_trend,
            "preGameConsistency": self.pre_game_consistency,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> PlayerLiveState:
        role = _as_choice(payload.get("role"), PLAYER_ROLES) or "SPACER"
        return cls(
            player_name=safe_str(payload.get("playerName")),
            jersey=safe_str(payload.get("jersey")),
            team=safe_str(payload.get("team")),
            position=safe_str(payload.get("position")),
            role=role,  # type: ignore[arg-type]
            fatigue_score=_num(payload, "fatigueScore", 15.0),
            effort_score=_num(payload, "effortScore", 55.0),
            speed_index=_num(payload, "speedIndex", 65.0),
            rebound_position_score=_num(payload, "reboundPositionScore", 50.0),
            fatigue_slope=_num(payload, "fatigueSlope", 0.0),
            minutes_estimate=_num(payload, "minutesEstimate", 25.0),
            minutes_played=_num(payload, "minutesPlayed", 0.0),
            on_court=bool(payload.get("onCourt", True)),
            foul_count=_count(payload, "foulCount"),
            sprint_count=_count(payload, "sprintCount"),
            hands_on_knees_count=_count(payload, "handsOnKneesCount"),
            slow_recovery_count=_count(payload, "slowRecoveryCount"),
            visual_flags=_as_str_list(payload.get("visualFlags")),
            last_updated=safe_str(payload.get("lastUpdated"), default=PRE_GAME_CLOCK),
            box_score=BoxScore.from_dict(payload.get("boxScore")),
            pre_game_trend=_as_choice(payload.get("preGameTrend"), PRE_GAME_TRENDS),
            pre_game_consistency=safe_float(payload.get("preGameConsistency")),
        )


@dataclass
class PropEdge:
    """Directional, confidence-scored recommendation for one (player, prop) pair."""

    player: str
    prop: PropType
    line: float
    lean: Lean
    confidence: int
    expected_final: float = 0.0
    drivers: list[str] = field(default_factory=list)
    risk_flags: list[str] = field(default_factory=list)
    trend: TrendDirection = "stable"
    game_time: str = ""
    current_stat: float | None = None
    bookmaker: str | None = None
    over_price: int | None = None
    under_price: int | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.player, self.prop)

    def to_dict(self) -> dict[str, Any]:
        return {
            "player": self.player,
            "prop": self.prop,
            "line": self.line,
            "lean": self.lean,
            "confidence": self.confidence,
            "expectedFinal": self.expected_final,
            "drivers": list(self.drivers),
            "riskFlags": list(self.risk_flags),
            "trend": self.trend,
            "gameTime": self.game_time,
            "currentStat": self.current_stat,
            "bookmaker": self.bookmaker,
            "overPrice": self.over_price,
            "underPrice": self.under_price,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> PropEdge | None:
        """Parse a prop edge; returns None when identity, prop or lean is unusable."""
        player = safe_str(payload.get("player"))
        prop = _as_choice(payload.get("prop"), PROP_TYPES)
        lean = _as_choice(payload.get("lean"), LEANS)
        confidence = safe_float(payload.get("confidence"))
        line = safe_float(payload.get("line"))
        if not player or prop is None or lean is None or confidence is None or line is None:
            return None
        return cls(
            player=player,
            prop=prop,  # type: ignore[arg-type]
            line=line,
            lean=lean,  # type: ignore[arg-type]
            confidence=round_half_up(clamp(confidence)),
            expected_final=_num(payload, "expectedFinal", 0.0),
            drivers=_as_str_list(payload.get("drivers")),
            risk_flags=_as_str_list(payload.get("riskFlags")),
            trend=_as_choice(payload.get("trend"), TRENDS) or "stable",  # type: ignore[arg-type]
            game_time=safe_str(payload.get("gameTime")),
            current_stat=safe_float(payload.get("currentStat")),
            bookmaker=safe_str(payload.get("bookmaker")) or None,
            over_price=safe_int(payload.get("overPrice")),
            under_price=safe_int(payload.get("underPrice")),
        )


@dataclass(frozen=True)
class HalftimeLockedProp:
    player: str
    prop: PropType
    line: float
    lean: Lean
    confidence: int
    expected_final: float
    drivers: tuple[str, ...]
    risk_flags: tuple[str, ...]
    lock_time: str
    first_half_stats: dict[str, int] = field(default_factory=dict)
    mode: str = HALFTIME_LOCK_MODE

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "player": self.player,
            "prop": self.prop,
            "line": self.line,
            "lean": self.lean,
            "confidence": self.confidence,
            "expectedFinal": self.expected_final,
            "drivers": list(self.drivers),
            "riskFlags": list(self.risk_flags),
            "lockTime": self.lock_time,
            "firstHalfStats": dict(self.first_half_stats),
        }

    @classmethod
    def from_dict(cls, payload: HalftimeLockedPropPayload) -> HalftimeLockedProp | None:
        player = safe_str(payload.get("player"))
        prop = _as_choice(payload.get("prop"), PROP_TYPES)
        lean = _as_choice(payload.get("lean"), LEANS)
        confidence = safe_float(payload.get("confidence"))
        if not player or prop is None or lean is None or confidence is None:
            return None
        return cls(
            player=player,
            prop=prop,  # type: ignore[arg-type]
            line=_num(payload, "line", 0.0),
            lean=lean,  # type: ignore[arg-type]
            confidence=round_half_up(clamp(confidence)),
            expected_final=_num(payload, "expectedFinal", 0.0),
            drivers=tuple(_as_str_list(payload.get("drivers"))),
            risk_flags=tuple(_as_str_list(payload.get("riskFlags"))),
            lock_time=safe_str(payload.get("lockTime")),
            first_half_stats=BoxScore.from_dict(payload.get("firstHalfStats")).to_dict(),
        )


@dataclass(frozen=True)
class VisionSignal:
    player: str
    signal_type: str
    value: float
    observation: str = ""

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> VisionSignal | None:
        player = safe_str(payload.get("player"))
        value = safe_float(payload.get("value"))
        if not player or value is None:
            return None
        return cls(
            player=player,
            signal_type=safe_str(payload.get("signalType")).lower(),
            value=value,
            observation=safe_str(payload.get("observation")),
        )


@dataclass(frozen=True)
class PBPPlayerStats:
    player_name: str
    minutes: float
    box_score: BoxScore

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> PBPPlayerStats | None:
        name = safe_str(payload.get("playerName"))
        if not name:
            return None
        box = BoxScore(
            points=_count(payload, "points"),
            rebounds=_count(payload, "rebounds"),
            assists=_count(payload, "assists"),
            fouls=_count(payload, "fouls"),
            fga=_count(payload, "fga"),
            fta=_count(payload, "fta"),
            turnovers=_count(payload, "turnovers"),
            threes=_count(payload, "threePm"),
            steals=_count(payload, "steals"),
            blocks=_count(payload, "blocks"),
        )
        return cls(player_name=name, minutes=_num(payload, "minutes", 0.0), box_score=box)

    def to_dict(self) -> dict[str, Any]:
        box = self.box_score
        return {
            "playerName": self.player_name,
            "minutes": self.minutes,
            "points": box.points,
            "rebounds": box.rebounds,
            "assists": box.assists,
            "fouls": box.fouls,
            "fga": box.fga,
            "fta": box.fta,
            "turnovers": box.turnovers,
            "threePm": box.threes,
            "steals": box.steals,
            "blocks": box.blocks,
        }


@dataclass(frozen=True)
class PBPSnapshot:
    """Structured play-by-play state for one polling tick."""

    game_time: str
    period: int
    clock: str = ""
    home_score: int = 0
    away_score: int = 0
    home_team: str = ""
    away_team: str = ""
    is_halftime: bool = False
    is_game_over: bool = False
    players: tuple[PBPPlayerStats, ...] = ()

    @property
    def score_line(self) -> str:
        return f"{self.home_team} {self.home_score} - {self.away_team} {self.away_score}"

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> PBPSnapshot:
        rows = payload.get("players")
        players: list[PBPPlayerStats] = []
        if isinstance(rows, list):
            for row in rows:
                if not isinstance(row, dict):
                    continue
                parsed = PBPPlayerStats.from_dict(row)
                if parsed is not None:
                    players.append(parsed)
        return cls(
            game_time=safe_str(payload.get("gameTime")),
            period=_count(payload, "period"),
            clock=safe_str(payload.get("clock")),
            home_score=_count(payload, "homeScore"),
            away_score=_count(payload, "awayScore"),
            home_team=safe_str(payload.get("homeTeam")),
            away_team=safe_str(payload.get("awayTeam")),
            is_halftime=payload.get("isHalftime") is True,
            is_game_over=payload.get("isGameOver") is True,
            players=tuple(players),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "gameTime": self.game_time,
            "period": self.period,
            "clock": self.clock,
            "homeScore": self.home_score,
            "awayScore": self.away_score,
            "homeTeam": self.home_team,
            "awayTeam": self.away_team,
            "isHalftime": self.is_halftime,
            "isGameOver": self.is_game_over,
            "players": [player.to_dict() for player in self.players],
        }


@dataclass(frozen=True)
class SceneClassification:
    scene_type: str
    is_analysis_worthy: bool
    confidence: str = "low"
    game_time: str | None = None
    score: str | None = None
    reason: str = ""

    @classmethod
    def from_dict(cls, payload: Any) -> SceneClassification:
        if not isinstance(payload, dict):
            return cls(scene_type="unknown", is_analysis_worthy=False)
        return cls(
            scene_type=safe_str(payload.get("sceneType"), default="unknown"),
            is_analysis_worthy=payload.get("isAnalysisWorthy") is True,
            confidence=safe_str(payload.get("confidence"), default="low"),
            game_time=safe_str(payload.get("gameTime")) or None,
            score=safe_str(payload.get("score")) or None,
            reason=safe_str(payload.get("reason")),
        )


@dataclass(frozen=True)
class PropAlert:
    player: str
    prop: str
    lean: str
    confidence: int
    reason: str
    game_time: str

    @classmethod
    def from_dict(cls, payload: Any) -> PropAlert | None:
        if not isinstance(payload, dict):
            return None
        player = safe_str(payload.get("player"))
        prop = safe_str(payload.get("prop"))
        if not player or not prop:
            return None
        return cls(
            player=player,
            prop=prop,
            lean=safe_str(payload.get("lean")),
            confidence=safe_int(payload.get("confidence")) or 0,
            reason=safe_str(payload.get("reason")),
            game_time=safe_str(payload.get("gameTime")),
        )
