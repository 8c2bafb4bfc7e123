from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from scout_engine.engine import ScoutEngine
from scout_engine.models import PreGameBaseline, RosterEntry, VisionSignal
from scout_engine.session_store import (
    InMemorySessionStore,
    JsonFileSessionStore,
    SessionPersistenceGateway,
)

T0 = datetime(2026, 3, 1, 0, 0, 0, tzinfo=UTC)

ROSTER = [
    RosterEntry(name="S. Curry", jersey="30", position="PG", team="GSW", role="PRIMARY"),
    RosterEntry(name="D. Green", jersey="23", position="PF", team="GSW"),
    RosterEntry(name="K. Looney", jersey="5", position="C", team="GSW"),
]


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


def _engine(
    clock: FakeClock,
    store: InMemorySessionStore | None = None,
    baselines: list[PreGameBaseline] | None = None,
) -> ScoutEngine:
    gateway = SessionPersistenceGateway(store or InMemorySessionStore(), clock=clock)
    return ScoutEngine(
        "evt-401",
        home_team="GSW",
        away_team="LAL",
        roster=ROSTER,
        baselines=baselines or [],
        gateway=gateway,
        clock=clock,
    )


def _pbp(period: int, *, game_time: str = "", halftime: bool = False, points: int = 11) -> dict:
    return {
        "gameTime": game_time or f"Q{period} 12:00",
        "period": period,
        "homeScore": 60,
        "awayScore": 55,
        "homeTeam": "GSW",
        "awayTeam": "LAL",
        "isHalftime": halftime,
        "players": [
            {"playerName": "S. Curry", "minutes": 16, "points": points, "fouls": 3},
            {"playerName": "K. Looney", "minutes": 12, "rebounds": 6},
        ],
    }


def _agent_frame(*, worthy: bool = True, **extra) -> dict:
    frame = {
        "sceneClassification": {
            "sceneType": "live_action" if worthy else "commercial",
            "isAnalysisWorthy": worthy,
        }
    }
    frame.update(extra)
    return frame


def test_fatigue_burst_then_period_three_locks_points_under() -> None:
    clock = FakeClock()
    engine = _engine(clock)
    for _ in range(3):
        clock.advance(minutes=1)
        engine.ingest_vision_batch([VisionSignal("S. Curry", "fatigue", 10, "labored jog")])

    curry = engine.get_player_state("S. Curry")
    assert curry.fatigue_score == 45
    assert curry.fatigue_slope == pytest.approx(10.0)

    assert engine.ingest_pbp(_pbp(2)) is False
    assert engine.ingest_pbp(_pbp(3, game_time="Q3 12:00")) is True

    recs = engine.get_halftime_recommendations()
    points = [rec for rec in recs if rec.player == "S. Curry"]
    assert len(points) == 1
    assert points[0].prop == "Points"
    assert points[0].lean == "UNDER"
    assert points[0].confidence == 73
    assert points[0].line == 22.5
    assert points[0].risk_flags == ("foul_trouble",)
    assert points[0].first_half_stats["points"] == 11
    assert points[0].lock_time == "Q3 12:00"


def test_lock_is_immutable_after_engaging() -> None:
    clock = FakeClock()
    engine = _engine(clock)
    engine.ingest_vision_batch([VisionSignal("S. Curry", "fatigue", 30, "")])
    assert engine.ingest_pbp(_pbp(2, halftime=True, game_time="Halftime")) is True
    before = engine.get_halftime_recommendations()

    engine.ingest_vision_batch([VisionSignal("S. Curry", "effort", 40, "")])
    engine.ingest_vision_batch([VisionSignal("S. Curry", "fatigue", -40, "")])
    assert engine.ingest_pbp(_pbp(2, halftime=True, points=20)) is False
    assert engine.ingest_pbp(_pbp(3)) is False
    engine.process_agent_response(_agent_frame(isHalftime=True))

    assert engine.get_halftime_recommendations() == before
    assert engine.halftime.state.lock_time == "Halftime"


def test_pbp_updates_box_score_without_touching_minutes_estimate() -> None:
    engine = _engine(FakeClock())

    engine.ingest_pbp(_pbp(1, points=7))

    curry = engine.get_player_state("S. Curry")
    assert curry.box_score.points == 7
    assert curry.foul_count == 3
    assert curry.minutes_played == 16
    assert curry.minutes_estimate == 25
    assert engine.current_score == "GSW 60 - LAL 55"
    assert engine.last_period == 1


def test_merge_prop_edges_smooths_and_ranks() -> None:
    engine = _engine(FakeClock())
    edge = {"player": "S. Curry", "prop": "Points", "line": 27.5, "lean": "OVER"}

    engine.merge_prop_edges([{**edge, "confidence": 80}])
    merged = engine.merge_prop_edges([{**edge, "confidence": 50}])

    assert merged[0].confidence == 59
    assert merged[0].trend == "weakening"
    assert [item.confidence for item in engine.get_top_edges()] == [59]


def test_agent_response_counts_scenes_and_updates_state() -> None:
    clock = FakeClock()
    engine = _engine(clock)

    engine.process_agent_response(_agent_frame(worthy=False))
    clock.advance(minutes=2)
    engine.process_agent_response(
        _agent_frame(
            gameTime="Q1 6:12",
            score="GSW 14 - LAL 10",
            updatedPlayerStates={"D. Green": {"fatigueScore": 35, "effortScore": 140}},
            visionSignals=[
                {"player": "K. Looney", "signalType": "Positioning", "value": 25, "observation": ""}
            ],
            propEdges=[
                {
                    "player": "D. Green",
                    "prop": "Rebounds",
                    "line": 7.5,
                    "lean": "OVER",
                    "confidence": 64,
                }
            ],
        )
    )

    assert engine.frames_processed == 2
    assert engine.analysis_count == 1
    assert engine.commercial_skip_count == 1
    assert engine.scene_history[0].scene_type == "live_action"
    assert engine.current_game_time == "Q1 6:12"
    assert engine.current_score == "GSW 14 - LAL 10"
    green = engine.get_player_state("D. Green")
    assert green.fatigue_score == 35
    assert green.effort_score == 100
    assert green.fatigue_slope == pytest.approx(10.0)
    looney = engine.get_player_state("K. Looney")
    assert looney.rebound_position_score == 75
    assert looney.last_updated == "Q1 6:12"
    assert engine.ledger.get("D. Green", "Rebounds").confidence == 64


def test_agent_halftime_uses_supplied_recommendations() -> None:
    engine = _engine(FakeClock())

    engine.process_agent_response(
        _agent_frame(
            gameTime="Halftime",
            isHalftime=True,
            halftimeRecommendations=[
                {
                    "player": "D. Green",
                    "prop": "Assists",
                    "line": 6.5,
                    "lean": "OVER",
                    "confidence": 66,
                    "drivers": ["Pace"],
                }
            ],
        )
    )

    recs = engine.get_halftime_recommendations()
    assert engine.is_halftime_locked() is True
    assert [(rec.player, rec.prop, rec.confidence) for rec in recs] == [("D. Green", "Assists", 66)]


def test_notification_cooldown_per_player_prop() -> None:
    clock = FakeClock()
    engine = _engine(clock)
    notice = {"player": "S. Curry", "prop": "Points", "lean": "UNDER", "confidence": 70}
    frame = _agent_frame(shouldNotify=True, notification=notice)

    first = engine.process_agent_response(frame)
    clock.advance(seconds=10)
    second = engine.process_agent_response(frame)
    clock.advance(seconds=6)
    third = engine.process_agent_response(frame)

    assert first is not None and first.player == "S. Curry"
    assert second is None
    assert third is not None


def test_fatigued_players_sorted_and_filtered() -> None:
    engine = _engine(FakeClock())
    engine.ingest_vision_batch(
        [
            VisionSignal("S. Curry", "fatigue", 20, ""),
            VisionSignal("K. Looney", "fatigue", 40, ""),
        ]
    )

    assert [player.player_name for player in engine.get_fatigued_players()] == [
        "K. Looney",
        "S. Curry",
    ]


def test_capture_rate_is_clamped() -> None:
    engine = _engine(FakeClock())

    assert engine.set_capture_rate(0) == 1
    assert engine.set_capture_rate(9) == 5
    assert engine.set_capture_rate(3) == 3


def test_autosave_runs_on_interval_and_on_stop() -> None:
    clock = FakeClock()
    store = InMemorySessionStore()
    engine = _engine(clock, store)
    engine.start()

    assert engine.tick() is False
    engine.process_agent_response(_agent_frame())
    assert engine.tick() is True
    clock.advance(seconds=5)
    assert engine.tick() is False
    clock.advance(seconds=5)
    assert engine.tick() is True
    assert store.keys() == ["evt-401"]

    engine.process_agent_response(_agent_frame())
    engine.stop()
    assert store.get("evt-401")["analysisCount"] == 2
    assert engine.tick() is False


def test_resume_session_restores_fresh_snapshot() -> None:
    clock = FakeClock()
    store = InMemorySessionStore()
    first = _engine(clock, store)
    first.start()
    first.ingest_vision_batch([VisionSignal("S. Curry", "fatigue", 30, "")])
    first.merge_prop_edges(
        [{"player": "S. Curry", "prop": "Points", "line": 27.5, "lean": "UNDER", "confidence": 70}]
    )
    first.ingest_pbp(_pbp(2, halftime=True, game_time="Halftime"))
    first.process_agent_response(_agent_frame())
    first.stop()

    clock.advance(hours=3, minutes=59)
    second = _engine(clock, store)
    assert second.resume_session() is True

    assert second.get_player_state("S. Curry").fatigue_score == 45
    assert second.is_halftime_locked() is True
    assert second.get_halftime_recommendations() == first.get_halftime_recommendations()
    assert second.get_top_edges()[0].confidence == 70
    assert second.analysis_count == 1
    assert second.last_period == 2
    assert second.fatigue.readings("S. Curry")[0].at == clock.now


def test_resume_session_ignores_stale_snapshot() -> None:
    clock = FakeClock()
    store = InMemorySessionStore()
    first = _engine(clock, store)
    first.ingest_vision_batch([VisionSignal("S. Curry", "fatigue", 30, "")])
    assert first.save() is True

    clock.advance(hours=4, minutes=1)
    second = _engine(clock, store)

    assert second.resume_session() is False
    assert second.get_player_state("S. Curry").fatigue_score == 15


def test_clear_session_deletes_snapshot_and_reinitializes() -> None:
    clock = FakeClock()
    store = InMemorySessionStore()
    engine = _engine(clock, store)
    engine.ingest_vision_batch([VisionSignal("S. Curry", "fatigue", 30, "")])
    engine.ingest_pbp(_pbp(2, halftime=True))
    engine.save()

    assert engine.clear_session() is True

    assert store.keys() == []
    assert engine.is_halftime_locked() is False
    assert engine.get_player_state("S. Curry").fatigue_score == 15
    assert engine.frames_processed == 0


def test_baselines_seed_initial_state() -> None:
    engine = _engine(
        FakeClock(),
        baselines=[
            PreGameBaseline(player_name="d. green", fatigue_score=22, minutes_estimate=31),
        ],
    )

    green = engine.get_player_state("D. Green")
    assert green.fatigue_score == 22
    assert green.minutes_estimate == 31
    assert engine.fatigue.readings("D. Green")[0].score == 22


def test_resume_session_with_unreadable_file_starts_fresh(tmp_path: Path) -> None:
    clock = FakeClock()
    store = JsonFileSessionStore(tmp_path)
    store.path_for("evt-401").write_bytes(b'{"gameId": "\xff\xfe"}')
    engine = ScoutEngine(
        "evt-401",
        roster=ROSTER,
        gateway=SessionPersistenceGateway(store, clock=clock),
        clock=clock,
    )

    assert engine.resume_session() is False
    assert engine.get_player_state("S. Curry").fatigue_score == 15
