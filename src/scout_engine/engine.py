"""Engine façade: lifecycle, serialized ingestion, read-only queries, persistence."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta
from typing import Any

from scout_engine.contracts import (
    AgentResponsePayload,
    PBPSnapshotPayload,
    PropEdgePayload,
    VisionSignalPayload,
)
from scout_engine.fatigue_trend import FatigueTrendTracker
from scout_engine.fusion import apply_batch
from scout_engine.halftime_lock import (
    HalftimeLockMachine,
    crosses_into_second_half,
    supplied_recommendations,
)
from scout_engine.models import (
    HalftimeLockedProp,
    PBPSnapshot,
    PlayerLiveState,
    PreGameBaseline,
    PropAlert,
    PropEdge,
    RosterEntry,
    SceneClassification,
    VisionSignal,
)
from scout_engine.player_state import PlayerStateStore
from scout_engine.prop_ledger import PropEdgeLedger
from scout_engine.session_store import (
    SessionPersistenceGateway,
    SessionSnapshot,
    build_session_store,
)
from scout_engine.settings import Settings
from scout_engine.time_utils import utc_now
from scout_engine.util.parsing import clamp, safe_float

logger = logging.getLogger(__name__)

MIN_CAPTURE_RATE = 1
MAX_CAPTURE_RATE = 5
SCENE_HISTORY_LIMIT = 50
UNKNOWN_CLOCK = "Unknown"
HALFTIME_CLOCK = "Halftime"

_PARTIAL_UPDATE_FIELDS = {
    "fatigueScore": "fatigue_score",
    "effortScore": "effort_score",
    "speedIndex": "speed_index",
    "reboundPositionScore": "rebound_position_score",
}


def _coerce_signals(signals: Iterable[VisionSignal | VisionSignalPayload]) -> list[VisionSignal]:
    parsed: list[VisionSignal] = []
    for signal in signals:
        if isinstance(signal, VisionSignal):
            parsed.append(signal)
        elif isinstance(signal, dict):
            item = VisionSignal.from_dict(signal)
            if item is not None:
                parsed.append(item)
    return parsed


def _coerce_edges(edges: Iterable[PropEdge | PropEdgePayload]) -> list[PropEdge]:
    parsed: list[PropEdge] = []
    for edge in edges:
        if isinstance(edge, PropEdge):
            parsed.append(edge)
        elif isinstance(edge, dict):
            item = PropEdge.from_dict(edge)
            if item is not None:
                parsed.append(item)
    return parsed


class ScoutEngine:
    """Live model for one monitored game.

    Inputs are applied one at a time through the ingestion methods; the
    periodic save in `tick` only reads the model.
    """

    def __init__(
        self,
        game_id: str,
        *,
        home_team: str = "",
        away_team: str = "",
        roster: Sequence[RosterEntry] = (),
        baselines: Sequence[PreGameBaseline] = (),
        gateway: SessionPersistenceGateway | None = None,
        capture_rate: int = 2,
        autosave_interval: timedelta = timedelta(seconds=10),
        notification_cooldown: timedelta = timedelta(seconds=15),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.game_id = game_id
        self.home_team = home_team
        self.away_team = away_team
        self.roster = tuple(roster)
        self.baselines = tuple(baselines)
        self.gateway = gateway
        self.autosave_interval = autosave_interval
        self.notification_cooldown = notification_cooldown
        self._clock = clock

        self.is_running = False
        self.is_paused = False
        self.capture_rate = int(clamp(capture_rate, MIN_CAPTURE_RATE, MAX_CAPTURE_RATE))

        self.players = PlayerStateStore()
        self.fatigue = FatigueTrendTracker()
        self.ledger = PropEdgeLedger()
        self.halftime = HalftimeLockMachine()
        self._notification_cooldowns: dict[tuple[str, str], datetime] = {}
        self._last_save_at: datetime | None = None
        self._reset_game_fields()
        self.initialize_roster()

    @classmethod
    def from_settings(
        cls,
        game_id: str,
        settings: Settings,
        *,
        home_team: str = "",
        away_team: str = "",
        roster: Sequence[RosterEntry] = (),
        baselines: Sequence[PreGameBaseline] = (),
        clock: Callable[[], datetime] = utc_now,
    ) -> ScoutEngine:
        gateway = SessionPersistenceGateway(
            build_session_store(settings),
            stale_after=timedelta(hours=settings.stale_after_hours),
            clock=clock,
        )
        return cls(
            game_id,
            home_team=home_team,
            away_team=away_team,
            roster=roster,
            baselines=baselines,
            gateway=gateway,
            capture_rate=settings.capture_rate,
            autosave_interval=timedelta(seconds=settings.autosave_interval_s),
            notification_cooldown=timedelta(seconds=settings.notification_cooldown_s),
            clock=clock,
        )

    def _reset_game_fields(self) -> None:
        self.pbp_data: PBPSnapshot | None = None
        self.last_period: int | None = None
        self.current_game_time: str | None = None
        self.current_score: str | None = None
        self.frames_processed = 0
        self.analysis_count = 0
        self.commercial_skip_count = 0
        self.last_analysis_time: datetime | None = None
        self.scene_history: deque[SceneClassification] = deque(maxlen=SCENE_HISTORY_LIMIT)

    def initialize_roster(self) -> int:
        """Build fresh player records from the roster and seed fatigue history."""
        now = self._clock()
        self.fatigue.clear()
        for player in self.players.initialize(self.roster, self.baselines):
            self.fatigue.seed(player.player_name, player.fatigue_score, now)
        logger.info("initialized %d players for %s", len(self.players), self.game_id)
        return len(self.players)

    # Lifecycle

    def start(self) -> None:
        self.is_running = True
        self.is_paused = False
        logger.info("scout engine started for %s", self.game_id)

    def stop(self) -> None:
        was_running = self.is_running
        self.is_running = False
        self.is_paused = False
        logger.info(
            "scout engine stopped for %s after %d frames, %d analyses",
            self.game_id,
            self.frames_processed,
            self.analysis_count,
        )
        if was_running:
            self.save()

    def pause(self) -> None:
        self.is_paused = True

    def resume(self) -> None:
        self.is_paused = False

    def set_capture_rate(self, rate: float) -> int:
        self.capture_rate = int(clamp(rate, MIN_CAPTURE_RATE, MAX_CAPTURE_RATE))
        return self.capture_rate

    def reset_session(self) -> None:
        """Discard all live state and rebuild the roster from scratch."""
        self.halftime.reset()
        self.ledger.clear()
        self._notification_cooldowns.clear()
        self._last_save_at = None
        self._reset_game_fields()
        self.initialize_roster()

    # Ingestion

    def ingest_vision_batch(
        self,
        signals: Iterable[VisionSignal | VisionSignalPayload],
        *,
        game_clock: str | None = None,
    ) -> int:
        """Fuse a batch of vision observations; returns how many were applied."""
        clock_label = game_clock or self.current_game_time or UNKNOWN_CLOCK
        return apply_batch(
            self.players,
            _coerce_signals(signals),
            tracker=self.fatigue,
            game_clock=clock_label,
            at=self._clock(),
        )

    def merge_prop_edges(self, candidates: Iterable[PropEdge | PropEdgePayload]) -> list[PropEdge]:
        return self.ledger.merge_all(_coerce_edges(candidates))

    def ingest_pbp(self, snapshot: PBPSnapshot | PBPSnapshotPayload) -> bool:
        """Apply a play-by-play snapshot; returns True if it engaged the halftime lock."""
        if isinstance(snapshot, dict):
            snapshot = PBPSnapshot.from_dict(snapshot)
        self.players.apply_pbp(snapshot)
        self.pbp_data = snapshot
        if snapshot.game_time:
            self.current_game_time = snapshot.game_time
        self.current_score = snapshot.score_line

        previous_period = self.last_period
        if snapshot.period > 0:
            self.last_period = snapshot.period
        if snapshot.is_halftime or crosses_into_second_half(previous_period, snapshot.period):
            return self._engage_lock(snapshot.game_time or HALFTIME_CLOCK)
        return False

    def process_agent_response(self, response: AgentResponsePayload) -> PropAlert | None:
        """Apply one frame analysis; returns an alert if one clears the cooldown."""
        scene = SceneClassification.from_dict(response.get("sceneClassification"))
        self.scene_history.appendleft(scene)
        self.frames_processed += 1
        if scene.is_analysis_worthy:
            self.analysis_count += 1
        else:
            self.commercial_skip_count += 1
        self.last_analysis_time = self._clock()

        game_time = response.get("gameTime")
        if isinstance(game_time, str) and game_time.strip():
            self.current_game_time = game_time.strip()
        score = response.get("score")
        if isinstance(score, str) and score.strip():
            self.current_score = score.strip()

        updates = response.get("updatedPlayerStates")
        if isinstance(updates, dict):
            self._apply_partial_updates(updates)

        signals = response.get("visionSignals")
        if isinstance(signals, list):
            self.ingest_vision_batch(signals)

        edges = response.get("propEdges")
        if isinstance(edges, list):
            self.merge_prop_edges(edges)

        if response.get("isHalftime") is True and not self.halftime.is_locked:
            raw_recs = response.get("halftimeRecommendations")
            supplied = supplied_recommendations(raw_recs) if isinstance(raw_recs, list) else []
            self._engage_lock(self.current_game_time or HALFTIME_CLOCK, supplied=supplied)

        if response.get("shouldNotify") is True:
            alert = PropAlert.from_dict(response.get("notification"))
            if alert is not None and self._notification_allowed(alert):
                return alert
        return None

    def _apply_partial_updates(self, updates: dict[str, Any]) -> None:
        now = self._clock()
        for name, fields_in in updates.items():
            player = self.players.get(name) if isinstance(name, str) else None
            if player is None or not isinstance(fields_in, dict):
                continue
            for wire_name, attr in _PARTIAL_UPDATE_FIELDS.items():
                value = safe_float(fields_in.get(wire_name))
                if value is not None:
                    setattr(player, attr, clamp(value))
            if safe_float(fields_in.get("fatigueScore")) is not None:
                player.fatigue_slope = self.fatigue.record(name, player.fatigue_score, now)

    def _engage_lock(
        self, lock_time: str, *, supplied: Sequence[HalftimeLockedProp] | None = None
    ) -> bool:
        return self.halftime.lock(
            self.players,
            self.ledger,
            lock_time=lock_time,
            at=self._clock(),
            supplied=supplied,
        )

    def _notification_allowed(self, alert: PropAlert) -> bool:
        now = self._clock()
        key = (alert.player, alert.prop)
        last = self._notification_cooldowns.get(key)
        if last is not None and now - last <= self.notification_cooldown:
            return False
        self._notification_cooldowns[key] = now
        return True

    # Queries

    def get_player_state(self, name: str) -> PlayerLiveState | None:
        return self.players.get(name)

    def get_top_edges(self, limit: int = 5) -> list[PropEdge]:
        return self.ledger.top_edges(limit)

    def get_fatigued_players(self, threshold: float = 30) -> list[PlayerLiveState]:
        fatigued = [
            player
            for player in self.players
            if player.fatigue_score >= threshold
            and (player.on_court or player.minutes_estimate > 0)
        ]
        return sorted(fatigued, key=lambda player: player.fatigue_score, reverse=True)

    def get_halftime_recommendations(self) -> list[HalftimeLockedProp]:
        return self.halftime.recommendations()

    def is_halftime_locked(self) -> bool:
        return self.halftime.is_locked

    def get_state_for_api(self) -> dict[str, dict[str, Any]]:
        return self.players.to_dict()

    # Persistence

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            game_id=self.game_id,
            last_updated=self._clock(),
            player_states=self.players.to_dict(),
            prop_edges=self.ledger.to_list(),
            halftime_lock=self.halftime.to_dict(),
            pbp_data=self.pbp_data.to_dict() if self.pbp_data else None,
            last_period=self.last_period,
            current_game_time=self.current_game_time,
            current_score=self.current_score,
            frames_processed=self.frames_processed,
            analysis_count=self.analysis_count,
            commercial_skip_count=self.commercial_skip_count,
        )

    def save(self) -> bool:
        if self.gateway is None:
            return False
        saved = self.gateway.save(self.snapshot())
        if saved:
            self._last_save_at = self._clock()
        return saved

    def autosave_due(self) -> bool:
        if self.gateway is None or not self.is_running or self.analysis_count < 1:
            return False
        if self._last_save_at is None:
            return True
        return self._clock() - self._last_save_at >= self.autosave_interval

    def tick(self) -> bool:
        """Host timer hook; saves when the autosave interval has elapsed."""
        if not self.autosave_due():
            return False
        return self.save()

    def restore(self, snapshot: SessionSnapshot) -> None:
        now = self._clock()
        self.players.restore(snapshot.player_states)
        if len(self.players) == 0:
            self.initialize_roster()
        self.fatigue.clear()
        for player in self.players:
            self.fatigue.seed(player.player_name, player.fatigue_score, now)
        self.ledger.restore(snapshot.prop_edges)
        self.halftime.restore(snapshot.halftime_lock)
        self.pbp_data = PBPSnapshot.from_dict(snapshot.pbp_data) if snapshot.pbp_data else None
        self.last_period = snapshot.last_period
        self.current_game_time = snapshot.current_game_time
        self.current_score = snapshot.current_score
        self.frames_processed = snapshot.frames_processed
        self.analysis_count = snapshot.analysis_count
        self.commercial_skip_count = snapshot.commercial_skip_count

    def resume_session(self) -> bool:
        """Restore from the stored snapshot if it is fresh; otherwise keep fresh state."""
        if self.gateway is None:
            return False
        snapshot = self.gateway.load(self.game_id)
        if snapshot is None:
            return False
        self.restore(snapshot)
        logger.info(
            "restored session %s (%d players, %d edges, locked=%s)",
            self.game_id,
            len(self.players),
            len(self.ledger),
            self.halftime.is_locked,
        )
        return True

    def clear_session(self) -> bool:
        """Delete the stored snapshot and reinitialize from the roster."""
        cleared = self.gateway.clear(self.game_id) if self.gateway is not None else False
        self.reset_session()
        return cleared
