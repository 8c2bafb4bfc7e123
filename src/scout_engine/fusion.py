"""Signal fusion: apply one classified vision observation to player state."""

from __future__ import annotations

import re
from datetime import datetime

from scout_engine.fatigue_trend import FatigueTrendTracker
from scout_engine.models import SIGNAL_TYPES, PlayerLiveState, VisionSignal
from scout_engine.player_state import PlayerStateStore
from scout_engine.util.parsing import clamp

MAX_VISUAL_FLAGS = 5
SPRINT_FATIGUE_BUMP = 4.0

HANDS_ON_KNEES_RE = re.compile(r"hands[\s_-]+on[\s_-]+knees", re.IGNORECASE)
SPRINT_RE = re.compile(r"sprint", re.IGNORECASE)
SLOW_RECOVERY_RE = re.compile(r"slow[\s_-]+(recovery|to[\s_-]+recover)", re.IGNORECASE)


def _append_flag(player: PlayerLiveState, note: str) -> None:
    if not note:
        return
    player.visual_flags = [*player.visual_flags, note][-MAX_VISUAL_FLAGS:]


def _bump_fatigue(
    player: PlayerLiveState, delta: float, *, tracker: FatigueTrendTracker, at: datetime
) -> None:
    player.fatigue_score = clamp(player.fatigue_score + delta)
    player.fatigue_slope = tracker.record(player.player_name, player.fatigue_score, at)


def apply_signal(
    store: PlayerStateStore,
    signal: VisionSignal,
    *,
    tracker: FatigueTrendTracker,
    game_clock: str,
    at: datetime,
) -> bool:
    """Fuse one observation into the targeted player's state.

    Observations for players outside the roster, or with an unrecognized
    signal type, are dropped. Returns True when a player was updated.
    """
    player = store.get(signal.player)
    if player is None or signal.signal_type not in SIGNAL_TYPES:
        return False

    kind = signal.signal_type
    if kind == "fatigue":
        _bump_fatigue(player, signal.value, tracker=tracker, at=at)
        _append_flag(player, signal.observation)
        if HANDS_ON_KNEES_RE.search(signal.observation):
            player.hands_on_knees_count += 1
        if SLOW_RECOVERY_RE.search(signal.observation):
            player.slow_recovery_count += 1
    elif kind == "effort":
        player.effort_score = clamp(player.effort_score + signal.value)
        # Sprinting feeds fatigue regardless of the channel it was reported on.
        if SPRINT_RE.search(signal.observation):
            player.sprint_count += 1
            _bump_fatigue(player, SPRINT_FATIGUE_BUMP, tracker=tracker, at=at)
    elif kind == "speed":
        player.speed_index = clamp(player.speed_index + signal.value)
    else:
        player.rebound_position_score = clamp(player.rebound_position_score + signal.value)

    player.last_updated = game_clock
    return True


def apply_batch(
    store: PlayerStateStore,
    signals: list[VisionSignal],
    *,
    tracker: FatigueTrendTracker,
    game_clock: str,
    at: datetime,
) -> int:
    applied = 0
    for signal in signals:
        if apply_signal(store, signal, tracker=tracker, game_clock=game_clock, at=at):
            applied += 1
    return applied
