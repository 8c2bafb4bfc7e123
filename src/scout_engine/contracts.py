"""Typed contracts for wire payloads exchanged with the vision and play-by-play collaborators.

All payloads use camelCase keys; parsing into the engine's dataclasses is
tolerant (missing or malformed numeric fields fall back to defaults).
"""

from __future__ import annotations

from typing import Any, TypedDict


class VisionSignalPayload(TypedDict, total=False):
    player: str
    jersey: str
    signalType: str
    value: float
    observation: str
    confidence: str


class PBPPlayerPayload(TypedDict, total=False):
    playerId: str
    playerName: str
    team: str
    position: str
    minutes: float
    points: int
    rebounds: int
    assists: int
    steals: int
    blocks: int
    fouls: int
    turnovers: int
    fga: int
    fta: int
    threePm: int


class PBPSnapshotPayload(TypedDict, total=False):
    gameTime: str
    period: int
    clock: str
    homeScore: int
    awayScore: int
    homeTeam: str
    awayTeam: str
    isHalftime: bool
    isGameOver: bool
    players: list[PBPPlayerPayload]


class PreGameBaselinePayload(TypedDict, total=False):
    playerName: str
    fatigueScore: float
    effortScore: float
    speedIndex: float
    minutesEstimate: float
    trend: str
    consistency: float
    role: str


class RosterEntryPayload(TypedDict, total=False):
    name: str
    jersey: str
    position: str
    role: str


class SceneClassificationPayload(TypedDict, total=False):
    sceneType: str
    isAnalysisWorthy: bool
    confidence: str
    gameTime: str | None
    score: str | None
    reason: str


class PropEdgePayload(TypedDict, total=False):
    player: str
    prop: str
    line: float
    lean: str
    confidence: float
    expectedFinal: float
    drivers: list[str]
    riskFlags: list[str]
    trend: str
    gameTime: str
    currentStat: float
    bookmaker: str
    overPrice: int
    underPrice: int


class HalftimeLockedPropPayload(TypedDict, total=False):
    mode: str
    player: str
    prop: str
    line: float
    lean: str
    confidence: float
    expectedFinal: float
    drivers: list[str]
    riskFlags: list[str]
    lockTime: str
    firstHalfStats: dict[str, int]


class AgentResponsePayload(TypedDict, total=False):
    """Result of one frame analysis by the vision-inference collaborator."""

    sceneClassification: SceneClassificationPayload
    updatedPlayerStates: dict[str, dict[str, Any]]
    visionSignals: list[VisionSignalPayload]
    propEdges: list[PropEdgePayload]
    gameTime: str
    score: str
    shouldNotify: bool
    notification: dict[str, Any]
    isHalftime: bool
    halftimeRecommendations: list[HalftimeLockedPropPayload]


class SessionSnapshotPayload(TypedDict, total=False):
    """Persisted session record keyed by game id."""

    schemaVersion: int
    gameId: str
    lastUpdatedUtc: str
    playerStates: dict[str, dict[str, Any]]
    propEdges: list[PropEdgePayload]
    halftimeLock: dict[str, Any]
    pbpData: PBPSnapshotPayload | None
    lastPeriod: int | None
    currentGameTime: str | None
    currentScore: str | None
    framesProcessed: int
    analysisCount: int
    commercialSkipCount: int
