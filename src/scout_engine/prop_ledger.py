"""Prop edge ledger with exponential confidence smoothing."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from scout_engine.models import PropEdge, TrendDirection
from scout_engine.util.parsing import round_half_up

PRIOR_WEIGHT = 0.3
CANDIDATE_WEIGHT = 0.7
TOP_EDGE_MIN_CONFIDENCE = 50


def smooth_confidence(prior: float, candidate: float) -> int:
    return round_half_up(prior * PRIOR_WEIGHT + candidate * CANDIDATE_WEIGHT)


def classify_trend(existing: PropEdge, candidate: PropEdge) -> TrendDirection:
    """Compare a candidate against the stored edge.

    A flipped lean is always `stable`: a reversal invalidates the comparison.
    """
    if existing.lean != candidate.lean:
        return "stable"
    if candidate.confidence > existing.confidence:
        return "strengthening"
    if candidate.confidence < existing.confidence:
        return "weakening"
    return "stable"


class PropEdgeLedger:
    """Insertion-ordered collection of edges keyed by (player, prop)."""

    def __init__(self) -> None:
        self._edges: dict[tuple[str, str], PropEdge] = {}

    def __len__(self) -> int:
        return len(self._edges)

    def __iter__(self):
        return iter(self._edges.values())

    def get(self, player: str, prop: str) -> PropEdge | None:
        return self._edges.get((player, prop))

    def edges_for(self, player: str) -> list[PropEdge]:
        return [edge for edge in self._edges.values() if edge.player == player]

    def merge_candidate(self, candidate: PropEdge) -> PropEdge:
        existing = self._edges.get(candidate.key)
        if existing is None:
            merged = replace(candidate)
        else:
            merged = replace(
                candidate,
                confidence=smooth_confidence(existing.confidence, candidate.confidence),
                trend=classify_trend(existing, candidate),
            )
        self._edges[candidate.key] = merged
        return merged

    def merge_all(self, candidates: Iterable[PropEdge]) -> list[PropEdge]:
        return [self.merge_candidate(candidate) for candidate in candidates]

    def top_edges(self, limit: int = 5) -> list[PropEdge]:
        qualifying = [
            edge for edge in self._edges.values() if edge.confidence >= TOP_EDGE_MIN_CONFIDENCE
        ]
        # sorted() is stable, so ties keep insertion order.
        ranked = sorted(qualifying, key=lambda edge: edge.confidence, reverse=True)
        return ranked[: max(0, int(limit))]

    def to_list(self) -> list[dict[str, Any]]:
        return [edge.to_dict() for edge in self._edges.values()]

    def restore(self, rows: Iterable[Any]) -> None:
        self._edges = {}
        for row in rows:
            if not isinstance(row, dict):
                continue
            edge = PropEdge.from_dict(row)
            if edge is not None:
                self._edges[edge.key] = edge

    def clear(self) -> None:
        self._edges.clear()
