"""Live-game scouting engine: player state fusion, prop edges, halftime lock."""

__version__ = "0.1.0"
