"""CLI entrypoint for replaying recorded games and managing stored sessions."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from scout_engine.engine import ScoutEngine
from scout_engine.errors import CLIError, ScoutEngineError
from scout_engine.models import PreGameBaseline, RosterEntry
from scout_engine.runtime_config import (
    SESSION_STORE_BACKENDS,
    current_runtime_config,
    load_runtime_config,
    set_current_runtime_config,
)
from scout_engine.session_store import build_session_store
from scout_engine.settings import Settings
from scout_engine.time_utils import parse_iso_z, utc_now

EVENT_TYPES = ("pbp", "vision", "agent", "edges", "tick", "start", "stop")


class ReplayClock:
    """Clock that follows event timestamps during replay."""

    def __init__(self) -> None:
        self.now: datetime = utc_now()

    def __call__(self) -> datetime:
        return self.now

    def advance_to(self, raw: Any) -> None:
        if not isinstance(raw, str):
            return
        parsed = parse_iso_z(raw)
        if parsed is not None:
            self.now = parsed


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise CLIError(f"failed reading {path}: {exc}") from exc
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CLIError(f"invalid JSON in {path}: {exc}") from exc


def _read_events(path: Path) -> list[dict[str, Any]]:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise CLIError(f"failed reading {path}: {exc}") from exc
    events: list[dict[str, Any]] = []
    for line_no, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            row = json.loads(line)
        except json.JSONDecodeError as exc:
            raise CLIError(f"{path}:{line_no}: invalid JSON: {exc}") from exc
        if not isinstance(row, dict) or row.get("type") not in EVENT_TYPES:
            raise CLIError(f"{path}:{line_no}: event must have type in {','.join(EVENT_TYPES)}")
        events.append(row)
    return events


def _parse_game_context(
    payload: Any,
) -> tuple[dict[str, str], list[RosterEntry], list[PreGameBaseline]]:
    if not isinstance(payload, dict):
        raise CLIError("game context must be a JSON object")
    home_team = str(payload.get("homeTeam", ""))
    away_team = str(payload.get("awayTeam", ""))
    roster: list[RosterEntry] = []
    for key, team in (("homeRoster", home_team), ("awayRoster", away_team)):
        rows = payload.get(key, [])
        if not isinstance(rows, list):
            raise CLIError(f"{key} must be a list")
        roster.extend(
            RosterEntry.from_dict(row, team=team) for row in rows if isinstance(row, dict)
        )
    baselines = [
        PreGameBaseline.from_dict(row)
        for row in payload.get("preGameBaselines", []) or []
        if isinstance(row, dict)
    ]
    meta = {
        "game_id": str(payload.get("eventId", "")),
        "home_team": home_team,
        "away_team": away_team,
    }
    return meta, roster, baselines


def _settings_for(args: argparse.Namespace) -> Settings:
    runtime = current_runtime_config().with_overrides(
        sessions_dir=Path(args.sessions_dir).expanduser() if args.sessions_dir else None,
        session_store_backend=args.store,
    )
    set_current_runtime_config(runtime)
    return Settings.from_runtime()


def _summary(engine: ScoutEngine, *, limit: int) -> dict[str, Any]:
    return {
        "game_id": engine.game_id,
        "game_time": engine.current_game_time,
        "score": engine.current_score,
        "frames_processed": engine.frames_processed,
        "analysis_count": engine.analysis_count,
        "commercial_skip_count": engine.commercial_skip_count,
        "halftime_locked": engine.is_halftime_locked(),
        "halftime_recommendations": [
            item.to_dict() for item in engine.get_halftime_recommendations()
        ],
        "top_edges": [edge.to_dict() for edge in engine.get_top_edges(limit)],
        "fatigued_players": [
            {
                "player": player.player_name,
                "fatigue_score": player.fatigue_score,
                "fatigue_slope": round(player.fatigue_slope, 2),
            }
            for player in engine.get_fatigued_players()
        ],
    }


def _print_summary_text(summary: dict[str, Any]) -> None:
    print(f"game={summary['game_id']} time={summary['game_time']} score={summary['score']}")
    print(
        "frames={} analyses={} skipped={}".format(
            summary["frames_processed"],
            summary["analysis_count"],
            summary["commercial_skip_count"],
        )
    )
    print(f"halftime_locked={summary['halftime_locked']}")
    for item in summary["halftime_recommendations"]:
        print(
            "  LOCK {player} {prop} {lean} {line} conf={confidence}".format(
                player=item["player"],
                prop=item["prop"],
                lean=item["lean"],
                line=item["line"],
                confidence=item["confidence"],
            )
        )
    for edge in summary["top_edges"]:
        print(
            "  EDGE {player} {prop} {lean} {line} conf={confidence} trend={trend}".format(
                player=edge["player"],
                prop=edge["prop"],
                lean=edge["lean"],
                line=edge["line"],
                confidence=edge["confidence"],
                trend=edge["trend"],
            )
        )


def _cmd_replay(args: argparse.Namespace) -> int:
    meta, roster, baselines = _parse_game_context(_read_json(Path(args.game)))
    game_id = args.game_id or meta["game_id"]
    if not game_id:
        raise CLIError("game id is required (--game-id or eventId in the game file)")
    events = _read_events(Path(args.events))
    settings = _settings_for(args)
    clock = ReplayClock()
    if events:
        clock.advance_to(events[0].get("at"))
    engine = ScoutEngine.from_settings(
        game_id,
        settings,
        home_team=meta["home_team"],
        away_team=meta["away_team"],
        roster=roster,
        baselines=baselines,
        clock=clock,
    )
    if args.resume:
        engine.resume_session()
    engine.start()

    alerts: list[dict[str, Any]] = []
    for event in events:
        clock.advance_to(event.get("at"))
        kind = event["type"]
        payload = event.get("payload")
        if kind == "pbp" and isinstance(payload, dict):
            engine.ingest_pbp(payload)
        elif kind == "vision" and isinstance(payload, list):
            engine.ingest_vision_batch(payload)
        elif kind == "edges" and isinstance(payload, list):
            engine.merge_prop_edges(payload)
        elif kind == "agent" and isinstance(payload, dict):
            alert = engine.process_agent_response(payload)
            if alert is not None:
                alerts.append({"player": alert.player, "prop": alert.prop, "lean": alert.lean})
        elif kind == "start":
            engine.start()
        elif kind == "stop":
            engine.stop()
        engine.tick()
    engine.stop()

    summary = _summary(engine, limit=int(args.top))
    summary["alerts"] = alerts
    if args.json_output:
        print(json.dumps(summary, sort_keys=True, indent=2))
    else:
        _print_summary_text(summary)
    return 0


def _cmd_session_show(args: argparse.Namespace) -> int:
    store = build_session_store(_settings_for(args))
    payload = store.get(args.game_id)
    if payload is None:
        print(f"no stored session for {args.game_id}", file=sys.stderr)
        return 1
    print(json.dumps(payload, sort_keys=True, indent=2))
    return 0


def _cmd_session_clear(args: argparse.Namespace) -> int:
    store = build_session_store(_settings_for(args))
    store.delete(args.game_id)
    print(f"cleared session {args.game_id}")
    return 0


def _add_store_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--store", choices=SESSION_STORE_BACKENDS, default=None)
    parser.add_argument("--sessions-dir", default="")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scout-engine")
    parser.add_argument("--config", default="", help="Path to runtime.toml")
    parser.add_argument("--log-level", default="WARNING")
    subparsers = parser.add_subparsers(dest="command")

    replay = subparsers.add_parser("replay", help="Replay recorded inputs through an engine")
    replay.set_defaults(func=_cmd_replay)
    replay.add_argument("--game", required=True, help="Game context JSON (rosters, baselines)")
    replay.add_argument("--events", required=True, help="JSONL of timestamped inputs")
    replay.add_argument("--game-id", default="")
    replay.add_argument("--resume", action="store_true")
    replay.add_argument("--top", type=int, default=5)
    replay.add_argument("--json", dest="json_output", action="store_true")
    _add_store_args(replay)

    session = subparsers.add_parser("session", help="Inspect or delete stored sessions")
    session_sub = session.add_subparsers(dest="session_command")
    show = session_sub.add_parser("show")
    show.set_defaults(func=_cmd_session_show)
    show.add_argument("--game-id", required=True)
    _add_store_args(show)
    clear = session_sub.add_parser("clear")
    clear.set_defaults(func=_cmd_session_clear)
    clear.add_argument("--game-id", required=True)
    _add_store_args(clear)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    func = getattr(args, "func", None)
    if func is None:
        parser.print_help()
        return 0
    try:
        if args.config:
            set_current_runtime_config(load_runtime_config(Path(args.config)))
        return int(func(args))
    except (CLIError, ScoutEngineError, RuntimeError, FileNotFoundError, ValueError) as exc:
        print(str(exc), file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
