from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path

import pytest

from scout_engine.cli import main
from scout_engine.runtime_config import set_current_runtime_config
from scout_engine.session_store import JsonFileSessionStore


@pytest.fixture(autouse=True)
def _reset_runtime_config() -> Iterator[None]:
    set_current_runtime_config(None)
    yield
    set_current_runtime_config(None)


def _write_inputs(tmp_path: Path) -> tuple[Path, Path]:
    game = tmp_path / "game.json"
    game.write_text(
        json.dumps(
            {
                "eventId": "evt-9",
                "homeTeam": "GSW",
                "awayTeam": "LAL",
                "homeRoster": [
                    {"name": "S. Curry", "jersey": "30", "position": "PG", "role": "PRIMARY"}
                ],
                "awayRoster": [{"name": "A. Davis", "jersey": "3", "position": "C"}],
                "preGameBaselines": [{"playerName": "A. Davis", "minutesEstimate": 34}],
            }
        ),
        encoding="utf-8",
    )
    fatigue = {"player": "S. Curry", "signalType": "fatigue", "value": 10, "observation": ""}
    rows = [
        {"type": "vision", "at": "2026-03-01T01:00:00Z", "payload": [fatigue]},
        {"type": "vision", "at": "2026-03-01T01:01:00Z", "payload": [fatigue]},
        {"type": "vision", "at": "2026-03-01T01:02:00Z", "payload": [fatigue]},
        {
            "type": "edges",
            "at": "2026-03-01T01:03:00Z",
            "payload": [
                {
                    "player": "A. Davis",
                    "prop": "Rebounds",
                    "line": 12.5,
                    "lean": "OVER",
                    "confidence": 68,
                }
            ],
        },
        {
            "type": "agent",
            "at": "2026-03-01T01:04:00Z",
            "payload": {"sceneClassification": {"sceneType": "live", "isAnalysisWorthy": True}},
        },
        {
            "type": "pbp",
            "at": "2026-03-01T01:05:00Z",
            "payload": {"gameTime": "Q2 0:30", "period": 2},
        },
        {"type": "pbp", "at": "2026-03-01T01:20:00Z", "payload": {"period": 3}},
    ]
    events = tmp_path / "events.jsonl"
    events.write_text("\n".join(json.dumps(row) for row in rows) + "\n", encoding="utf-8")
    return game, events


def test_cli_without_command_prints_help(capsys: pytest.CaptureFixture[str]) -> None:
    code = main([])

    assert code == 0
    assert "scout-engine" in capsys.readouterr().out


def test_cli_replay_then_session_show_and_clear(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    game, events = _write_inputs(tmp_path)
    sessions = tmp_path / "sessions"
    store_args = ["--store", "file", "--sessions-dir", str(sessions)]

    code = main(["replay", "--game", str(game), "--events", str(events), "--json", *store_args])

    assert code == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["game_id"] == "evt-9"
    assert summary["halftime_locked"] is True
    assert summary["analysis_count"] == 1
    locks = {(item["player"], item["prop"]) for item in summary["halftime_recommendations"]}
    assert ("S. Curry", "Points") in locks
    assert summary["top_edges"][0]["player"] == "A. Davis"
    assert summary["fatigued_players"][0]["player"] == "S. Curry"
    assert JsonFileSessionStore(sessions).path_for("evt-9").exists()

    assert main(["session", "show", "--game-id", "evt-9", *store_args]) == 0
    assert json.loads(capsys.readouterr().out)["gameId"] == "evt-9"

    assert main(["session", "clear", "--game-id", "evt-9", *store_args]) == 0
    capsys.readouterr()
    assert main(["session", "show", "--game-id", "evt-9", *store_args]) == 1
    assert "no stored session" in capsys.readouterr().err


def test_cli_replay_text_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    game, events = _write_inputs(tmp_path)

    code = main(
        ["replay", "--game", str(game), "--events", str(events), "--store", "memory", "--top", "1"]
    )

    out = capsys.readouterr().out
    assert code == 0
    assert "game=evt-9" in out
    assert "LOCK S. Curry Points UNDER" in out
    assert "EDGE A. Davis Rebounds OVER 12.5 conf=68" in out


def test_cli_replay_rejects_bad_event_rows(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    game, _ = _write_inputs(tmp_path)
    events = tmp_path / "bad.jsonl"
    events.write_text('{"type": "teleport"}\n', encoding="utf-8")

    code = main(["replay", "--game", str(game), "--events", str(events), "--store", "memory"])

    assert code == 2
    assert "bad.jsonl:1" in capsys.readouterr().err


def test_cli_reports_missing_game_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = main(
        [
            "replay",
            "--game",
            str(tmp_path / "missing.json"),
            "--events",
            str(tmp_path / "missing.jsonl"),
            "--store",
            "memory",
        ]
    )

    assert code == 2
    assert "failed reading" in capsys.readouterr().err


def test_cli_uses_config_flag(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    game, events = _write_inputs(tmp_path)
    config_path = tmp_path / "runtime.toml"
    config_path.write_text(
        '[paths]\nsessions_dir = "from-config"\n\n[session_store]\nbackend = "file"\n',
        encoding="utf-8",
    )

    code = main(
        ["--config", str(config_path), "replay", "--game", str(game), "--events", str(events)]
    )

    assert code == 0
    assert JsonFileSessionStore(tmp_path / "from-config").path_for("evt-9").exists()
