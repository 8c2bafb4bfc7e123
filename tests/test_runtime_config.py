from __future__ import annotations

from pathlib import Path

import pytest

from scout_engine.runtime_config import DEFAULT_CONFIG_PATH, load_runtime_config


def test_load_runtime_config_resolves_relative_paths(tmp_path: Path) -> None:
    config_path = tmp_path / "runtime.toml"
    config_path.write_text(
        "\n".join(
            [
                "[paths]",
                'sessions_dir = "state/sessions"',
                "",
                "[engine]",
                "capture_rate = 4",
                "autosave_interval_s = 30",
                'stale_after_hours = "2.5"',
                "",
                "[session_store]",
                'backend = "HTTP"',
                'base_url = "https://kv.example.test"',
                'key_files = "a.key, b.key"',
            ]
        )
        + "\n",
        encoding="utf-8",
    )

    config = load_runtime_config(config_path)

    assert config.sessions_dir == (tmp_path / "state" / "sessions").resolve()
    assert config.capture_rate == 4
    assert config.autosave_interval_s == 30.0
    assert config.stale_after_hours == 2.5
    assert config.notification_cooldown_s == 15.0
    assert config.session_store_backend == "http"
    assert config.session_store_base_url == "https://kv.example.test"
    assert config.session_store_table == "scout_sessions"
    assert config.session_store_key_files == ("a.key", "b.key")


def test_load_runtime_config_defaults_for_missing_sections(tmp_path: Path) -> None:
    config_path = tmp_path / "runtime.toml"
    config_path.write_text("", encoding="utf-8")

    config = load_runtime_config(config_path)

    assert config.sessions_dir == (tmp_path / "data" / "scout_sessions").resolve()
    assert config.capture_rate == 2
    assert config.session_store_backend == "file"
    assert config.session_store_timeout_s == 10.0


def test_load_runtime_config_rejects_unknown_backend(tmp_path: Path) -> None:
    config_path = tmp_path / "runtime.toml"
    config_path.write_text('[session_store]\nbackend = "redis"\n', encoding="utf-8")

    with pytest.raises(RuntimeError, match="unsupported session store backend"):
        load_runtime_config(config_path)


def test_load_runtime_config_rejects_invalid_toml(tmp_path: Path) -> None:
    config_path = tmp_path / "runtime.toml"
    config_path.write_text("[engine\n", encoding="utf-8")

    with pytest.raises(RuntimeError, match="invalid runtime config TOML"):
        load_runtime_config(config_path)


def test_load_runtime_config_missing_file(tmp_path: Path) -> None:
    with pytest.raises(RuntimeError, match="not found"):
        load_runtime_config(tmp_path / "absent.toml")


def test_with_overrides_replaces_store_and_dir(tmp_path: Path) -> None:
    config = load_runtime_config(DEFAULT_CONFIG_PATH)

    updated = config.with_overrides(sessions_dir=tmp_path, session_store_backend="memory")

    assert updated.sessions_dir == tmp_path
    assert updated.session_store_backend == "memory"
    assert config.with_overrides().session_store_backend == config.session_store_backend
    with pytest.raises(RuntimeError):
        config.with_overrides(session_store_backend="ftp")
