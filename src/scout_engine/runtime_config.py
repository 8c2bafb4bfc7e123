"""Runtime configuration loader (config-first, flag-overrides)."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "runtime.toml"
DEFAULT_LOCAL_OVERRIDE_PATH = Path(__file__).resolve().parents[2] / "config" / "runtime.local.toml"

SESSION_STORE_BACKENDS: tuple[str, ...] = ("memory", "file", "http")


@dataclass(frozen=True)
class RuntimeConfig:
    """Materialized runtime configuration."""

    config_path: Path
    sessions_dir: Path
    capture_rate: int
    autosave_interval_s: float
    stale_after_hours: float
    notification_cooldown_s: float
    session_store_backend: str
    session_store_base_url: str
    session_store_table: str
    session_store_timeout_s: float
    session_store_key_files: tuple[str, ...]

    def with_overrides(
        self,
        *,
        sessions_dir: Path | None = None,
        session_store_backend: str | None = None,
    ) -> RuntimeConfig:
        """Return copy with explicit CLI overrides applied."""
        backend = self.session_store_backend
        if session_store_backend is not None:
            backend = _as_backend(session_store_backend, default=self.session_store_backend)
        return replace(
            self,
            sessions_dir=sessions_dir or self.sessions_dir,
            session_store_backend=backend,
        )


_CURRENT_RUNTIME_CONFIG: RuntimeConfig | None = None


def set_current_runtime_config(config: RuntimeConfig | None) -> None:
    global _CURRENT_RUNTIME_CONFIG
    _CURRENT_RUNTIME_CONFIG = config


def current_runtime_config() -> RuntimeConfig:
    config = _CURRENT_RUNTIME_CONFIG
    if config is not None:
        return config
    loaded = load_runtime_config()
    set_current_runtime_config(loaded)
    return loaded


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in overlay.items():
        existing = out.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            out[key] = _deep_merge(existing, value)
        else:
            out[key] = value
    return out


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        payload = tomllib.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise RuntimeError(f"failed reading runtime config: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise RuntimeError(f"invalid runtime config TOML: {path}") from exc
    if not isinstance(payload, dict):
        raise RuntimeError(f"runtime config root must be a table: {path}")
    return payload


def _as_table(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise RuntimeError(f"runtime config section [{key}] must be a table")
    return value


def _as_str(value: Any, *, default: str) -> str:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped:
            return stripped
    return default


def _as_int(value: Any, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def _as_float(value: Any, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return default
    return default


def _as_csv_list(values: Any, *, default: tuple[str, ...]) -> tuple[str, ...]:
    if isinstance(values, list):
        cleaned = [str(value).strip() for value in values if str(value).strip()]
        return tuple(cleaned) if cleaned else default
    if isinstance(values, str):
        cleaned = [part.strip() for part in values.split(",") if part.strip()]
        return tuple(cleaned) if cleaned else default
    return default


def _as_backend(value: Any, *, default: str) -> str:
    backend = _as_str(value, default=default).lower()
    if backend not in SESSION_STORE_BACKENDS:
        raise RuntimeError(
            f"unsupported session store backend: {backend} "
            f"(expected one of {','.join(SESSION_STORE_BACKENDS)})"
        )
    return backend


def _resolve_path(raw: Any, *, default: str, base_dir: Path) -> Path:
    value = _as_str(raw, default=default)
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return path


def load_runtime_config(config_path: Path | None = None) -> RuntimeConfig:
    """Load runtime config from `config/runtime.toml` plus optional local override."""
    source = (config_path or DEFAULT_CONFIG_PATH).expanduser().resolve()
    if not source.exists():
        raise RuntimeError(f"runtime config file not found: {source}")

    payload = _read_toml(source)
    if source == DEFAULT_CONFIG_PATH and DEFAULT_LOCAL_OVERRIDE_PATH.exists():
        payload = _deep_merge(payload, _read_toml(DEFAULT_LOCAL_OVERRIDE_PATH))

    paths = _as_table(payload, "paths")
    engine = _as_table(payload, "engine")
    session_store = _as_table(payload, "session_store")
    base_dir = source.parent

    return RuntimeConfig(
        config_path=source,
        sessions_dir=_resolve_path(
            paths.get("sessions_dir"),
            default="data/scout_sessions",
            base_dir=base_dir,
        ),
        capture_rate=_as_int(engine.get("capture_rate"), default=2),
        autosave_interval_s=_as_float(engine.get("autosave_interval_s"), default=10.0),
        stale_after_hours=_as_float(engine.get("stale_after_hours"), default=4.0),
        notification_cooldown_s=_as_float(engine.get("notification_cooldown_s"), default=15.0),
        session_store_backend=_as_backend(session_store.get("backend"), default="file"),
        session_store_base_url=_as_str(session_store.get("base_url"), default=""),
        session_store_table=_as_str(session_store.get("table"), default="scout_sessions"),
        session_store_timeout_s=_as_float(session_store.get("timeout_s"), default=10.0),
        session_store_key_files=_as_csv_list(
            session_store.get("key_files"),
            default=("SCOUT_STORE_KEY.ignore", "SCOUT_STORE_KEY"),
        ),
    )
