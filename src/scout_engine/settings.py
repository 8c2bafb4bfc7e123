"""Application settings for scout-engine."""

import os
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from scout_engine.runtime_config import current_runtime_config


class Settings(BaseSettings):
    """Runtime settings for the engine and its session store."""

    model_config = SettingsConfigDict(
        env_prefix="SCOUT_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    session_store_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("SCOUT_STORE_KEY", "SCOUT_ENGINE_SESSION_STORE_API_KEY"),
    )
    session_store_backend: str = "file"
    session_store_base_url: str = ""
    session_store_table: str = "scout_sessions"
    session_store_timeout_s: float = 10.0
    sessions_dir: str = "data/scout_sessions"
    capture_rate: int = 2
    autosave_interval_s: float = 10.0
    stale_after_hours: float = 4.0
    notification_cooldown_s: float = 15.0

    @staticmethod
    def _parse_key_file(path: Path, *, allowed_names: set[str]) -> str:
        try:
            raw = path.read_text(encoding="utf-8").strip()
        except OSError:
            return ""
        if not raw:
            return ""
        first_line = raw.splitlines()[0].strip()
        if not first_line:
            return ""
        if "=" in first_line:
            key_name, value = first_line.split("=", 1)
            if key_name.strip().upper() not in allowed_names:
                return ""
            return value.strip().strip('"').strip("'")
        return first_line.strip().strip('"').strip("'")

    @classmethod
    def from_runtime(cls) -> "Settings":
        """Construct settings from runtime config + direct secret env/key-file fallback."""
        runtime = current_runtime_config()
        config_root = runtime.config_path.parent.resolve()

        resolved_key = (
            os.environ.get("SCOUT_STORE_KEY", "").strip()
            or os.environ.get("SCOUT_ENGINE_SESSION_STORE_API_KEY", "").strip()
        )
        if not resolved_key:
            for candidate in runtime.session_store_key_files:
                candidate_path = Path(candidate).expanduser()
                path = (
                    candidate_path
                    if candidate_path.is_absolute()
                    else (config_root / candidate_path).resolve()
                )
                if not path.exists() or not path.is_file():
                    continue
                parsed = cls._parse_key_file(
                    path,
                    allowed_names={"SCOUT_STORE_KEY", "SCOUT_ENGINE_SESSION_STORE_API_KEY"},
                )
                if parsed:
                    resolved_key = parsed
                    break

        return cls(
            session_store_api_key=resolved_key,
            session_store_backend=runtime.session_store_backend,
            session_store_base_url=runtime.session_store_base_url,
            session_store_table=runtime.session_store_table,
            session_store_timeout_s=runtime.session_store_timeout_s,
            sessions_dir=str(runtime.sessions_dir),
            capture_rate=runtime.capture_rate,
            autosave_interval_s=runtime.autosave_interval_s,
            stale_after_hours=runtime.stale_after_hours,
            notification_cooldown_s=runtime.notification_cooldown_s,
        )
