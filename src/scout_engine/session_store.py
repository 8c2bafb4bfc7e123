"""Session snapshot persistence: typed snapshot boundary, stores, and gateway."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import uuid
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Protocol

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from scout_engine.contracts import SessionSnapshotPayload
from scout_engine.errors import SessionStoreError
from scout_engine.settings import Settings
from scout_engine.time_utils import iso_z, parse_iso_z, utc_now
from scout_engine.util.parsing import safe_int, safe_str

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
DEFAULT_STALE_AFTER = timedelta(hours=4)


@dataclass(frozen=True)
class SessionSnapshot:
    """Serialized engine model for one monitored game."""

    game_id: str
    last_updated: datetime
    player_states: dict[str, dict[str, Any]] = field(default_factory=dict)
    prop_edges: list[dict[str, Any]] = field(default_factory=list)
    halftime_lock: dict[str, Any] = field(default_factory=dict)
    pbp_data: dict[str, Any] | None = None
    last_period: int | None = None
    current_game_time: str | None = None
    current_score: str | None = None
    frames_processed: int = 0
    analysis_count: int = 0
    commercial_skip_count: int = 0

    def to_payload(self) -> SessionSnapshotPayload:
        return {
            "schemaVersion": SCHEMA_VERSION,
            "gameId": self.game_id,
            "lastUpdatedUtc": iso_z(self.last_updated),
            "playerStates": self.player_states,
            "propEdges": self.prop_edges,
            "halftimeLock": self.halftime_lock,
            "pbpData": self.pbp_data,  # type: ignore[typeddict-item]
            "lastPeriod": self.last_period,
            "currentGameTime": self.current_game_time,
            "currentScore": self.current_score,
            "framesProcessed": self.frames_processed,
            "analysisCount": self.analysis_count,
            "commercialSkipCount": self.commercial_skip_count,
        }

    @classmethod
    def from_payload(cls, payload: Any) -> SessionSnapshot:
        if not isinstance(payload, dict):
            raise SessionStoreError("session snapshot must be an object")
        version = safe_int(payload.get("schemaVersion"))
        if version != SCHEMA_VERSION:
            raise SessionStoreError(f"unsupported session snapshot schema: {version}")
        game_id = safe_str(payload.get("gameId"))
        last_updated = parse_iso_z(safe_str(payload.get("lastUpdatedUtc")))
        if not game_id or last_updated is None:
            raise SessionStoreError("session snapshot missing gameId or lastUpdatedUtc")
        players = payload.get("playerStates")
        edges = payload.get("propEdges")
        lock = payload.get("halftimeLock")
        pbp = payload.get("pbpData")
        return cls(
            game_id=game_id,
            last_updated=last_updated,
            player_states=players if isinstance(players, dict) else {},
            prop_edges=edges if isinstance(edges, list) else [],
            halftime_lock=lock if isinstance(lock, dict) else {},
            pbp_data=pbp if isinstance(pbp, dict) else None,
            last_period=safe_int(payload.get("lastPeriod")),
            current_game_time=safe_str(payload.get("currentGameTime")) or None,
            current_score=safe_str(payload.get("currentScore")) or None,
            frames_processed=safe_int(payload.get("framesProcessed")) or 0,
            analysis_count=safe_int(payload.get("analysisCount")) or 0,
            commercial_skip_count=safe_int(payload.get("commercialSkipCount")) or 0,
        )


class SessionStore(Protocol):
    """Key-value store of snapshot payloads keyed by game id."""

    def get(self, game_id: str) -> dict[str, Any] | None: ...

    def put(self, game_id: str, payload: dict[str, Any]) -> None: ...

    def delete(self, game_id: str) -> None: ...


class InMemorySessionStore:
    def __init__(self) -> None:
        self._rows: dict[str, str] = {}

    def get(self, game_id: str) -> dict[str, Any] | None:
        raw = self._rows.get(game_id)
        return None if raw is None else json.loads(raw)

    def put(self, game_id: str, payload: dict[str, Any]) -> None:
        self._rows[game_id] = json.dumps(payload, sort_keys=True)

    def delete(self, game_id: str) -> None:
        self._rows.pop(game_id, None)

    def keys(self) -> list[str]:
        return sorted(self._rows)


_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def _atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".tmp-{path.name}-{uuid.uuid4().hex}")
    try:
        tmp_path.write_text(content, encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError:
        with suppress(FileNotFoundError):
            tmp_path.unlink()
        raise


class JsonFileSessionStore:
    """One JSON document per game id under `root`."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def path_for(self, game_id: str) -> Path:
        """Readable slug plus a short digest of the raw id, so distinct ids never share a file."""
        safe = _UNSAFE_KEY_CHARS.sub("_", game_id.strip()) or "_"
        digest = hashlib.sha256(game_id.encode("utf-8")).hexdigest()[:10]
        return self.root / f"{safe}-{digest}.json"

    def get(self, game_id: str) -> dict[str, Any] | None:
        path = self.path_for(game_id)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise SessionStoreError(f"failed reading session snapshot: {path}") from exc
        if not isinstance(payload, dict):
            raise SessionStoreError(f"session snapshot is not an object: {path}")
        return payload

    def put(self, game_id: str, payload: dict[str, Any]) -> None:
        path = self.path_for(game_id)
        content = json.dumps(payload, sort_keys=True, ensure_ascii=True, indent=2) + "\n"
        try:
            _atomic_write_text(path, content)
        except OSError as exc:
            raise SessionStoreError(f"failed writing session snapshot: {path}") from exc

    def delete(self, game_id: str) -> None:
        path = self.path_for(game_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise SessionStoreError(f"failed deleting session snapshot: {path}") from exc


class RetryableStatusError(RuntimeError):
    """Raised for retryable status codes."""

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        super().__init__(f"retryable status {response.status_code}")


def _wait_for_retry(retry_state) -> float:
    return min(2 ** (retry_state.attempt_number - 1), 8.0)


class HttpSessionStore:
    """Session rows in a REST table (`game_id`, `state`, `updated_at`).

    Speaks the PostgREST dialect: upsert via `Prefer: resolution=merge-duplicates`
    and row filters such as `game_id=eq.<id>`.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.BaseTransport | None = None,
        max_attempts: int = 3,
        wait: Callable[[Any], float] = _wait_for_retry,
    ) -> None:
        base_url = settings.session_store_base_url.rstrip("/")
        if not base_url:
            raise SessionStoreError("session store base_url is not configured")
        self._url = f"{base_url}/rest/v1/{settings.session_store_table}"
        headers = {"Content-Type": "application/json"}
        api_key = settings.session_store_api_key.strip()
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._http = httpx.Client(
            timeout=settings.session_store_timeout_s, headers=headers, transport=transport
        )
        self._max_attempts = max(1, max_attempts)
        self._wait = wait

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> HttpSessionStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _send(self, method: str, **kwargs: Any) -> httpx.Response:
        response: httpx.Response | None = None
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self._max_attempts),
                retry=retry_if_exception_type(RetryableStatusError),
                wait=self._wait,
                reraise=True,
            ):
                with attempt:
                    response = self._http.request(method, self._url, **kwargs)
                    if response.status_code == 429 or 500 <= response.status_code <= 599:
                        raise RetryableStatusError(response)
                    response.raise_for_status()
        except RetryableStatusError as exc:
            raise SessionStoreError(
                f"session store {method} failed with status {exc.response.status_code} "
                "after retries"
            ) from exc
        except httpx.HTTPError as exc:
            raise SessionStoreError(f"session store {method} failed: {exc}") from exc
        if response is None:
            raise SessionStoreError(f"session store {method} failed without a response")
        return response

    def get(self, game_id: str) -> dict[str, Any] | None:
        response = self._send(
            "GET", params={"game_id": f"eq.{game_id}", "select": "state", "limit": "1"}
        )
        try:
            rows = response.json()
        except ValueError as exc:
            raise SessionStoreError("session store returned invalid JSON") from exc
        if not isinstance(rows, list) or not rows:
            return None
        state = rows[0].get("state") if isinstance(rows[0], dict) else None
        if not isinstance(state, dict):
            raise SessionStoreError(f"session row for {game_id} has no state object")
        return state

    def put(self, game_id: str, payload: dict[str, Any]) -> None:
        row = {"game_id": game_id, "state": payload, "updated_at": iso_z(utc_now())}
        self._send(
            "POST",
            params={"on_conflict": "game_id"},
            json=row,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    def delete(self, game_id: str) -> None:
        self._send("DELETE", params={"game_id": f"eq.{game_id}"})


def build_session_store(settings: Settings) -> SessionStore:
    backend = settings.session_store_backend.strip().lower()
    if backend == "memory":
        return InMemorySessionStore()
    if backend == "file":
        return JsonFileSessionStore(settings.sessions_dir)
    if backend == "http":
        return HttpSessionStore(settings)
    raise SessionStoreError(f"unsupported session store backend: {backend}")


class SessionPersistenceGateway:
    """Best-effort save/load/clear; store failures are logged, never raised."""

    def __init__(
        self,
        store: SessionStore,
        *,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.stale_after = stale_after
        self._clock = clock

    def save(self, snapshot: SessionSnapshot) -> bool:
        try:
            self.store.put(snapshot.game_id, dict(snapshot.to_payload()))
        except SessionStoreError as exc:
            logger.warning("session save failed for %s: %s", snapshot.game_id, exc)
            return False
        return True

    def is_fresh(self, snapshot: SessionSnapshot) -> bool:
        return self._clock() - snapshot.last_updated <= self.stale_after

    def load(self, game_id: str) -> SessionSnapshot | None:
        """Return the stored snapshot when present and fresh, else None."""
        try:
            payload = self.store.get(game_id)
            if payload is None:
                return None
            snapshot = SessionSnapshot.from_payload(payload)
        except SessionStoreError as exc:
            logger.warning("session load failed for %s: %s", game_id, exc)
            return None
        if snapshot.game_id != game_id:
            logger.warning(
                "session snapshot for %s belongs to %s; not restoring", game_id, snapshot.game_id
            )
            return None
        if not self.is_fresh(snapshot):
            logger.info(
                "session snapshot for %s is stale (last updated %s); starting fresh",
                game_id,
                iso_z(snapshot.last_updated),
            )
            return None
        return snapshot

    def clear(self, game_id: str) -> bool:
        try:
            self.store.delete(game_id)
        except SessionStoreError as exc:
            logger.warning("session clear failed for %s: %s", game_id, exc)
            return False
        return True
