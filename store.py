"""Local persistence and the application state that owns rubric and records.

``AuditHub`` is the only writer of the session collection. It composes the
pure pipeline (parse, map, sanitize), serializes import and sanitize behind a
lock, and writes a full JSON snapshot of whatever changed after every
operation. Each mutating call returns the new ``revision`` so callers can tell
whether the state they looked at is still current.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from delimited_text import parse_rows
from import_layout import DEFAULT_LAYOUT, ImportLayout
from rubric import DEFAULT_RUBRIC, Rubric
from sanitizer import SanitizeResult, sanitize_sessions
from serialization import (
    cloud_settings_from_storage,
    cloud_settings_to_storage,
    rubric_from_storage,
    rubric_to_storage,
    session_from_storage,
    sessions_to_storage,
)
from session_import import ImportResult, import_rows
from sessions import CloudSettings, SessionRecord, merge_sessions

LOGGER = logging.getLogger(__name__)

RUBRIC_KEY = "rubric"
SESSIONS_KEY = "sessions"
CLOUD_KEY = "cloud_settings"


class StaleRevisionError(RuntimeError):
    """Raised when an operation was prepared against an outdated revision."""


# ----------------- Key-value stores -----------------


class KeyValueStore(Protocol):
    def load(self, key: str) -> Optional[Any]:
        ...

    def save(self, key: str, document: Any) -> None:
        ...


def write_json_atomic(path: Path, document: Any) -> None:
    """Write ``document`` next to ``path`` first, then swap it in; readers never see half a file."""
    text = json.dumps(document, indent=2, ensure_ascii=False)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class MemoryStore:
    """In-process store, mainly for tests."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, str] = {}
        for key, document in (initial or {}).items():
            self.save(key, document)

    def load(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def save(self, key: str, document: Any) -> None:
        self._data[key] = json.dumps(document)

    def keys(self) -> List[str]:
        return sorted(self._data)


class JsonFileStore:
    """One ``<key>.json`` file per key inside ``directory``."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        safe_key = key.replace("/", "-").replace("\\", "-")
        return self.directory / f"{safe_key}.json"

    def load(self, key: str) -> Optional[Any]:
        path = self.path_for(key)
        if not path.is_file():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.error("Failed to read %s, using defaults: %s", path, exc)
            return None

    def save(self, key: str, document: Any) -> None:
        write_json_atomic(self.path_for(key), document)


# ----------------- Application state -----------------


@dataclass(frozen=True)
class ImportOutcome:
    result: ImportResult
    added: int
    revision: int

    def summary(self) -> str:
        return self.result.summary(added=self.added)


@dataclass(frozen=True)
class SanitizeOutcome:
    result: SanitizeResult
    revision: int


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditHub:
    def __init__(
        self,
        kv: KeyValueStore,
        *,
        layout: ImportLayout = DEFAULT_LAYOUT,
        default_rubric: Rubric = DEFAULT_RUBRIC,
        default_cloud: Optional[CloudSettings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._kv = kv
        self._layout = layout
        self._clock = clock
        self._lock = threading.RLock()
        self._revision = 0
        self._last_batch_stamp = 0

        self._rubric = self._load_rubric(default_rubric)
        self._layout.validate(self._rubric)
        self._sessions = self._load_sessions()
        self._cloud = self._load_cloud(default_cloud or CloudSettings())

    # ---------- Loading ----------

    def _load_rubric(self, default: Rubric) -> Rubric:
        raw = self._kv.load(RUBRIC_KEY)
        if raw is None:
            return default
        try:
            return rubric_from_storage(raw)
        except (TypeError, ValueError) as exc:
            LOGGER.error("Stored rubric is unreadable, using the default: %s", exc)
            return default

    def _load_sessions(self) -> List[SessionRecord]:
        raw = self._kv.load(SESSIONS_KEY) or []
        sessions: List[SessionRecord] = []
        for item in raw:
            try:
                sessions.append(session_from_storage(item))
            except (TypeError, ValueError, AttributeError) as exc:
                LOGGER.warning("Dropping unreadable stored session: %s", exc)
        return sessions

    def _load_cloud(self, default: CloudSettings) -> CloudSettings:
        raw = self._kv.load(CLOUD_KEY)
        if raw is None:
            return default
        try:
            return cloud_settings_from_storage(raw)
        except (TypeError, ValueError, AttributeError) as exc:
            LOGGER.error("Stored cloud settings are unreadable, using defaults: %s", exc)
            return default

    # ---------- Read access ----------

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def rubric(self) -> Rubric:
        return self._rubric

    @property
    def layout(self) -> ImportLayout:
        return self._layout

    @property
    def sessions(self) -> List[SessionRecord]:
        with self._lock:
            return list(self._sessions)

    @property
    def cloud(self) -> CloudSettings:
        return self._cloud

    # ---------- Writes ----------

    def _commit_sessions(self, sessions: List[SessionRecord]) -> int:
        self._sessions = sessions
        self._kv.save(SESSIONS_KEY, sessions_to_storage(sessions))
        self._revision += 1
        return self._revision

    def _next_batch_stamp(self) -> int:
        stamp = max(int(self._clock().timestamp() * 1000), self._last_batch_stamp + 1)
        self._last_batch_stamp = stamp
        return stamp

    def update_rubric(self, rubric: Rubric) -> int:
        """Replace the whole rubric; refuses rubrics the import layout cannot fill."""
        self._layout.validate(rubric)
        with self._lock:
            self._rubric = rubric
            self._kv.save(RUBRIC_KEY, rubric_to_storage(rubric))
            self._revision += 1
            LOGGER.info("Rubric replaced (%d items), revision %d", len(rubric), self._revision)
            return self._revision

    def update_cloud(self, settings: CloudSettings) -> int:
        with self._lock:
            self._cloud = settings
            self._kv.save(CLOUD_KEY, cloud_settings_to_storage(settings))
            self._revision += 1
            return self._revision

    def mark_synced(self, when: Optional[datetime] = None) -> int:
        return self.update_cloud(replace(self._cloud, last_synced=when or self._clock()))

    def add_session(self, session: SessionRecord) -> int:
        """Store a record entered through the audit form, stamped with the workspace."""
        with self._lock:
            stamped = replace(session, workspace_id=self._cloud.workspace_id)
            merged, added = merge_sessions(self._sessions, [stamped])
            if not added:
                LOGGER.warning("Session %s already stored; keeping the existing record", session.id)
                return self._revision
            return self._commit_sessions(merged)

    def merge_sessions(self, incoming: Sequence[SessionRecord]) -> tuple[int, int]:
        """Additively merge records (remote fetch); returns ``(added, revision)``."""
        with self._lock:
            merged, added = merge_sessions(self._sessions, incoming)
            if not added:
                return 0, self._revision
            return added, self._commit_sessions(merged)

    def import_text(
        self,
        text: str,
        *,
        stable_ids: bool = False,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> ImportOutcome:
        with self._lock:
            rows = parse_rows(text)
            result = import_rows(
                rows,
                self._rubric,
                self._cloud.workspace_id,
                layout=self._layout,
                now=self._clock(),
                batch_stamp=self._next_batch_stamp(),
                stable_ids=stable_ids,
                should_cancel=should_cancel,
            )
            merged, added = merge_sessions(self._sessions, result.sessions)
            revision = self._commit_sessions(merged) if added else self._revision
            return ImportOutcome(result=result, added=added, revision=revision)

    def sanitize(
        self,
        *,
        expected_revision: Optional[int] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> SanitizeOutcome:
        with self._lock:
            if expected_revision is not None and expected_revision != self._revision:
                raise StaleRevisionError(
                    f"Hub changed since revision {expected_revision} (now {self._revision})"
                )
            started_at = self._revision
            result = sanitize_sessions(self._sessions, self._rubric, should_cancel=should_cancel)
            if self._revision != started_at:
                # Only commit over the snapshot the pass was computed from.
                raise StaleRevisionError(
                    f"Hub changed during sanitize (revision {started_at} -> {self._revision})"
                )
            if not result.corrected:
                return SanitizeOutcome(result=result, revision=self._revision)
            return SanitizeOutcome(result=result, revision=self._commit_sessions(result.sessions))
