"""Remote session store used to share audit records across a workspace.

Both calls are best effort: a failed push reports ``False`` and a failed fetch
returns no records, so a flaky connection never blocks local work. Fetched
records are merged additively; a local record is never replaced by a remote one.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

import requests

from serialization import session_from_storage, session_to_storage
from sessions import SessionRecord
from store import write_json_atomic

LOGGER = logging.getLogger(__name__)


class RemoteSessionStore(Protocol):
    def push(self, session: SessionRecord, workspace_id: str) -> bool:
        ...

    def fetch(self, workspace_id: str) -> List[SessionRecord]:
        ...


def _records_from_payload(payload: Any) -> List[SessionRecord]:
    if isinstance(payload, dict):
        payload = payload.get("sessions", [])
    records: List[SessionRecord] = []
    for item in payload or []:
        try:
            records.append(session_from_storage(item))
        except (TypeError, ValueError, AttributeError) as exc:
            LOGGER.warning("Skipping malformed remote session: %s", exc)
    return records


class FileSessionStore:
    """Shared JSON document standing in for the hosted hub."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> List[Dict[str, Any]]:
        if not self.path.is_file():
            return []
        return json.loads(self.path.read_text(encoding="utf-8") or "[]")

    def push(self, session: SessionRecord, workspace_id: str) -> bool:
        try:
            with self._lock:
                documents = self._read()
                if not any(doc.get("id") == session.id for doc in documents):
                    document = session_to_storage(session)
                    document["workspace_id"] = workspace_id
                    documents.append(document)
                    write_json_atomic(self.path, documents)
            return True
        except (OSError, ValueError) as exc:
            LOGGER.error("Cloud push failed for %s: %s", session.id, exc)
            return False

    def fetch(self, workspace_id: str) -> List[SessionRecord]:
        try:
            with self._lock:
                documents = self._read()
        except (OSError, ValueError) as exc:
            LOGGER.error("Cloud fetch failed for %s: %s", workspace_id, exc)
            return []
        matching = [
            doc for doc in documents
            if (doc.get("workspace_id") or doc.get("workspaceId")) == workspace_id
        ]
        return _records_from_payload(matching)


class HttpSessionStore:
    """Thin wrapper around a hub REST endpoint keyed by workspace id."""

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})
        if token:
            self._session.headers.update({"Authorization": f"Bearer {token}"})

    def _url(self, workspace_id: str) -> str:
        return f"{self.base_url}/workspaces/{quote(workspace_id, safe='')}/sessions"

    def push(self, session: SessionRecord, workspace_id: str) -> bool:
        document = session_to_storage(session)
        document["workspace_id"] = workspace_id
        try:
            response = self._session.post(self._url(workspace_id), json=document, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            LOGGER.error("Cloud push failed for %s: %s", session.id, exc)
            return False
        return True

    def fetch(self, workspace_id: str) -> List[SessionRecord]:
        try:
            response = self._session.get(self._url(workspace_id), timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            LOGGER.error("Cloud fetch failed for %s: %s", workspace_id, exc)
            return []
        return [
            record for record in _records_from_payload(payload)
            if record.workspace_id in (None, workspace_id)
        ]

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "HttpSessionStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def sync_with_cloud(hub, remote: RemoteSessionStore) -> int:
    """Pull the workspace's records into ``hub``; returns how many were new."""
    settings = hub.cloud
    if not settings.enabled or not settings.workspace_id:
        LOGGER.info("Cloud sync disabled; skipping")
        return 0
    fetched = remote.fetch(settings.workspace_id)
    added, _revision = hub.merge_sessions(fetched)
    hub.mark_synced()
    LOGGER.info("Cloud sync for %s: %d fetched, %d new", settings.workspace_id, len(fetched), added)
    return added


def push_session(hub, remote: RemoteSessionStore, session: SessionRecord) -> bool:
    settings = hub.cloud
    if not settings.enabled or not settings.workspace_id:
        return False
    return remote.push(session, settings.workspace_id)
