from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from dateutil import parser as date_parser

from delimited_text import write_rows
from rubric import Rubric
from rubric_loader import coerce_items, item_to_dict
from sessions import MAX_POSSIBLE_SCORE, CloudSettings, SessionRecord


def _format_date(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _parse_date(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = date_parser.isoparse(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _pick(data: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return default


TRUE_FLAGS = frozenset({"1", "true", "yes", "on"})


def parse_flag(value: Any) -> bool:
    """Booleans from JSON, YAML or environment strings; ``"false"`` is False."""
    if isinstance(value, str):
        return value.strip().lower() in TRUE_FLAGS
    return bool(value)


def session_to_storage(session: SessionRecord) -> Dict[str, Any]:
    """Convert a SessionRecord into a JSON-ready dict."""
    return {
        "version": 1,
        "id": session.id,
        "staff_name": session.staff_name,
        "supervisor_name": session.supervisor_name,
        "store_branch": session.store_branch,
        "audit_reference": session.audit_reference,
        "date": _format_date(session.date),
        "scores": dict(session.scores),
        "category_comments": dict(session.category_comments),
        "overall_comment": session.overall_comment,
        "total_score": session.total_score,
        "max_possible_score": session.max_possible_score,
        "ai_feedback": session.ai_feedback,
        "workspace_id": session.workspace_id,
    }


def session_from_storage(data: Mapping[str, Any]) -> SessionRecord:
    """Rebuild a SessionRecord from stored JSON.

    Accepts the camelCase keys used by the remote hub as well. The stored
    total is ignored: it is always recomputed from the scores.
    """
    if "id" not in data:
        raise ValueError("Stored session is missing its 'id'")
    raw_date = _pick(data, "date")
    if raw_date is None:
        raise ValueError(f"Stored session {data['id']!r} is missing its 'date'")

    scores = {str(k): float(v) for k, v in (_pick(data, "scores", default={}) or {}).items()}
    comments = {
        str(k): str(v)
        for k, v in (_pick(data, "category_comments", "categoryComments", default={}) or {}).items()
    }
    record = SessionRecord(
        id=str(data["id"]),
        staff_name=str(_pick(data, "staff_name", "staffName", default="")),
        supervisor_name=str(_pick(data, "supervisor_name", "supervisorName", default="")),
        store_branch=str(_pick(data, "store_branch", "storeBranch", default="")),
        audit_reference=str(_pick(data, "audit_reference", "auditReference", default="")),
        date=_parse_date(raw_date),
        category_comments=comments,
        overall_comment=str(_pick(data, "overall_comment", "overallComment", default="")),
        max_possible_score=int(
            _pick(data, "max_possible_score", "maxPossibleScore", default=MAX_POSSIBLE_SCORE)
        ),
        ai_feedback=_pick(data, "ai_feedback", "aiFeedback"),
        workspace_id=_pick(data, "workspace_id", "workspaceId"),
    )
    return record.with_scores(scores)


def sessions_to_storage(sessions: List[SessionRecord]) -> List[Dict[str, Any]]:
    return [session_to_storage(s) for s in sessions]


def sessions_from_storage(data: List[Mapping[str, Any]]) -> List[SessionRecord]:
    return [session_from_storage(item) for item in data]


def rubric_to_storage(rubric: Rubric) -> List[Dict[str, Any]]:
    return [item_to_dict(item) for item in rubric]


def rubric_from_storage(data: List[Mapping[str, Any]]) -> Rubric:
    return Rubric(coerce_items(data))


def cloud_settings_to_storage(settings: CloudSettings) -> Dict[str, Any]:
    return {
        "enabled": settings.enabled,
        "workspace_id": settings.workspace_id,
        "last_synced": _format_date(settings.last_synced),
    }


def cloud_settings_from_storage(data: Mapping[str, Any]) -> CloudSettings:
    defaults = CloudSettings()
    last_synced = _pick(data, "last_synced", "lastSynced")
    return CloudSettings(
        enabled=parse_flag(_pick(data, "enabled", default=defaults.enabled)),
        workspace_id=str(_pick(data, "workspace_id", "workspaceId", default=defaults.workspace_id)),
        last_synced=_parse_date(last_synced) if last_synced else None,
    )


LEDGER_HEADER = ["Reference", "Date", "Staff Name", "Store", "Score", "AI Feedback", "Supervisor Summary"]


def sessions_to_ledger_csv(sessions: List[SessionRecord]) -> str:
    """Master ledger export, one row per record."""
    rows: List[List[Any]] = [LEDGER_HEADER]
    for s in sessions:
        rows.append(
            [
                s.audit_reference,
                s.date.date().isoformat(),
                s.staff_name,
                s.store_branch,
                f"{s.total_score:g}",
                s.ai_feedback or "",
                s.overall_comment or "",
            ]
        )
    return write_rows(rows)
