# sessions.py

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from rubric import Rubric

MAX_POSSIBLE_SCORE = 100
DEFAULT_WORKSPACE_ID = "SEA-RETAIL-HUB"


# ----------------- Data models -----------------


@dataclass(frozen=True)
class SessionRecord:
    id: str
    staff_name: str
    supervisor_name: str
    store_branch: str
    audit_reference: str
    date: datetime
    scores: Dict[str, float] = field(default_factory=dict)
    category_comments: Dict[str, str] = field(default_factory=dict)
    overall_comment: str = ""
    total_score: float = 0.0
    max_possible_score: int = MAX_POSSIBLE_SCORE
    ai_feedback: Optional[str] = None
    workspace_id: Optional[str] = None

    def with_scores(self, scores: Mapping[str, float]) -> "SessionRecord":
        """Return a copy holding ``scores`` with the total recomputed from them."""
        new_scores = dict(scores)
        return replace(self, scores=new_scores, total_score=sum(new_scores.values()))

    def with_feedback(self, feedback: Optional[str]) -> "SessionRecord":
        return replace(self, ai_feedback=feedback)


@dataclass(frozen=True)
class CloudSettings:
    enabled: bool = True
    workspace_id: str = DEFAULT_WORKSPACE_ID
    last_synced: Optional[datetime] = None


# ----------------- Collection helpers -----------------


def merge_sessions(
    existing: Sequence[SessionRecord],
    incoming: Sequence[SessionRecord],
) -> Tuple[List[SessionRecord], int]:
    """Union by id where records already present always win.

    New records are placed ahead of the existing ones (newest first), in the
    order they arrived. Returns the merged list and how many were added.
    """
    seen = {session.id for session in existing}
    added: List[SessionRecord] = []
    for session in incoming:
        if session.id in seen:
            continue
        seen.add(session.id)
        added.append(session)
    return added + list(existing), len(added)


def search_sessions(sessions: Sequence[SessionRecord], query: str = "") -> List[SessionRecord]:
    """Filter by staff name or audit reference (case-insensitive), newest first."""
    needle = query.strip().lower()
    matches = [
        s
        for s in sessions
        if not needle
        or needle in s.staff_name.lower()
        or needle in s.audit_reference.lower()
    ]
    return sorted(matches, key=lambda s: s.date, reverse=True)


def next_audit_reference(existing_count: int) -> str:
    return f"AUD-{existing_count + 1:05d}"


def new_session(
    rubric: Rubric,
    *,
    staff_name: str,
    supervisor_name: str,
    store_branch: str,
    audit_date: datetime,
    scores: Mapping[str, float],
    existing_count: int,
    category_comments: Optional[Mapping[str, str]] = None,
    overall_comment: str = "",
    workspace_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SessionRecord:
    """Build a record from the audit form.

    Each score is held inside ``[0, max_points]`` of its rubric item; scores
    for ids the rubric does not know are kept as entered.
    """
    if not staff_name.strip() or not supervisor_name.strip() or not store_branch.strip():
        raise ValueError("Staff name, supervisor name and store/branch are required")

    clamped: Dict[str, float] = {}
    for item_id, raw in scores.items():
        value = float(raw)
        maximum = rubric.lookup(item_id)
        clamped[item_id] = min(max(0.0, value), maximum) if maximum is not None else value

    if audit_date.tzinfo is None:
        audit_date = audit_date.replace(tzinfo=timezone.utc)
    created = now or datetime.now(timezone.utc)

    record = SessionRecord(
        id=str(int(created.timestamp() * 1000)),
        staff_name=staff_name.strip(),
        supervisor_name=supervisor_name.strip(),
        store_branch=store_branch.strip(),
        audit_reference=next_audit_reference(existing_count),
        date=audit_date.astimezone(timezone.utc),
        category_comments=dict(category_comments or {}),
        overall_comment=overall_comment,
        workspace_id=workspace_id,
    )
    return record.with_scores(clamped)
