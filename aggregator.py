"""Dashboard statistics derived from the rubric and the session collection.

Everything here is read-only: the functions never mutate records. The report
generator receives ``TrainingNeedsSummary`` built from the same functions the
dashboard shows, so the narrative and the charts agree.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from rubric import Rubric
from sanitizer import is_compliant
from sessions import MAX_POSSIBLE_SCORE, SessionRecord

SERIES = ("S1", "S2", "S3", "S4", "S5")
SERIES_BASE_POINTS = 20


# ----------------- Data models -----------------


@dataclass(frozen=True)
class HubHealth:
    total: int
    problematic: int
    compliance: int


@dataclass(frozen=True)
class SkillGap:
    item_id: str
    task: str
    earned: float
    possible: float
    percent: float


@dataclass(frozen=True)
class TeamStats:
    total_audits: int
    average_score: float
    top_performer: str


@dataclass(frozen=True)
class TrainingNeedsSummary:
    total_audits: int
    series_averages: Dict[str, int] = field(default_factory=dict)
    gaps: List[SkillGap] = field(default_factory=list)


# ----------------- Helpers -----------------


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ----------------- Public API -----------------


def hub_health(sessions: Sequence[SessionRecord], rubric: Rubric) -> HubHealth:
    if not sessions:
        return HubHealth(total=0, problematic=0, compliance=100)
    problematic = sum(1 for s in sessions if not is_compliant(s, rubric))
    compliance = round_half_up((len(sessions) - problematic) / len(sessions) * 100)
    return HubHealth(total=len(sessions), problematic=problematic, compliance=compliance)


def compliance_rate(sessions: Sequence[SessionRecord], rubric: Rubric) -> int:
    """Percentage of records with no score above its rubric cap; 100 when empty."""
    return hub_health(sessions, rubric).compliance


def series_averages(
    sessions: Sequence[SessionRecord],
    rubric: Rubric,
    series: Sequence[str] = SERIES,
    base: float = SERIES_BASE_POINTS,
) -> Dict[str, int]:
    """Mean non-bonus points per series as a percentage of ``base``."""
    averages: Dict[str, int] = {}
    for prefix in series:
        items = [item for item in rubric if item.category.startswith(prefix) and not item.is_bonus]
        if not items or not sessions:
            averages[prefix] = 0
            continue
        earned = sum(sum(s.scores.get(item.id, 0.0) for item in items) for s in sessions)
        averages[prefix] = round_half_up(earned / len(sessions) / base * 100)
    return averages


def skill_gaps(
    sessions: Sequence[SessionRecord],
    rubric: Rubric,
    limit: Optional[int] = None,
) -> List[SkillGap]:
    """Per-item proficiency across all records, weakest first."""
    if not sessions:
        return []
    gaps: List[SkillGap] = []
    for item in rubric:
        earned = sum(s.scores.get(item.id, 0.0) for s in sessions)
        possible = item.max_points * len(sessions)
        gaps.append(
            SkillGap(
                item_id=item.id,
                task=item.task,
                earned=earned,
                possible=possible,
                percent=earned / possible * 100,
            )
        )
    gaps.sort(key=lambda gap: gap.percent)
    return gaps[:limit] if limit is not None else gaps


def trend(sessions: Sequence[SessionRecord]) -> List[Tuple[datetime, float]]:
    return [(s.date, s.total_score) for s in sorted(sessions, key=lambda s: s.date)]


def team_stats(sessions: Sequence[SessionRecord]) -> TeamStats:
    if not sessions:
        return TeamStats(total_audits=0, average_score=0.0, top_performer="N/A")
    average = sum(s.total_score / MAX_POSSIBLE_SCORE for s in sessions) / len(sessions) * 100
    # Ties go to the later record.
    top = sessions[0]
    for session in sessions[1:]:
        if session.total_score >= top.total_score:
            top = session
    return TeamStats(
        total_audits=len(sessions),
        average_score=round(average, 1),
        top_performer=top.staff_name,
    )


def training_needs_summary(
    sessions: Sequence[SessionRecord],
    rubric: Rubric,
    top_n: int = 5,
) -> TrainingNeedsSummary:
    return TrainingNeedsSummary(
        total_audits=len(sessions),
        series_averages=series_averages(sessions, rubric),
        gaps=skill_gaps(sessions, rubric, limit=top_n),
    )
