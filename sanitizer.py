"""Retroactive re-clamping of stored records against the current rubric.

When rubric maxima are lowered, records imported or entered under the old
standard may hold scores above the new cap. ``sanitize_sessions`` rewrites only
those records, recomputing their totals in the same step, and leaves every other
record object untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from rubric import Rubric
from sessions import SessionRecord

LOGGER = logging.getLogger(__name__)

STANDARD_APPLIED_MARKER = "[Hub Standard Applied"
STANDARD_APPLIED_NOTE = "[Hub Standard Applied: Scores clamped to maximum.]"
STANDARD_APPLIED_SHORT = "[Hub Standard Applied]"


class SanitizeCancelled(RuntimeError):
    """Raised when a sanitize pass is cancelled before it finished."""


@dataclass
class SanitizeResult:
    sessions: List[SessionRecord] = field(default_factory=list)
    corrected: int = 0

    def summary(self) -> str:
        if not self.corrected:
            return "All hub data is within standard limits. No action needed."
        return f"Sanitized {self.corrected} records. Hub compliance is now 100%."


def find_violations(session: SessionRecord, rubric: Rubric) -> List[Tuple[str, float, float]]:
    """``(item id, score, max points)`` for every score above its rubric cap."""
    violations: List[Tuple[str, float, float]] = []
    for item_id, score in session.scores.items():
        maximum = rubric.lookup(item_id)
        if maximum is not None and score > maximum:
            violations.append((item_id, score, maximum))
    return violations


def is_compliant(session: SessionRecord, rubric: Rubric) -> bool:
    return not find_violations(session, rubric)


def _annotate(feedback: Optional[str]) -> str:
    if not feedback:
        return STANDARD_APPLIED_SHORT
    if STANDARD_APPLIED_MARKER in feedback:
        return feedback
    return f"{feedback}\n\n{STANDARD_APPLIED_NOTE}"


def sanitize_session(session: SessionRecord, rubric: Rubric) -> Optional[SessionRecord]:
    """Return a corrected copy of ``session``, or ``None`` if it is already compliant."""
    violations = find_violations(session, rubric)
    if not violations:
        return None
    scores = dict(session.scores)
    for item_id, _score, maximum in violations:
        scores[item_id] = maximum
    return session.with_scores(scores).with_feedback(_annotate(session.ai_feedback))


def sanitize_sessions(
    sessions: Sequence[SessionRecord],
    rubric: Rubric,
    *,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> SanitizeResult:
    result = SanitizeResult()
    for idx, session in enumerate(sessions):
        if should_cancel is not None and should_cancel():
            raise SanitizeCancelled(f"Sanitize cancelled after {idx} of {len(sessions)} records")
        corrected = sanitize_session(session, rubric)
        if corrected is None:
            result.sessions.append(session)
        else:
            result.sessions.append(corrected)
            result.corrected += 1

    LOGGER.info("Sanitized %d of %d records", result.corrected, len(sessions))
    return result
