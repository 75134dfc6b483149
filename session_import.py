"""Map pasted spreadsheet rows onto session records.

The importer walks the fixed positional layout (see ``import_layout``), clamps
every score to the rubric maximum of the item it lands on and stamps each
record with the current workspace. Bad rows are skipped and counted, never
raised, so one broken line cannot abort a batch.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from dateutil import parser as date_parser

from import_layout import DEFAULT_LAYOUT, ImportLayout
from rubric import Rubric
from sessions import MAX_POSSIBLE_SCORE, SessionRecord

LOGGER = logging.getLogger(__name__)

IMPORT_FEEDBACK = "Synchronized hub standard record."
DEFAULT_SUPERVISOR = "Import"
DEFAULT_STORE = "Hub"

SKIP_TOO_FEW_COLUMNS = "too_few_columns"
SKIP_MISSING_STAFF_NAME = "missing_staff_name"
SKIP_MISSING_DATE = "missing_date"
SKIP_INVALID_DATE = "invalid_date"

_LEADING_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class ImportCancelled(RuntimeError):
    """Raised when an import is cancelled before it finished."""


@dataclass
class ImportResult:
    sessions: List[SessionRecord] = field(default_factory=list)
    skipped: int = 0
    skip_reasons: Counter = field(default_factory=Counter)
    data_rows: int = 0

    @property
    def imported(self) -> int:
        return len(self.sessions)

    def summary(self, added: Optional[int] = None) -> str:
        """User-facing outcome; pass ``added`` once records were merged so duplicates are reported."""
        if self.data_rows == 0:
            return "No data rows found: paste a header row followed by at least one audit row."
        if not self.sessions:
            return f"No records imported: all {self.skipped} rows were skipped ({self._reasons()})."
        if added is None:
            message = f"Imported {self.imported} records."
        else:
            message = f"Imported {added} new records"
            if self.imported > added:
                message += f", {self.imported - added} already present"
            message += "."
        message += " Scores clamped to hub standards."
        if self.skipped:
            message += f" Skipped {self.skipped} rows ({self._reasons()})."
        return message

    def _reasons(self) -> str:
        return ", ".join(f"{reason}: {count}" for reason, count in sorted(self.skip_reasons.items()))


def parse_number(value: Optional[str]) -> float:
    """Read the leading number of a cell the way spreadsheets paste it; 0 if none."""
    if not value:
        return 0.0
    match = _LEADING_NUMBER_RE.match(value.strip())
    if not match:
        return 0.0
    try:
        return float(match.group(0))
    except ValueError:
        return 0.0


def parse_audit_date(value: str, now: datetime) -> Optional[datetime]:
    """Parse a date cell into an aware UTC datetime, ``None`` if it is not a date."""
    default = datetime(now.year, 1, 1)
    try:
        parsed = date_parser.parse(value, default=default)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _cell(cols: Sequence[str], index: int) -> str:
    return cols[index] if index < len(cols) else ""


def _stable_id(workspace_id: str, cols: Sequence[str]) -> str:
    digest = hashlib.sha1()
    digest.update(workspace_id.encode("utf-8"))
    for col in cols:
        digest.update(b"\x1f")
        digest.update(col.encode("utf-8"))
    return f"imp-{digest.hexdigest()[:16]}"


def map_scores(cols: Sequence[str], rubric: Rubric, layout: ImportLayout = DEFAULT_LAYOUT) -> Dict[str, float]:
    scores: Dict[str, float] = {}
    for column, item_id in layout.score_columns():
        value = parse_number(_cell(cols, column))
        maximum = rubric.lookup(item_id)
        scores[item_id] = min(value, maximum) if maximum is not None else value
    return scores


def import_rows(
    rows: Sequence[Sequence[str]],
    rubric: Rubric,
    workspace_id: Optional[str],
    *,
    layout: ImportLayout = DEFAULT_LAYOUT,
    now: Optional[datetime] = None,
    batch_stamp: Optional[int] = None,
    stable_ids: bool = False,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> ImportResult:
    """Turn parsed rows (header first) into session records.

    ``batch_stamp`` is the millisecond timestamp used for synthesized ids and
    audit references; it defaults to ``now``. With ``stable_ids`` the id is a
    digest of the row so importing the same text twice produces the same ids.
    """
    now = now or datetime.now(timezone.utc)
    stamp = batch_stamp if batch_stamp is not None else int(now.timestamp() * 1000)
    result = ImportResult(data_rows=max(0, len(rows) - 1))

    for row_index, cols in enumerate(rows[1:]):
        if should_cancel is not None and should_cancel():
            raise ImportCancelled(f"Import cancelled after {row_index} of {result.data_rows} rows")

        reason = None
        audit_date = None
        if len(cols) < layout.min_columns:
            reason = SKIP_TOO_FEW_COLUMNS
        elif not _cell(cols, layout.staff_name_column):
            reason = SKIP_MISSING_STAFF_NAME
        elif not _cell(cols, layout.date_column):
            reason = SKIP_MISSING_DATE
        else:
            audit_date = parse_audit_date(_cell(cols, layout.date_column), now)
            if audit_date is None:
                reason = SKIP_INVALID_DATE

        if reason is not None:
            result.skipped += 1
            result.skip_reasons[reason] += 1
            LOGGER.debug("Skipping import row %d: %s", row_index + 2, reason)
            continue

        comments = {series: _cell(cols, column) for series, column in layout.comment_columns.items()}
        record = SessionRecord(
            id=_stable_id(workspace_id or "", cols) if stable_ids else f"imp-{stamp}-{row_index}",
            staff_name=_cell(cols, layout.staff_name_column),
            supervisor_name=_cell(cols, layout.supervisor_column) or DEFAULT_SUPERVISOR,
            store_branch=_cell(cols, layout.store_branch_column) or DEFAULT_STORE,
            audit_reference=_cell(cols, layout.audit_reference_column) or f"AUD-{stamp}",
            date=audit_date,
            category_comments=comments,
            overall_comment=_cell(cols, layout.overall_comment_column),
            max_possible_score=MAX_POSSIBLE_SCORE,
            ai_feedback=IMPORT_FEEDBACK,
            workspace_id=workspace_id,
        )
        result.sessions.append(record.with_scores(map_scores(cols, rubric, layout)))

    LOGGER.info(
        "Import batch %s: %d data rows, %d imported, %d skipped",
        stamp,
        result.data_rows,
        result.imported,
        result.skipped,
    )
    return result


def preview_rows(rows: Sequence[Sequence[str]], limit: int = 3, layout: ImportLayout = DEFAULT_LAYOUT) -> List[Tuple[str, str, int]]:
    """``(staff name, audit reference, column count)`` for the first data rows."""
    if len(rows) < 2:
        return []
    return [
        (_cell(cols, layout.staff_name_column), _cell(cols, layout.audit_reference_column), len(cols))
        for cols in rows[1 : limit + 1]
    ]
