import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# The modules live at the repository root, next to this tests/ directory.
ROOT_PATH = Path(__file__).resolve().parent.parent
if ROOT_PATH.as_posix() not in sys.path:
    sys.path.insert(0, ROOT_PATH.as_posix())

from delimited_text import write_rows  # noqa: E402
from import_layout import DEFAULT_LAYOUT  # noqa: E402
from sessions import SessionRecord  # noqa: E402

SHEET_WIDTH = 74
HEADER = [f"col{idx}" for idx in range(SHEET_WIDTH)]
SCORE_COLUMNS = {item_id: column for column, item_id in DEFAULT_LAYOUT.score_columns()}


@pytest.fixture
def make_row():
    """Build one spreadsheet row in the bulk-import column order."""

    def _make(
        *,
        name="Ana Cruz",
        ref="AUD-0001",
        store="Orchard",
        date="2024-03-05",
        supervisor="Lee",
        scores=None,
        comments=None,
        overall="",
        width=SHEET_WIDTH,
    ):
        cols = [""] * SHEET_WIDTH
        cols[0] = "2024-03-05 10:00"
        cols[1], cols[2], cols[3], cols[4], cols[5] = ref, name, store, date, supervisor
        for item_id, value in (scores or {}).items():
            cols[SCORE_COLUMNS[item_id]] = str(value)
        for series, text in (comments or {}).items():
            cols[DEFAULT_LAYOUT.comment_columns[series]] = text
        cols[DEFAULT_LAYOUT.overall_comment_column] = overall
        return cols[:width]

    return _make


@pytest.fixture
def sheet_text():
    """Join rows under a header into pasted CSV text."""

    def _text(*rows):
        return write_rows([HEADER, *rows])

    return _text


@pytest.fixture
def make_session():
    def _make(
        session_id="1",
        *,
        staff_name="Ana Cruz",
        scores=None,
        date=datetime(2024, 3, 5, tzinfo=timezone.utc),
        ai_feedback=None,
        workspace_id=None,
        audit_reference=None,
    ):
        record = SessionRecord(
            id=session_id,
            staff_name=staff_name,
            supervisor_name="Lee",
            store_branch="Orchard",
            audit_reference=audit_reference or f"AUD-{session_id}",
            date=date,
            ai_feedback=ai_feedback,
            workspace_id=workspace_id,
        )
        return record.with_scores(scores or {})

    return _make
