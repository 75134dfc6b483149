"""Positional column layout of the bulk-import spreadsheet.

The spreadsheet export has a fixed column order that does not depend on the
rubric: scores are consumed as fixed-width blocks and each cell is assigned to
the rubric id ``s{series}-{index}``. ``ImportLayout`` makes that table explicit
so it can be checked against the live rubric before any row is mapped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Tuple

from rubric import Rubric


class LayoutMismatchError(ValueError):
    """Raised when the rubric no longer lines up with the import layout."""

    def __init__(self, problems: List[str]) -> None:
        self.problems = list(problems)
        super().__init__("Import layout does not match rubric: " + "; ".join(self.problems))


@dataclass(frozen=True)
class ScoreBlock:
    offset: int
    width: int
    series: str
    first_index: int = 1

    def columns(self) -> Iterator[Tuple[int, str]]:
        """Yield ``(column, item_id)`` pairs covered by this block."""
        prefix = self.series.lower()
        for step in range(self.width):
            yield self.offset + step, f"{prefix}-{self.first_index + step}"


@dataclass(frozen=True)
class ImportLayout:
    blocks: Tuple[ScoreBlock, ...]
    comment_columns: Dict[str, int] = field(default_factory=dict)
    audit_reference_column: int = 1
    staff_name_column: int = 2
    store_branch_column: int = 3
    date_column: int = 4
    supervisor_column: int = 5
    overall_comment_column: int = 73
    min_columns: int = 70

    def score_columns(self) -> Iterator[Tuple[int, str]]:
        for block in self.blocks:
            yield from block.columns()

    def item_ids(self) -> List[str]:
        return [item_id for _, item_id in self.score_columns()]

    def series_widths(self) -> Dict[str, int]:
        widths: Dict[str, int] = {}
        for block in self.blocks:
            widths[block.series] = widths.get(block.series, 0) + block.width
        return widths

    def check(self, rubric: Rubric) -> List[str]:
        """Return human-readable problems; an empty list means the rubric fits."""
        problems: List[str] = []

        missing = [item_id for item_id in self.item_ids() if item_id not in rubric]
        if missing:
            problems.append(f"rubric is missing layout items {', '.join(missing)}")

        counts = rubric.series_counts()
        for series, width in self.series_widths().items():
            found = counts.get(series, 0)
            if found != width:
                problems.append(f"{series} has {found} rubric items but the layout expects {width}")
        return problems

    def validate(self, rubric: Rubric) -> None:
        problems = self.check(rubric)
        if problems:
            raise LayoutMismatchError(problems)


DEFAULT_LAYOUT = ImportLayout(
    blocks=(
        ScoreBlock(offset=6, width=17, series="S1"),
        ScoreBlock(offset=23, width=12, series="S2"),
        ScoreBlock(offset=36, width=9, series="S3"),
        ScoreBlock(offset=46, width=9, series="S4"),
        ScoreBlock(offset=56, width=9, series="S5"),
        # Follow-up extension of S5 after its comment column.
        ScoreBlock(offset=66, width=7, series="S5", first_index=10),
    ),
    comment_columns={"S2": 35, "S3": 45, "S4": 55, "S5": 65},
)
