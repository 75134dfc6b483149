import pytest

from import_layout import DEFAULT_LAYOUT, ImportLayout, LayoutMismatchError, ScoreBlock
from rubric import DEFAULT_RUBRIC, Rubric, RubricItem


def test_default_layout_covers_default_rubric():
    assert DEFAULT_LAYOUT.check(DEFAULT_RUBRIC) == []
    DEFAULT_LAYOUT.validate(DEFAULT_RUBRIC)


def test_default_layout_column_table():
    columns = dict(DEFAULT_LAYOUT.score_columns())
    assert columns[6] == "s1-1"
    assert columns[22] == "s1-17"
    assert columns[23] == "s2-1"
    assert columns[36] == "s3-1"
    assert columns[46] == "s4-1"
    assert columns[64] == "s5-9"
    assert columns[66] == "s5-10"
    assert columns[72] == "s5-16"
    assert len(columns) == 63
    assert DEFAULT_LAYOUT.series_widths()["S5"] == 16


def test_score_block_ids_start_at_first_index():
    block = ScoreBlock(offset=10, width=2, series="S5", first_index=10)
    assert list(block.columns()) == [(10, "s5-10"), (11, "s5-11")]


def test_rubric_with_fewer_items_is_rejected():
    trimmed = Rubric([item for item in DEFAULT_RUBRIC if item.id != "s3-9"])

    with pytest.raises(LayoutMismatchError) as excinfo:
        DEFAULT_LAYOUT.validate(trimmed)

    problems = excinfo.value.problems
    assert any("s3-9" in problem for problem in problems)
    assert "S3 has 8 rubric items but the layout expects 9" in problems


def test_extra_series_item_is_a_count_mismatch():
    extended = Rubric(DEFAULT_RUBRIC.items + [RubricItem("s1-18", "S1: Foundation | Extra", "Extra")])
    assert DEFAULT_LAYOUT.check(extended) == ["S1 has 18 rubric items but the layout expects 17"]


def test_layout_mismatch_is_a_value_error():
    layout = ImportLayout(blocks=(ScoreBlock(offset=6, width=1, series="S1"),))
    with pytest.raises(ValueError):
        layout.validate(Rubric([RubricItem("x-1", "X: Other", "t")]))
