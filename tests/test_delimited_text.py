from delimited_text import parse_rows, write_rows


def test_doubled_quote_inside_quotes_is_literal():
    assert parse_rows('a,"b,""c""",d') == [["a", 'b,"c"', "d"]]


def test_blank_rows_are_dropped_and_fields_trimmed():
    text = "a , b\n\n , \n\t\nc,  d  \n"
    assert parse_rows(text) == [["a", "b"], ["c", "d"]]


def test_bom_and_crlf_are_normalised():
    assert parse_rows("\ufeffh1,h2\r\nx,y\r\n") == [["h1", "h2"], ["x", "y"]]


def test_tabs_and_commas_mix_freely():
    assert parse_rows("a\tb,c\n1,2\t3") == [["a", "b", "c"], ["1", "2", "3"]]


def test_separators_and_newlines_inside_quotes_are_content():
    text = 'name,"line one\nline two, still\tquoted"\nnext'
    assert parse_rows(text) == [["name", "line one\nline two, still\tquoted"], ["next"]]


def test_unterminated_quote_runs_to_end_of_input():
    assert parse_rows('a,"bc\nd,e') == [["a", "bc\nd,e"]]


def test_trailing_separator_keeps_empty_last_field():
    assert parse_rows("a,b,") == [["a", "b", ""]]


def test_empty_input_yields_no_rows():
    assert parse_rows("") == []
    assert parse_rows("\n\n") == []


def test_written_rows_parse_back():
    rows = [["Reference", "Notes"], ["AUD-1", 'said "hi", then left']]
    assert parse_rows(write_rows(rows)) == rows


def test_write_rows_renders_none_as_empty():
    assert write_rows([["a", None, 3]]) == "a,,3\n"
