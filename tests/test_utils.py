from codejudge.core.utils import new_run_id, normalize_output


def test_trailing_newline_is_ignored():
    assert normalize_output("3\n") == normalize_output("3")


def test_blank_lines_and_trailing_spaces_dropped():
    assert normalize_output("a  \n\n\nb\t\n   \n") == "a\nb"


def test_internal_spacing_is_significant():
    assert normalize_output("1  2") != normalize_output("1 2")


def test_leading_spaces_are_kept():
    assert normalize_output("  x") == "  x"


def test_crlf_matches_lf():
    assert normalize_output("1\r\n2\r\n") == normalize_output("1\n2\n")


def test_normalize_is_idempotent():
    for text in ("", "\n\n", "a \nb\n\n", " x\r\n\ty  \n", "1 2 3"):
        once = normalize_output(text)
        assert normalize_output(once) == once


def test_run_ids_are_unique():
    assert len({new_run_id() for _ in range(50)}) == 50
