# tests/test_query.py
import pytest

from pesign_repackage.errors import QueryError
from pesign_repackage.query import RpmQuery, parse_multiline, parse_rows


def test_multiline_empty_stream():
    assert parse_multiline("") == []


def test_multiline_none_sentinel():
    assert parse_multiline("(none)\n") == []


def test_multiline_without_delimiter_is_empty():
    assert parse_multiline("garbage\n|||\nfoo\n") == []


def test_multiline_elements():
    out = "|||\necho one\n|||\nline1\nline2\n"
    assert parse_multiline(out) == ["echo one", "line1\nline2"]


def test_multiline_blank_element_is_empty_string():
    out = "|||\n\n|||\nbody\n"
    assert parse_multiline(out) == ["", "body"]


def test_multiline_keeps_inner_blank_lines():
    out = "|||\na\n\nb\n"
    assert parse_multiline(out) == ["a\n\nb"]


def test_rows_normalize_none():
    out = "foo|(none)|1\nbar|8|2\n"
    assert parse_rows(out, 3) == [["foo", "", "1"], ["bar", "8", "2"]]


def test_rows_skip_empty_rows():
    assert parse_rows("(none)|(none)\n", 2) == []


def test_rows_column_mismatch():
    with pytest.raises(QueryError):
        parse_rows("a|b|c\n", 2)


def test_query_failure_is_fatal(tmp_path):
    q = RpmQuery(str(tmp_path / "missing.rpm"), rpm_binary=str(tmp_path / "no-such-rpm"))
    with pytest.raises(QueryError):
        q.scalar("NAME")


def test_query_nonzero_exit(tmp_path):
    q = RpmQuery(str(tmp_path / "missing.rpm"), rpm_binary="false")
    with pytest.raises(QueryError, match="failed"):
        q.scalar("NAME")


def test_query_uses_format(monkeypatch):
    seen = []

    def fake_format(self, fmt):
        seen.append(fmt)
        return "|||\nbody\n"

    monkeypatch.setattr(RpmQuery, "format", fake_format)
    q = RpmQuery("x.rpm")
    assert q.multiline_array("TRIGGERSCRIPTS") == ["body"]
    assert seen == ["[|||\\n%{TRIGGERSCRIPTS}\\n]"]
