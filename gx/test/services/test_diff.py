"""Tests for gx.services.diff."""

from __future__ import annotations

from gx.services.diff import generate_diff


class TestGenerateDiff:
    def test_equal_is_empty(self) -> None:
        assert generate_diff("a\n", "a\n", path="x") == ""

    def test_headers_and_lines(self) -> None:
        diff = generate_diff("one\ntwo\n", "one\nthree\n", path="f.txt")

        lines = diff.splitlines()
        assert lines[0] == "--- a/f.txt"
        assert lines[1] == "+++ b/f.txt"
        assert "-two" in lines
        assert "+three" in lines

    def test_context_lines(self) -> None:
        old = "\n".join(str(i) for i in range(10))
        new = old.replace("5", "five")

        narrow = generate_diff(old, new, context=0)
        wide = generate_diff(old, new, context=3)

        assert " 4" not in narrow.splitlines()
        assert " 4" in wide.splitlines()

    def test_new_file(self) -> None:
        diff = generate_diff("", "hello\n", path="notes.txt")
        assert "+hello" in diff.splitlines()
