"""Tests for the line offset index."""

from deminify.core.line_index import LineIndex, TextBuffer, count_lines


class TestCountLines:
    """Tests for count_lines."""

    def test_counts_newlines_plus_one(self):
        assert count_lines("") == 1
        assert count_lines("a") == 1
        assert count_lines("a\nb\n") == 3
        assert count_lines(b"a\nb") == 2


class TestLineIndex:
    """Tests for LineIndex."""

    def test_line_of_offsets(self):
        index = LineIndex("ab\ncd\n\nef")

        assert index.total_lines == 4
        assert index.line_of(0) == 1
        assert index.line_of(2) == 1
        assert index.line_of(3) == 2
        assert index.line_of(6) == 3
        assert index.line_of(7) == 4

    def test_line_content(self):
        index = LineIndex("first\r\nsecond\nthird")

        assert index.line_content(1) == "first"
        assert index.line_content(2) == "second"
        assert index.line_content(3) == "third"
        assert index.line_content(0) == ""
        assert index.line_content(4) == ""

    def test_position_of_counts_characters_in_bytes(self):
        index = LineIndex("x\né=1".encode("utf-8"))

        # "é" is two bytes, so "=" sits at byte 4 but character column 1
        assert index.position_of(4) == (2, 1)
        assert index.position_of(0) == (1, 0)

    def test_line_start(self):
        index = LineIndex("a\nbb\nccc")

        assert index.line_start(3) == 5


class TestTextBuffer:
    """Tests for TextBuffer."""

    def test_lines(self):
        buffer = TextBuffer.of("one\ntwo")

        assert buffer.total_lines == 2
        assert buffer.line(2) == "two"
