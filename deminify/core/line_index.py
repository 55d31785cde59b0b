"""Line offset index over a text buffer."""

from array import array
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Union

Buffer = Union[str, bytes]


def count_lines(text: Buffer) -> int:
    """Count lines the way editors do: newlines plus one."""
    newline = b"\n" if isinstance(text, bytes) else "\n"
    return text.count(newline) + 1


class LineIndex:
    """Offsets of every line start in a buffer.

    ``offsets[i]`` is the offset at which line ``i + 1`` begins. The buffer
    itself is kept by reference and never split into a list of lines, so
    lookups on very large files stay cheap in memory.
    """

    def __init__(self, text: Buffer):
        self.text = text
        self._newline = b"\n" if isinstance(text, bytes) else "\n"
        self._ascii = text.isascii()
        offsets = array("q", [0])
        find = text.find
        pos = find(self._newline)
        while pos != -1:
            offsets.append(pos + 1)
            pos = find(self._newline, pos + 1)
        self.offsets = offsets

    @property
    def total_lines(self) -> int:
        return len(self.offsets)

    def line_of(self, offset: int) -> int:
        """Return the 1-based line containing ``offset``."""
        return bisect_right(self.offsets, offset)

    def line_start(self, line: int) -> int:
        return self.offsets[line - 1]

    def line_content(self, line: int) -> Buffer:
        """Return the content of a 1-based line without its line ending.

        Out-of-range lines yield an empty buffer.
        """
        if line < 1 or line > self.total_lines:
            return self.text[:0]

        start = self.offsets[line - 1]
        if line < self.total_lines:
            end = self.offsets[line] - 1
        else:
            end = len(self.text)

        if end > start and self.text[end - 1:end] in ("\r", b"\r"):
            end -= 1
        return self.text[start:end]

    def position_of(self, offset: int) -> tuple[int, int]:
        """Map an offset to ``(line, column)`` with a character column.

        For byte buffers the column is converted from bytes to characters by
        decoding only the prefix of the containing line.
        """
        line = self.line_of(offset)
        start = self.offsets[line - 1]
        if self._ascii or isinstance(self.text, str):
            return line, offset - start
        prefix = self.text[start:offset]
        return line, len(prefix.decode("utf-8", errors="replace"))


@dataclass(frozen=True)
class TextBuffer:
    """Text of one processing stage together with its line index."""

    text: str
    line_index: LineIndex = field(compare=False, repr=False)

    @classmethod
    def of(cls, text: str) -> "TextBuffer":
        return cls(text=text, line_index=LineIndex(text))

    @property
    def total_lines(self) -> int:
        return self.line_index.total_lines

    def line(self, number: int) -> str:
        return self.line_index.line_content(number)
