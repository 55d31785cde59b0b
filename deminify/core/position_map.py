"""Position maps between generated and original text, and their composition.

A ``PositionMap`` is the decoded form of a version 3 source map: for every
generated line an ordered list of segments, each pointing at a position in
one of the ``sources``. Lines are 1-based and columns 0-based throughout the
public API; the wire form uses the usual 0-based lines.
"""

import json
from bisect import bisect_right
from dataclasses import dataclass, field
from functools import reduce
from operator import attrgetter
from typing import Any, Iterator, NamedTuple, Optional, Sequence

from deminify.errors import PositionMapError

MAP_VERSION = 3

_BASE64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_BASE64_VALUES = {char: index for index, char in enumerate(_BASE64)}
_VLQ_SHIFT = 5
_VLQ_CONTINUATION = 1 << _VLQ_SHIFT
_VLQ_MASK = _VLQ_CONTINUATION - 1

_column_of = attrgetter("generated_column")


@dataclass(frozen=True, order=True)
class Position:
    """A point in a text: 1-based line, 0-based column."""

    line: int
    column: int


class Segment(NamedTuple):
    """One mapping point on a generated line.

    A segment without ``source_index`` is generated-only: it marks a column
    that deliberately maps to nothing.
    """

    generated_column: int
    source_index: Optional[int] = None
    original_line: Optional[int] = None
    original_column: Optional[int] = None
    name_index: Optional[int] = None

    @property
    def is_mapped(self) -> bool:
        return self.source_index is not None


def encode_vlq(value: int) -> str:
    """Encode a signed integer as a base64 VLQ string."""
    vlq = (-value << 1) | 1 if value < 0 else value << 1
    chars = []
    while True:
        digit = vlq & _VLQ_MASK
        vlq >>= _VLQ_SHIFT
        if vlq:
            digit |= _VLQ_CONTINUATION
        chars.append(_BASE64[digit])
        if not vlq:
            return "".join(chars)


def decode_vlq_segment(text: str) -> list[int]:
    """Decode every VLQ value in one comma-free segment string."""
    values = []
    shift = 0
    value = 0
    for char in text:
        digit = _BASE64_VALUES.get(char)
        if digit is None:
            raise PositionMapError(f"Invalid base64 character {char!r} in mappings segment {text!r}")
        value += (digit & _VLQ_MASK) << shift
        if digit & _VLQ_CONTINUATION:
            shift += _VLQ_SHIFT
            continue
        negative = value & 1
        value >>= 1
        values.append(-value if negative else value)
        value = 0
        shift = 0
    if shift:
        raise PositionMapError(f"Truncated VLQ value in mappings segment {text!r}")
    return values


@dataclass(frozen=True)
class PositionMap:
    """Decoded segment table from generated positions to original positions."""

    sources: tuple[str, ...]
    names: tuple[str, ...] = ()
    lines: tuple[tuple[Segment, ...], ...] = ()
    file: Optional[str] = field(default=None, compare=False)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def segments(self) -> Iterator[tuple[int, Segment]]:
        """Yield ``(generated_line, segment)`` in generated order."""
        for index, line_segments in enumerate(self.lines):
            for segment in line_segments:
                yield index + 1, segment

    def segment_at(self, line: int, column: int) -> Optional[Segment]:
        """Greatest segment on ``line`` whose column is ``<= column``."""
        if line < 1 or line > len(self.lines):
            return None
        line_segments = self.lines[line - 1]
        index = bisect_right(line_segments, column, key=_column_of)
        if index == 0:
            return None
        return line_segments[index - 1]

    def resolve(self, line: int, column: int) -> Optional[Position]:
        """Resolve a generated position to its original position.

        Uses nearest-preceding-segment semantics restricted to the same
        generated line; returns None when nothing precedes the column or the
        preceding segment is generated-only.
        """
        segment = self.segment_at(line, column)
        if segment is None or not segment.is_mapped:
            return None
        return Position(segment.original_line, segment.original_column)

    def resolve_line(self, line: int) -> Optional[Position]:
        """Original position of the first mapped segment on a generated line."""
        if line < 1 or line > len(self.lines):
            return None
        for segment in self.lines[line - 1]:
            if segment.is_mapped:
                return Position(segment.original_line, segment.original_column)
        return None

    def source_for(self, line: int, column: int) -> Optional[str]:
        segment = self.segment_at(line, column)
        if segment is None or not segment.is_mapped:
            return None
        return self.sources[segment.source_index]

    def name_for(self, segment: Segment) -> Optional[str]:
        if segment.name_index is None:
            return None
        return self.names[segment.name_index]

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def identity(cls, text: str, source: str) -> "PositionMap":
        """Map every line start of ``text`` onto itself."""
        builder = PositionMapBuilder(file=source)
        for line in range(1, text.count("\n") + 2):
            builder.add(line, 0, source, line, 0)
        return builder.build(line_count=text.count("\n") + 1)

    @classmethod
    def identity_like(cls, other: "PositionMap") -> "PositionMap":
        """Identity map over ``other``'s generated segment grid.

        Composing it (as the outer map) with ``other`` yields ``other``.
        """
        source = other.file or "<generated>"
        builder = PositionMapBuilder(file=other.file)
        for line, segment in other.segments():
            builder.add(line, segment.generated_column, source, line, segment.generated_column)
        return builder.build(line_count=other.line_count)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PositionMap":
        """Decode a version 3 source map dictionary.

        Raises:
            PositionMapError: On an unknown version or malformed fields.
        """
        version = raw.get("version")
        try:
            version = int(version)
        except (TypeError, ValueError):
            raise PositionMapError(f"Unsupported position map version: {version!r}") from None
        if version != MAP_VERSION:
            raise PositionMapError(f"Unsupported position map version: {version!r}")

        mappings = raw.get("mappings")
        if not isinstance(mappings, str):
            raise PositionMapError("Position map field 'mappings' must be a string")
        sources = raw.get("sources", [])
        names = raw.get("names", [])
        if not isinstance(sources, list) or not isinstance(names, list):
            raise PositionMapError("Position map fields 'sources' and 'names' must be lists")

        source_root = raw.get("sourceRoot") or ""
        sources = tuple(f"{source_root}{source}" if source_root else source for source in sources)

        lines = []
        source_index = original_line = original_column = name_index = 0
        for line_text in mappings.split(";"):
            generated_column = 0
            line_segments = []
            for segment_text in line_text.split(","):
                if not segment_text:
                    continue
                values = decode_vlq_segment(segment_text)
                if len(values) not in (1, 4, 5):
                    raise PositionMapError(
                        f"Position map segment {segment_text!r} has {len(values)} fields"
                    )
                generated_column += values[0]
                if len(values) == 1:
                    line_segments.append(Segment(generated_column))
                    continue
                source_index += values[1]
                original_line += values[2]
                original_column += values[3]
                if not 0 <= source_index < len(sources):
                    raise PositionMapError(
                        f"Position map segment {segment_text!r} references unknown source {source_index}"
                    )
                segment_name = None
                if len(values) == 5:
                    name_index += values[4]
                    if not 0 <= name_index < len(names):
                        raise PositionMapError(
                            f"Position map segment {segment_text!r} references unknown name {name_index}"
                        )
                    segment_name = name_index
                line_segments.append(
                    Segment(generated_column, source_index, original_line + 1, original_column, segment_name)
                )
            line_segments.sort(key=_column_of)
            lines.append(tuple(line_segments))

        return cls(
            sources=sources,
            names=tuple(names),
            lines=tuple(lines),
            file=raw.get("file"),
        )

    @classmethod
    def from_json(cls, text: str) -> "PositionMap":
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise PositionMapError(f"Position map is not valid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise PositionMapError("Position map must be a JSON object")
        return cls.from_dict(raw)

    def to_dict(self) -> dict[str, Any]:
        """Encode to a version 3 source map dictionary."""
        encoded_lines = []
        source_index = original_line = original_column = name_index = 0
        for line_segments in self.lines:
            generated_column = 0
            parts = []
            for segment in line_segments:
                fields = [encode_vlq(segment.generated_column - generated_column)]
                generated_column = segment.generated_column
                if segment.is_mapped:
                    fields.append(encode_vlq(segment.source_index - source_index))
                    fields.append(encode_vlq(segment.original_line - 1 - original_line))
                    fields.append(encode_vlq(segment.original_column - original_column))
                    source_index = segment.source_index
                    original_line = segment.original_line - 1
                    original_column = segment.original_column
                    if segment.name_index is not None:
                        fields.append(encode_vlq(segment.name_index - name_index))
                        name_index = segment.name_index
                parts.append("".join(fields))
            encoded_lines.append(",".join(parts))

        raw: dict[str, Any] = {
            "version": MAP_VERSION,
            "sources": list(self.sources),
            "names": list(self.names),
            "mappings": ";".join(encoded_lines),
        }
        if self.file is not None:
            raw["file"] = self.file
        return raw

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)


class PositionMapBuilder:
    """Accumulates mappings in generated order and interns sources and names."""

    def __init__(self, file: Optional[str] = None, sources: Sequence[str] = ()):
        self.file = file
        self._sources: list[str] = list(sources)
        self._source_index = {source: index for index, source in enumerate(self._sources)}
        self._names: list[str] = []
        self._name_index: dict[str, int] = {}
        self._lines: list[list[Segment]] = []

    def _intern_source(self, source: str) -> int:
        index = self._source_index.get(source)
        if index is None:
            index = len(self._sources)
            self._sources.append(source)
            self._source_index[source] = index
        return index

    def _intern_name(self, name: str) -> int:
        index = self._name_index.get(name)
        if index is None:
            index = len(self._names)
            self._names.append(name)
            self._name_index[name] = index
        return index

    def _line(self, line: int) -> list[Segment]:
        while len(self._lines) < line:
            self._lines.append([])
        return self._lines[line - 1]

    def add(
        self,
        generated_line: int,
        generated_column: int,
        source: str,
        original_line: int,
        original_column: int,
        name: Optional[str] = None,
    ) -> None:
        """Add a mapped point. Points must arrive in generated order."""
        line_segments = self._line(generated_line)
        name_index = self._intern_name(name) if name is not None else None
        segment = Segment(
            generated_column,
            self._intern_source(source),
            original_line,
            original_column,
            name_index,
        )
        self._append(line_segments, segment)

    def add_unmapped(self, generated_line: int, generated_column: int) -> None:
        self._append(self._line(generated_line), Segment(generated_column))

    @staticmethod
    def _append(line_segments: list[Segment], segment: Segment) -> None:
        if line_segments and line_segments[-1].generated_column == segment.generated_column:
            # first mapping at a column wins
            return
        if line_segments and line_segments[-1].generated_column > segment.generated_column:
            raise ValueError(
                f"Segments must be added in generated order (column {segment.generated_column} "
                f"after {line_segments[-1].generated_column})"
            )
        line_segments.append(segment)

    def build(self, line_count: Optional[int] = None) -> PositionMap:
        if line_count is not None:
            self._line(line_count)
        return PositionMap(
            sources=tuple(self._sources),
            names=tuple(self._names),
            lines=tuple(tuple(segments) for segments in self._lines),
            file=self.file,
        )


def compose(outer: PositionMap, inner: PositionMap) -> PositionMap:
    """Compose ``outer`` (C -> B) with ``inner`` (B -> A) into a C -> A map.

    Every segment of ``outer`` keeps its generated column and is resolved
    through ``inner``. Points that ``inner`` cannot resolve are kept as
    generated-only segments, so resolving them still yields None rather than
    falling back to an earlier segment.
    """
    builder = PositionMapBuilder(file=outer.file, sources=inner.sources)
    for line, segment in outer.segments():
        if not segment.is_mapped:
            builder.add_unmapped(line, segment.generated_column)
            continue
        inner_segment = inner.segment_at(segment.original_line, segment.original_column)
        if inner_segment is None or not inner_segment.is_mapped:
            builder.add_unmapped(line, segment.generated_column)
            continue
        name = inner.name_for(inner_segment) or outer.name_for(segment)
        builder.add(
            line,
            segment.generated_column,
            inner.sources[inner_segment.source_index],
            inner_segment.original_line,
            inner_segment.original_column,
            name,
        )
    return builder.build(line_count=outer.line_count)


def compose_chain(maps: Sequence[PositionMap]) -> PositionMap:
    """Collapse maps ordered last stage first into a single map.

    ``compose_chain([m3, m2, m1])`` maps the last stage's text (generated
    space of ``m3``) straight to the original source of ``m1``.
    """
    if not maps:
        raise ValueError("compose_chain() needs at least one map")
    return reduce(compose, maps)
