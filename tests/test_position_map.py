"""Tests for position maps and their composition."""

import json

import pytest

from deminify.core.position_map import (
    Position,
    PositionMap,
    PositionMapBuilder,
    Segment,
    compose,
    compose_chain,
    decode_vlq_segment,
    encode_vlq,
)
from deminify.errors import PositionMapError


def build(points, line_count=None, source="a.js", file=None):
    """Build a map from ``(gen_line, gen_col, orig_line, orig_col)`` points."""
    builder = PositionMapBuilder(file=file)
    for gen_line, gen_col, orig_line, orig_col in points:
        builder.add(gen_line, gen_col, source, orig_line, orig_col)
    return builder.build(line_count=line_count)


class TestVLQ:
    """Tests for base64 VLQ coding."""

    def test_encode_known_values(self):
        assert encode_vlq(0) == "A"
        assert encode_vlq(1) == "C"
        assert encode_vlq(-1) == "D"
        assert encode_vlq(16) == "gB"

    def test_decode_segment(self):
        assert decode_vlq_segment("AAgBC") == [0, 0, 16, 1]
        assert decode_vlq_segment("D") == [-1]

    def test_decode_rejects_bad_input(self):
        with pytest.raises(PositionMapError):
            decode_vlq_segment("A!")
        with pytest.raises(PositionMapError):
            decode_vlq_segment("g")


class TestResolve:
    """Tests for nearest-preceding-segment lookup."""

    def test_exact_and_preceding_segment(self):
        position_map = build([(1, 0, 1, 0), (1, 10, 1, 4)])

        assert position_map.resolve(1, 0) == Position(1, 0)
        assert position_map.resolve(1, 7) == Position(1, 0)
        assert position_map.resolve(1, 10) == Position(1, 4)
        assert position_map.resolve(1, 99) == Position(1, 4)

    def test_no_preceding_segment(self):
        position_map = build([(1, 5, 1, 0)], line_count=3)

        assert position_map.resolve(1, 2) is None
        assert position_map.resolve(2, 0) is None
        assert position_map.resolve(10, 0) is None

    def test_lookup_stays_on_generated_line(self):
        position_map = build([(1, 0, 1, 0), (2, 4, 1, 8)])

        assert position_map.resolve(2, 1) is None
        assert position_map.resolve(2, 4) == Position(1, 8)

    def test_unmapped_segment_resolves_to_none(self):
        builder = PositionMapBuilder()
        builder.add(1, 0, "a.js", 1, 0)
        builder.add_unmapped(1, 5)
        position_map = builder.build()

        assert position_map.resolve(1, 3) == Position(1, 0)
        assert position_map.resolve(1, 6) is None

    def test_resolve_line_uses_first_mapped_segment(self):
        builder = PositionMapBuilder()
        builder.add_unmapped(1, 0)
        builder.add(1, 4, "a.js", 3, 7)
        builder.add(1, 9, "a.js", 3, 12)
        position_map = builder.build(line_count=2)

        assert position_map.resolve_line(1) == Position(3, 7)
        assert position_map.resolve_line(2) is None

    def test_builder_rejects_out_of_order_columns(self):
        builder = PositionMapBuilder()
        builder.add(1, 10, "a.js", 1, 0)
        with pytest.raises(ValueError):
            builder.add(1, 3, "a.js", 1, 0)

    def test_identity(self):
        position_map = PositionMap.identity("a\nb\nc", "a.js")

        assert position_map.line_count == 3
        assert position_map.resolve(2, 0) == Position(2, 0)
        assert position_map.source_for(3, 0) == "a.js"


class TestSerialization:
    """Tests for the version 3 wire form."""

    def test_round_trip_keeps_segments_and_names(self):
        builder = PositionMapBuilder(file="out.js")
        builder.add(1, 0, "a.js", 1, 0)
        builder.add(1, 4, "a.js", 1, 4, "value")
        builder.add(3, 2, "b.js", 7, 1)
        position_map = builder.build()

        restored = PositionMap.from_json(position_map.to_json())

        assert restored == position_map
        assert restored.file == "out.js"
        assert restored.names == ("value",)
        assert restored.source_for(3, 2) == "b.js"

    def test_to_dict_fields(self):
        raw = build([(1, 0, 1, 0)], file="out.js").to_dict()

        assert raw["version"] == 3
        assert raw["sources"] == ["a.js"]
        assert raw["mappings"] == "AAAA"
        assert raw["file"] == "out.js"

    def test_from_dict_decodes_mappings(self):
        position_map = PositionMap.from_dict({
            "version": 3,
            "sources": ["a.js"],
            "names": [],
            "mappings": "AAAA,IAAI;AACA",
        })

        assert position_map.resolve(1, 4) == Position(1, 4)
        assert position_map.resolve(2, 0) == Position(2, 4)

    def test_source_root_is_prefixed(self):
        position_map = PositionMap.from_dict({
            "version": 3,
            "sourceRoot": "src/",
            "sources": ["a.js"],
            "mappings": "AAAA",
        })

        assert position_map.sources == ("src/a.js",)

    def test_unknown_version_is_rejected(self):
        with pytest.raises(PositionMapError, match="version"):
            PositionMap.from_dict({"version": 2, "sources": [], "mappings": ""})

    def test_bad_source_index_is_rejected(self):
        with pytest.raises(PositionMapError):
            PositionMap.from_dict({"version": 3, "sources": [], "mappings": "AAAA"})

    def test_invalid_json_is_rejected(self):
        with pytest.raises(PositionMapError):
            PositionMap.from_json("{not json")
        with pytest.raises(PositionMapError):
            PositionMap.from_json(json.dumps([1, 2]))


class TestCompose:
    """Tests for composing maps across processing stages."""

    def test_compose_resolves_through_both_maps(self):
        outer = build([(1, 0, 1, 5)], source="b.js")
        inner = build([(1, 0, 9, 9), (1, 5, 3, 2)], source="a.js")

        composed = compose(outer, inner)

        assert composed.resolve(1, 0) == Position(3, 2)
        assert composed.sources == ("a.js",)

    def test_compose_miss_becomes_unmapped(self):
        outer = build([(1, 0, 1, 0), (1, 6, 2, 0)], source="b.js")
        inner = build([(1, 0, 4, 4)], line_count=2, source="a.js")

        composed = compose(outer, inner)

        assert composed.resolve(1, 3) == Position(4, 4)
        # the inner map has nothing on line 2, so the segment must not fall back
        assert composed.resolve(1, 8) is None
        assert composed.lines[0][1] == Segment(6)

    def test_compose_is_associative(self):
        m3 = build([(1, 0, 1, 0), (1, 4, 1, 2), (2, 0, 1, 6)], source="c.js")
        m2 = build([(1, 0, 2, 0), (1, 2, 2, 3), (1, 6, 3, 1)], source="b.js")
        m1 = build([(2, 0, 5, 0), (2, 3, 5, 9), (3, 0, 7, 7)], source="a.js")

        left = compose(compose(m3, m2), m1)
        right = compose(m3, compose(m2, m1))

        assert left == right
        assert compose_chain([m3, m2, m1]) == left

    def test_identity_like_is_neutral(self):
        builder = PositionMapBuilder(file="out.js")
        builder.add(1, 0, "a.js", 1, 0)
        builder.add_unmapped(1, 3)
        builder.add(1, 8, "a.js", 1, 5)
        builder.add(2, 2, "a.js", 2, 0)
        position_map = builder.build()

        assert compose(PositionMap.identity_like(position_map), position_map) == position_map

    def test_compose_chain_needs_a_map(self):
        with pytest.raises(ValueError):
            compose_chain([])
