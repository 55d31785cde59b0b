"""Core rendering, mapping, search and analysis functionality."""

from deminify.core.analyzer import AnalysisResult, Binding, LocationInfo, analyze_bindings, parse_code
from deminify.core.language import LanguageInfo, detect_language, get_language_info
from deminify.core.line_index import LineIndex, TextBuffer, count_lines
from deminify.core.position_map import Position, PositionMap, PositionMapBuilder, compose, compose_chain
from deminify.core.search import SearchMatch, SearchResult, create_regex, search_in_code
from deminify.core.truncator import truncate, truncate_fallback, truncate_long_lines

__all__ = [
    "AnalysisResult",
    "Binding",
    "LocationInfo",
    "analyze_bindings",
    "parse_code",
    "LanguageInfo",
    "detect_language",
    "get_language_info",
    "LineIndex",
    "TextBuffer",
    "count_lines",
    "Position",
    "PositionMap",
    "PositionMapBuilder",
    "compose",
    "compose_chain",
    "SearchMatch",
    "SearchResult",
    "create_regex",
    "search_in_code",
    "truncate",
    "truncate_fallback",
    "truncate_long_lines",
]
