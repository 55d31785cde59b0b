"""Regex and literal search over rendered text with original coordinates."""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Optional

from deminify.core.line_index import LineIndex
from deminify.core.position_map import Position, PositionMap
from deminify.errors import InvalidPatternError

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_LINES = 2
DEFAULT_MAX_MATCHES = 50
DEFAULT_TIMEOUT_MS = 500


@dataclass
class ContextLine:
    """A line shown around a match."""
    line: int
    content: str
    original: Optional[Position] = None


@dataclass
class SearchMatch:
    """First match on one rendered line, with surrounding lines."""
    line: int
    content: str
    original: Optional[Position] = None
    context_before: list[ContextLine] = field(default_factory=list)
    context_after: list[ContextLine] = field(default_factory=list)


@dataclass
class SearchResult:
    """Matches found by a search.

    ``total_matches`` counts distinct matching lines, ``matches`` holds at
    most ``max_matches`` of them.
    """
    matches: list[SearchMatch]
    total_matches: int
    truncated: bool
    timed_out: bool = False


def create_regex(query: str, case_sensitive: bool = False, is_regex: bool = False) -> re.Pattern:
    """Compile a search query.

    Literal queries are escaped first. Matching is multiline, and case
    insensitive unless ``case_sensitive`` is set.

    Raises:
        InvalidPatternError: If the pattern does not compile
    """
    flags = re.MULTILINE
    if not case_sensitive:
        flags |= re.IGNORECASE
    pattern = query if is_regex else re.escape(query)
    try:
        return re.compile(pattern, flags)
    except re.error as e:
        raise InvalidPatternError(f"Invalid regex {query!r}: {e}") from None


def _resolve(position_map: Optional[PositionMap], line: int) -> Optional[Position]:
    if position_map is None:
        return None
    return position_map.resolve_line(line)


def _context(
    index: LineIndex,
    position_map: Optional[PositionMap],
    first: int,
    last: int,
) -> list[ContextLine]:
    return [
        ContextLine(line=number, content=index.line_content(number), original=_resolve(position_map, number))
        for number in range(first, last + 1)
    ]


def search_in_code(
    text: str,
    position_map: Optional[PositionMap],
    query: str,
    *,
    is_regex: bool = False,
    case_sensitive: bool = False,
    context_lines: int = DEFAULT_CONTEXT_LINES,
    max_matches: int = DEFAULT_MAX_MATCHES,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
) -> SearchResult:
    """Search rendered text and resolve each matching line to the original file.

    Only the first match on a line is reported. Matching stops early, keeping
    the counts gathered so far, once ``timeout_ms`` has elapsed.

    Args:
        text: Rendered (possibly truncated) text
        position_map: Map from ``text`` to the original file, or None
        query: Literal text or regular expression
        is_regex: Treat ``query`` as a regular expression
        case_sensitive: Match case exactly
        context_lines: Lines of context before and after each match
        max_matches: Matches materialized in the result
        timeout_ms: Soft time budget for scanning

    Returns:
        SearchResult with at most ``max_matches`` matches

    Raises:
        InvalidPatternError: If ``query`` is not a valid pattern
    """
    regex = create_regex(query, case_sensitive=case_sensitive, is_regex=is_regex)
    index = LineIndex(text)
    total_lines = index.total_lines

    matches: list[SearchMatch] = []
    total = 0
    last_line = -1
    timed_out = False
    deadline = time.monotonic() + timeout_ms / 1000

    for match in regex.finditer(text):
        if time.monotonic() > deadline:
            timed_out = True
            logger.debug("Search for %r stopped after %d ms", query, timeout_ms)
            break

        line = index.line_of(match.start())
        if line == last_line:
            continue
        last_line = line
        total += 1

        if len(matches) < max_matches:
            matches.append(SearchMatch(
                line=line,
                content=index.line_content(line),
                original=_resolve(position_map, line),
                context_before=_context(index, position_map, max(1, line - context_lines), line - 1),
                context_after=_context(index, position_map, line + 1, min(total_lines, line + context_lines)),
            ))

    return SearchResult(
        matches=matches,
        total_matches=total,
        truncated=total > max_matches,
        timed_out=timed_out,
    )
