"""Text reports for read, search and binding analysis results."""

from typing import Optional, Sequence

from deminify.core.analyzer import AnalysisResult, LocationInfo
from deminify.core.position_map import Position
from deminify.core.search import SearchResult

SOURCE_LEGEND = "Src=original position for breakpoints"
HIT_MARKER = "  <-- hit"
_SOURCE_WIDTH = 10


def format_source_position(position: Optional[Position]) -> str:
    """``L<line>:<column>``, or empty when there is no original position."""
    if position is None:
        return ""
    return f"L{position.line}:{position.column}"


def format_code_line(
    line_number: int,
    position: Optional[Position],
    content: str,
    number_width: int,
    prefix: str = "",
) -> str:
    source = format_source_position(position).ljust(_SOURCE_WIDTH)
    return f"{prefix}{str(line_number).rjust(number_width)} {source} {content}"


def format_read_result(
    file_path: str,
    lines: Sequence[tuple[int, Optional[Position], str]],
    total_lines: int,
    local_path: Optional[str] = None,
    local_map_path: Optional[str] = None,
    local_save_error: Optional[str] = None,
    note: Optional[str] = None,
) -> str:
    """Format a range of rendered lines with their original positions.

    Args:
        file_path: Path shown in the header
        lines: ``(line_number, original_position, content)`` triples
        total_lines: Line count of the whole rendered text
        local_path: Saved local copy, if any
        local_map_path: Saved local map, if any
        local_save_error: Why saving the local copy failed, if it did
        note: Extra header line (e.g. why no positions are shown)
    """
    start = lines[0][0] if lines else 0
    end = lines[-1][0] if lines else 0
    parts = [f"{file_path} ({start}-{end}/{total_lines})", SOURCE_LEGEND]
    if note:
        parts.append(note)
    if local_path:
        parts.append(f"LOCAL: {local_path}")
        if local_map_path:
            parts.append(f"MAP: {local_map_path}")
    if local_save_error:
        parts.append(f"ERROR: {local_save_error}")

    width = len(str(end))
    for line_number, position, content in lines:
        parts.append(format_code_line(line_number, position, content, width))

    if end and end < total_lines:
        parts.append(f"\n... (Use next start_line={end + 1} to read more)")
    return "\n".join(parts)


def format_search_result(
    file_path: str,
    query: str,
    result: SearchResult,
    case_sensitive: bool = False,
    is_regex: bool = False,
    max_matches: int = 50,
) -> str:
    """Format search matches with context and original positions."""
    mode = "regex" if is_regex else "literal"
    case = "case-sensitive" if case_sensitive else "case-insensitive"
    parts = [file_path, f'Query="{query}" ({mode}, {case})', SOURCE_LEGEND]

    if result.total_matches == 0:
        parts.append("Matches: None")
        return "\n".join(parts)

    if result.truncated:
        parts.append(f"Matches: {result.total_matches} (showing first {max_matches})")
    else:
        parts.append(f"Matches: {result.total_matches}")

    for match in result.matches:
        parts.append(f"--- Line {match.line} ---")
        numbers = [c.line for c in match.context_before] + [match.line] + [c.line for c in match.context_after]
        width = max(len(str(n)) for n in numbers)
        for context in match.context_before:
            parts.append(format_code_line(context.line, context.original, context.content, width, "  "))
        parts.append(format_code_line(match.line, match.original, match.content, width, ">>"))
        for context in match.context_after:
            parts.append(format_code_line(context.line, context.original, context.content, width, "  "))

    if result.truncated:
        parts.append(f"\n... ({result.total_matches - max_matches} more matches not shown)")
    if result.timed_out:
        parts.append("... (search stopped early: time budget exceeded)")
    return "\n".join(parts)


def _location_line(location: LocationInfo, is_hit: bool) -> str:
    marker = HIT_MARKER if is_hit else ""
    return format_code_line(location.line, location.original, location.line_content + marker, 5, "  ")


def format_analysis_result(file_path: str, result: AnalysisResult) -> str:
    """Format bindings grouped by scope, marking the hit of a targeted lookup."""
    parts = [file_path, f'Identifier="{result.identifier}"', SOURCE_LEGEND]

    if not result.bindings:
        if result.is_targeted:
            parts.append(f"Bindings: None at line {result.target_line}")
            parts.append("The variable may be global, externally defined, or not present at this line.")
        else:
            parts.append("Bindings: None")
        return "\n".join(parts)

    if result.is_targeted:
        parts.append(f"Bindings: 1 (Targeted at line {result.target_line})")
    elif len(result.bindings) > 1:
        parts.append(f"Bindings: {len(result.bindings)} (different scopes)")
    else:
        parts.append("Bindings: 1")

    for index, binding in enumerate(result.bindings, start=1):
        if result.is_targeted:
            parts.append(f"--- Targeted Scope ({binding.kind}) ---")
        else:
            parts.append(f"--- Scope #{index} ({binding.kind}) ---")

        definition_is_hit = result.is_targeted and binding.definition.same_place(binding.hit_location)
        parts.append("Definition (hit):" if definition_is_hit else "Definition:")
        parts.append(_location_line(binding.definition, definition_is_hit))

        if binding.total_reference_count == 0:
            parts.append("References: None")
            continue

        parts.append(f"References ({binding.total_reference_count}):")
        for reference in binding.references:
            is_hit = result.is_targeted and reference.same_place(binding.hit_location)
            parts.append(_location_line(reference, is_hit))
        if binding.total_reference_count > len(binding.references):
            remaining = binding.total_reference_count - len(binding.references)
            parts.append(f"  ... ({remaining} more references not shown)")

    return "\n".join(parts)
