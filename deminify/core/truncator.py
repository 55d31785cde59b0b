"""Line-preserving truncation of long literals and long lines.

Both rewrites keep the number of lines of the text unchanged, so a position
map computed for the untruncated text stays valid for the truncated one.
"""

import logging
import re

from deminify.core.parser import grammar_for, parse_source, walk

logger = logging.getLogger(__name__)

DEFAULT_CHAR_LIMIT = 300
DEFAULT_PREVIEW_LENGTH = 50
DEFAULT_MAX_LINE_CHARS = 500
DEFAULT_PREVIEW_RATIO = 0.2


# One escape sequence inside a string or template body, scanned left to right
# so that an escaped backslash is never taken as the start of another escape.
_ESCAPE = re.compile(r"\\(?:x[0-9a-fA-F]{0,2}|u\{[0-9a-fA-F]*\}?|u[0-9a-fA-F]{0,4}|[0-7]{1,3}|\r\n|[\s\S])?")


def _escape_safe_cuts(body: str, head_end: int, tail_start: int) -> tuple[int, int]:
    """Move both cut points off the inside of escape sequences.

    A cut inside an escape moves to the backslash that starts it: the head
    drops the partial escape and the tail keeps the whole one.
    """
    for match in _ESCAPE.finditer(body):
        start, end = match.span()
        if start >= tail_start:
            break
        if start < head_end < end:
            head_end = start
        if start < tail_start < end:
            tail_start = start
    return head_end, max(head_end, tail_start)


def truncate_literal_body(body: str, preview_length: int) -> str:
    """Shorten a literal body to ``head + marker + newlines + tail``.

    Head and tail never overlap, and the newlines of the removed middle are
    re-emitted after the marker, so the result has exactly as many newlines
    as ``body``.
    """
    preview = max(0, min(preview_length, len(body) // 2))
    head_end, tail_start = _escape_safe_cuts(body, preview, len(body) - preview)
    marker = f"...[TRUNCATED {len(body)} CHARS]..."
    preserved = body.count("\n", head_end, tail_start)
    return body[:head_end] + marker + "\n" * preserved + body[tail_start:]


def _literal_spans(node) -> list[tuple[int, int]]:
    """Byte spans of the raw body of a string literal or of template quasis."""
    if node.type == "string":
        return [(node.start_byte + 1, node.end_byte - 1)]

    # template_string: the text between the backticks and substitutions
    spans = []
    cursor = node.start_byte + 1
    for child in node.children:
        if child.type == "template_substitution":
            spans.append((cursor, child.start_byte))
            cursor = child.end_byte
    spans.append((cursor, node.end_byte - 1))
    return spans


def truncate(
    text: str,
    char_limit: int = DEFAULT_CHAR_LIMIT,
    preview_length: int = DEFAULT_PREVIEW_LENGTH,
    language: str = "javascript",
) -> str:
    """Truncate string and template literals longer than ``char_limit``.

    Args:
        text: Source code to process
        char_limit: Literal bodies longer than this many characters are cut
        preview_length: Characters kept at the start and end of a cut body
        language: Grammar used to find literals

    Returns:
        The rewritten text, or ``text`` unchanged when it does not parse
        cleanly
    """
    if not text:
        return text

    parsed = parse_source(text, grammar_for(language))
    if parsed.root.has_error:
        logger.debug("Skipping literal truncation: text has syntax errors")
        return text

    source_bytes = parsed.source_bytes
    edits: list[tuple[int, int, bytes]] = []
    for node in walk(parsed.root):
        if node.type not in ("string", "template_string"):
            continue
        for start, end in _literal_spans(node):
            if end <= start:
                continue
            body = source_bytes[start:end].decode("utf-8", errors="replace")
            if len(body) > char_limit:
                replacement = truncate_literal_body(body, preview_length)
                edits.append((start, end, replacement.encode("utf-8")))

    if not edits:
        return text

    # spans never overlap; apply back to front so offsets stay valid
    edits.sort()
    result = bytearray(source_bytes)
    for start, end, replacement in reversed(edits):
        result[start:end] = replacement
    logger.debug("Truncated %d literal spans", len(edits))
    return result.decode("utf-8", errors="replace")


def truncate_long_lines(
    text: str,
    max_line_chars: int = DEFAULT_MAX_LINE_CHARS,
    preview_ratio: float = DEFAULT_PREVIEW_RATIO,
) -> str:
    """Cut the middle out of lines longer than ``max_line_chars``."""
    if not text:
        return text

    preview = int(max_line_chars * preview_ratio)
    lines = text.split("\n")
    for index, line in enumerate(lines):
        if len(line) <= max_line_chars:
            continue
        start = line[:preview]
        end = line[-preview:] if preview > 0 else ""
        removed = len(line) - preview * 2
        lines[index] = f"{start}...[LINE TRUNCATED {removed} CHARS]...{end}"
    return "\n".join(lines)


def truncate_fallback(
    text: str,
    max_line_chars: int = DEFAULT_MAX_LINE_CHARS,
    preview_ratio: float = DEFAULT_PREVIEW_RATIO,
) -> str:
    """Truncation for text without a syntax tree: long lines only."""
    return truncate_long_lines(text, max_line_chars, preview_ratio)
