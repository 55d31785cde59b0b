"""Code printing with position maps derived by token alignment.

The printer (js-beautify's Python port) only changes layout: it moves tokens
around but keeps their text. Tokenizing both the input and the printed output
with the same grammar and pairing equal tokens therefore recovers, for every
printed token, the position it came from.
"""

import json
import logging
from dataclasses import dataclass
from typing import Sequence

import jsbeautifier

from deminify.core.parser import DEFAULT_MAX_ERROR_RATIO, Token, parse_source
from deminify.core.position_map import PositionMap, PositionMapBuilder
from deminify.errors import ParseError

logger = logging.getLogger(__name__)

# How far ahead (in tokens, both sides combined) alignment looks to resync
_RESYNC_WINDOW = 16


@dataclass
class PrintResult:
    """Printed text with a map from printed positions to input positions."""
    text: str
    map: PositionMap
    aligned_tokens: int
    total_tokens: int


def beautify_code(source_code: str, indent_size: int = 2) -> str:
    """Reformat JavaScript/TypeScript source for reading."""
    options = jsbeautifier.default_options()
    options.indent_size = indent_size
    options.eol = "\n"
    options.preserve_newlines = True
    options.max_preserve_newlines = 2
    options.end_with_newline = False
    return jsbeautifier.beautify(source_code, options)


def beautify_plain(text: str, language: str) -> str:
    """One-shot pretty print for formats without position map support."""
    if language == "json":
        try:
            return json.dumps(json.loads(text), indent=2, ensure_ascii=False)
        except json.JSONDecodeError:
            return text
    return text


def align_tokens(source_tokens: Sequence[Token], output_tokens: Sequence[Token]) -> list[tuple[Token, Token]]:
    """Pair equal tokens of two streams, in output order.

    Walks both streams in lockstep. On a mismatch it searches the nearest pair
    of offsets (up to a small window) at which the streams agree again, and
    skips the tokens in between on both sides.
    """
    pairs = []
    i = j = 0
    n, m = len(source_tokens), len(output_tokens)
    while i < n and j < m:
        if source_tokens[i].text == output_tokens[j].text:
            pairs.append((source_tokens[i], output_tokens[j]))
            i += 1
            j += 1
            continue

        resync = None
        for distance in range(1, _RESYNC_WINDOW + 1):
            for skip_source in range(distance + 1):
                skip_output = distance - skip_source
                si, oj = i + skip_source, j + skip_output
                if si < n and oj < m and source_tokens[si].text == output_tokens[oj].text:
                    resync = (si, oj)
                    break
            if resync is not None:
                break

        if resync is None:
            i += 1
            j += 1
        else:
            i, j = resync
    return pairs


def print_with_map(
    source_code: str,
    source_name: str,
    language: str = "javascript",
    indent_size: int = 2,
    max_error_ratio: float = DEFAULT_MAX_ERROR_RATIO,
) -> PrintResult:
    """Print source code and build the printed -> source position map.

    Args:
        source_code: Raw (usually minified) source text
        source_name: Name recorded in the map's sources table
        language: Grammar name used to tokenize input and output
        indent_size: Indent width for the printer
        max_error_ratio: Largest tolerated share of error nodes

    Returns:
        PrintResult with the printed text and its position map

    Raises:
        ParseError: If the source cannot be parsed even with error recovery
    """
    parsed = parse_source(source_code, language)
    if not parsed.is_recoverable(max_error_ratio):
        raise ParseError(
            f"Unrecoverable syntax errors in {source_name} "
            f"({parsed.error_ratio():.0%} of the file could not be parsed)"
        )
    if parsed.root.has_error:
        logger.debug("Printing %s with a partially recovered tree", source_name)

    printed_text = beautify_code(source_code, indent_size=indent_size)
    printed = parse_source(printed_text, language)

    source_tokens = parsed.tokens()
    output_tokens = printed.tokens()
    pairs = align_tokens(source_tokens, output_tokens)

    builder = PositionMapBuilder(file=source_name, sources=[source_name])
    for source_token, output_token in pairs:
        builder.add(
            output_token.line,
            output_token.column,
            source_name,
            source_token.line,
            source_token.column,
        )
    position_map = builder.build(line_count=printed.line_index.total_lines)

    logger.debug(
        "Aligned %d of %d printed tokens for %s",
        len(pairs),
        len(output_tokens),
        source_name,
    )
    return PrintResult(
        text=printed_text,
        map=position_map,
        aligned_tokens=len(pairs),
        total_tokens=len(output_tokens),
    )
