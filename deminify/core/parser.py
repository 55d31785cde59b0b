"""JavaScript/TypeScript parsing using tree-sitter."""

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterator, Optional

import tree_sitter_javascript as tsjavascript
import tree_sitter_typescript as tstypescript
from tree_sitter import Language, Node, Parser, Tree

from deminify.core.line_index import LineIndex
from deminify.core.position_map import Position

DEFAULT_MAX_ERROR_RATIO = 0.5

_GRAMMARS = {
    "javascript": tsjavascript.language,
    "typescript": tstypescript.language_typescript,
    "tsx": tstypescript.language_tsx,
}


@lru_cache(maxsize=None)
def get_language(language: str) -> Language:
    """Return the tree-sitter grammar for a language name.

    Unknown names fall back to JavaScript, which also covers JSX.
    """
    factory = _GRAMMARS.get(language, tsjavascript.language)
    return Language(factory())


@dataclass
class Token:
    """A leaf of the syntax tree with its text and position."""
    text: str
    start_byte: int
    end_byte: int
    line: int
    column: int
    node_type: str


@dataclass
class ParsedSource:
    """Result of parsing a source buffer."""
    source_code: str
    source_bytes: bytes
    tree: Tree
    language: str
    line_index: LineIndex = field(repr=False)

    @property
    def root(self) -> Node:
        return self.tree.root_node

    def position(self, byte_offset: int) -> Position:
        """Position (1-based line, character column) of a byte offset."""
        line, column = self.line_index.position_of(byte_offset)
        return Position(line, column)

    def node_position(self, node: Node) -> Position:
        return self.position(node.start_byte)

    def text_of(self, node: Node) -> str:
        return self.source_bytes[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    def error_ratio(self) -> float:
        """Share of the buffer covered by error nodes."""
        if not self.root.has_error:
            return 0.0
        covered = 0
        stack = [self.root]
        while stack:
            node = stack.pop()
            if node.is_error:
                covered += node.end_byte - node.start_byte
                continue
            if node.has_error:
                stack.extend(node.children)
        return covered / max(1, len(self.source_bytes))

    def is_recoverable(self, max_error_ratio: float = DEFAULT_MAX_ERROR_RATIO) -> bool:
        """Whether the tree is usable despite any syntax errors."""
        if not self.root.has_error:
            return True
        if self.root.is_error:
            return False
        return self.error_ratio() <= max_error_ratio

    def tokens(self) -> list[Token]:
        """Non-empty leaves of the tree in source order."""
        result = []
        for node in walk(self.root):
            if node.child_count or node.end_byte <= node.start_byte:
                continue
            line, column = self.line_index.position_of(node.start_byte)
            result.append(Token(
                text=self.source_bytes[node.start_byte:node.end_byte].decode("utf-8", errors="replace"),
                start_byte=node.start_byte,
                end_byte=node.end_byte,
                line=line,
                column=column,
                node_type=node.type,
            ))
        return result


def walk(root: Node) -> Iterator[Node]:
    """Pre-order traversal without recursion (minified files nest deeply)."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        children = node.children
        if children:
            stack.extend(reversed(children))


def parse_source(source_code: str, language: str = "javascript") -> ParsedSource:
    """Parse JavaScript or TypeScript source code.

    Args:
        source_code: The source text to parse
        language: Grammar name (javascript, typescript or tsx)

    Returns:
        ParsedSource holding the tree and position helpers
    """
    source_bytes = source_code.encode("utf-8")
    parser = Parser(get_language(language))
    tree = parser.parse(source_bytes)
    return ParsedSource(
        source_code=source_code,
        source_bytes=source_bytes,
        tree=tree,
        language=language,
        line_index=LineIndex(source_bytes),
    )


def grammar_for(language: Optional[str]) -> str:
    """Pick the grammar name for a detected language."""
    if language in _GRAMMARS:
        return language
    return "javascript"
