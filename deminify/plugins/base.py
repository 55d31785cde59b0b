"""Base transform plugin interface and the visitor runner."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Optional

from tree_sitter import Node

from deminify.core.line_index import count_lines
from deminify.core.parser import ParsedSource, grammar_for, parse_source
from deminify.core.position_map import PositionMap, PositionMapBuilder, compose_chain
from deminify.core.printer import print_with_map
from deminify.errors import ParseError

logger = logging.getLogger(__name__)

Handler = Callable[[Node, "TransformContext"], Optional[str]]


@dataclass
class TransformContext:
    """Context passed to plugin handlers during a transform."""
    source_code: str
    file_path: Optional[Path] = None
    language: str = "javascript"
    metadata: dict[str, Any] = None
    parsed: Optional[ParsedSource] = field(default=None, repr=False)

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}

    @property
    def source_name(self) -> str:
        return self.file_path.name if self.file_path else "<input>"

    def text_of(self, node: Node) -> str:
        """Source text of a node of the tree being transformed."""
        return self.parsed.text_of(node)


@dataclass
class TransformOutput:
    """Transformed text and its map back to the transform's input.

    ``map`` is None when no plugin ran and the text is unchanged.
    """
    text: str
    map: Optional[PositionMap]
    replacements: int = 0


class TransformPlugin(ABC):
    """Abstract base class for transform plugins.

    A plugin supplies a visitor table keyed by tree-sitter node type. Each
    handler gets ``(node, context)`` and returns replacement text for the
    whole node, or None to leave it alone and descend into its children.
    """

    name: str = "base_plugin"
    description: str = "Base plugin class"
    priority: int = 100  # Lower priority runs first

    @abstractmethod
    def visitor(self) -> dict[str, Handler]:
        """Return the handlers of this plugin keyed by node type."""
        pass

    def should_run(self, context: TransformContext) -> bool:
        """Determine if this plugin should run.

        Args:
            context: Current transform context

        Returns:
            True if plugin should run
        """
        return True


class VisitorPlugin(TransformPlugin):
    """Plugin built from a plain visitor dict."""

    def __init__(self, handlers: dict[str, Handler], name: str = "visitor", priority: int = 100):
        self.handlers = dict(handlers)
        self.name = name
        self.description = f"Visitor plugin {name}"
        self.priority = priority

    def visitor(self) -> dict[str, Handler]:
        return self.handlers


def apply_visitor(text: str, plugin: TransformPlugin, context: TransformContext) -> TransformOutput:
    """Run one plugin's visitor over ``text``.

    The tree is walked in pre-order. A replacement covers the node's whole
    span and its descendants are not visited. Untouched tokens keep a 1:1
    mapping; replaced text maps to the start of the node it replaced.

    Raises:
        ParseError: If ``text`` cannot be parsed
    """
    parsed = parse_source(text, grammar_for(context.language))
    if not parsed.is_recoverable():
        raise ParseError(f"Cannot transform {context.source_name}: input has unrecoverable syntax errors")
    context.parsed = parsed
    handlers = plugin.visitor()

    edits: list[tuple[Node, str]] = []
    stack = [parsed.root]
    while stack:
        node = stack.pop()
        handler = handlers.get(node.type)
        if handler is not None:
            replacement = handler(node, context)
            if replacement is not None and replacement != parsed.text_of(node):
                edits.append((node, replacement))
                continue
        children = node.children
        if children:
            stack.extend(reversed(children))

    return _splice(parsed, edits, context.source_name)


def _splice(parsed: ParsedSource, edits: list[tuple[Node, str]], source_name: str) -> TransformOutput:
    """Apply non-overlapping edits and map every output token back."""
    source_bytes = parsed.source_bytes
    builder = PositionMapBuilder(file=source_name, sources=[source_name])
    pieces: list[str] = []
    line, column = 1, 0

    def emit(piece: str) -> None:
        nonlocal line, column
        if not piece:
            return
        pieces.append(piece)
        newlines = piece.count("\n")
        if newlines:
            line += newlines
            column = len(piece) - piece.rfind("\n") - 1
        else:
            column += len(piece)

    def gap(start: int, end: int) -> None:
        if end > start:
            emit(source_bytes[start:end].decode("utf-8", errors="replace"))

    tokens = parsed.tokens()
    token_index = 0
    cursor = 0

    def copy_tokens_until(limit: int) -> None:
        nonlocal token_index, cursor
        while token_index < len(tokens) and tokens[token_index].start_byte < limit:
            token = tokens[token_index]
            token_index += 1
            if token.start_byte < cursor:
                continue
            gap(cursor, token.start_byte)
            builder.add(line, column, source_name, token.line, token.column)
            emit(token.text)
            cursor = token.end_byte

    for node, replacement in sorted(edits, key=lambda edit: edit[0].start_byte):
        copy_tokens_until(node.start_byte)
        gap(cursor, node.start_byte)
        origin = parsed.node_position(node)
        name = parsed.text_of(node) if node.type == "identifier" else None
        builder.add(line, column, source_name, origin.line, origin.column, name)
        first_line = line
        emit(replacement)
        for extra_line in range(first_line + 1, line + 1):
            builder.add(extra_line, 0, source_name, origin.line, origin.column, name)
        cursor = node.end_byte
        # skip tokens swallowed by the replacement
        while token_index < len(tokens) and tokens[token_index].start_byte < cursor:
            token_index += 1

    copy_tokens_until(len(source_bytes) + 1)
    gap(cursor, len(source_bytes))

    text = "".join(pieces)
    return TransformOutput(
        text=text,
        map=builder.build(line_count=count_lines(text)),
        replacements=len(edits),
    )


class PluginChain:
    """Manages a chain of transform plugins to apply sequentially."""

    def __init__(self):
        self.plugins: list[TransformPlugin] = []

    def add_plugin(self, plugin: TransformPlugin) -> "PluginChain":
        """Add a plugin to the chain.

        Args:
            plugin: Plugin to add

        Returns:
            Self for chaining
        """
        self.plugins.append(plugin)
        # Sort by priority
        self.plugins.sort(key=lambda p: p.priority)
        return self

    async def run(
        self,
        context: TransformContext,
        reformat: bool = False,
        indent_size: int = 2,
    ) -> TransformOutput:
        """Run all plugins in sequence and compose their maps.

        Args:
            context: Initial context holding the text to transform
            reformat: Re-print the final text for readability
            indent_size: Indent width used when re-printing

        Returns:
            Final text with a single map back to ``context.source_code``
        """
        text = context.source_code
        maps: list[PositionMap] = []
        replacements = 0
        for plugin in self.plugins:
            stage = replace(context, source_code=text, parsed=None)
            if not plugin.should_run(stage):
                continue
            logger.debug("Running transform plugin %s", plugin.name)
            output = await asyncio.to_thread(apply_visitor, text, plugin, stage)
            text = output.text
            maps.append(output.map)
            replacements += output.replacements

        if reformat and maps:
            try:
                printed = await asyncio.to_thread(
                    print_with_map, text, context.source_name, grammar_for(context.language), indent_size
                )
            except ParseError as e:
                logger.debug("Keeping transform output unformatted: %s", e.message)
            else:
                text = printed.text
                maps.append(printed.map)

        if not maps:
            return TransformOutput(text=text, map=None)
        return TransformOutput(text=text, map=compose_chain(maps[::-1]), replacements=replacements)

    def __or__(self, other: "PluginChain") -> "PluginChain":
        """Combine two plugin chains."""
        combined = PluginChain()
        combined.plugins = sorted(
            self.plugins + other.plugins,
            key=lambda p: p.priority,
        )
        return combined
