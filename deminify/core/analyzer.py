"""Scope-based binding analysis for a single identifier."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from tree_sitter import Node

from deminify.core.line_index import LineIndex
from deminify.core.parser import DEFAULT_MAX_ERROR_RATIO, ParsedSource, grammar_for, parse_source
from deminify.core.position_map import Position, PositionMap
from deminify.errors import ParseError

logger = logging.getLogger(__name__)

DEFAULT_MAX_REFERENCES = 10
TARGETED_MAX_REFERENCES = 15

FUNCTION_NODES = frozenset({
    "function_declaration",
    "function",
    "function_expression",
    "generator_function",
    "generator_function_declaration",
    "arrow_function",
    "method_definition",
})

# Nodes whose identifier occurrences can name a variable
OCCURRENCE_NODES = frozenset({
    "identifier",
    "shorthand_property_identifier",
    "shorthand_property_identifier_pattern",
})

_JSX_NAME_PARENTS = frozenset({
    "jsx_opening_element",
    "jsx_closing_element",
    "jsx_self_closing_element",
})


@dataclass
class LocationInfo:
    """A location in the analyzed text and its original position."""
    line: int
    column: int
    original: Optional[Position]
    line_content: str

    def same_place(self, other: Optional["LocationInfo"]) -> bool:
        return other is not None and self.line == other.line and self.column == other.column


@dataclass
class Binding:
    """One lexical declaration of the identifier and its references."""
    scope_id: int
    kind: str
    definition: LocationInfo
    references: list[LocationInfo] = field(default_factory=list)
    total_reference_count: int = 0
    hit_location: Optional[LocationInfo] = None


@dataclass
class AnalysisResult:
    """All bindings found for an identifier."""
    bindings: list[Binding]
    identifier: str
    is_targeted: bool = False
    target_line: Optional[int] = None


@dataclass
class ScopeInfo:
    """A lexical scope created while walking the tree."""
    scope_id: int
    scope_type: str
    parent: Optional["ScopeInfo"] = None
    declaration: Optional["Declaration"] = None

    @property
    def is_function_scope(self) -> bool:
        return self.scope_type in ("program", "function")

    def function_scope(self) -> "ScopeInfo":
        """Nearest enclosing scope that ``var`` declarations hoist to."""
        scope = self
        while not scope.is_function_scope and scope.parent is not None:
            scope = scope.parent
        return scope


@dataclass
class Declaration:
    """The declaring identifier of a binding."""
    node: Node
    kind: str
    scope: ScopeInfo


@dataclass
class Occurrence:
    """An identifier occurrence resolved to its declaration."""
    node: Node
    declaration: Declaration
    is_declaration: bool


@dataclass
class AnalysisContext:
    """Mutable state of one analysis run."""
    parsed: ParsedSource
    identifier: str
    name_bytes: bytes
    scopes: list[ScopeInfo] = field(default_factory=list)
    scope_by_node: dict[int, ScopeInfo] = field(default_factory=dict)
    declared_by_node: dict[int, Declaration] = field(default_factory=dict)
    occurrences: list[Occurrence] = field(default_factory=list)

    def new_scope(self, scope_type: str, parent: Optional[ScopeInfo]) -> ScopeInfo:
        scope = ScopeInfo(scope_id=len(self.scopes), scope_type=scope_type, parent=parent)
        self.scopes.append(scope)
        return scope

    def matches(self, node: Node) -> bool:
        return self.parsed.source_bytes[node.start_byte:node.end_byte] == self.name_bytes

    def declare(self, node: Node, kind: str, scope: ScopeInfo) -> None:
        """Record a declaration of the analyzed name; the first one in a scope wins."""
        if not self.matches(node) or scope.declaration is not None:
            return
        declaration = Declaration(node=node, kind=kind, scope=scope)
        scope.declaration = declaration
        self.declared_by_node[node.id] = declaration


def parse_code(text: str, language: str = "javascript") -> ParsedSource:
    """Parse code for analysis.

    Raises:
        ParseError: If the tree is unusable even with error recovery
    """
    parsed = parse_source(text, grammar_for(language))
    if not parsed.is_recoverable(DEFAULT_MAX_ERROR_RATIO):
        raise ParseError(f"Parse error: {parsed.error_ratio():.0%} of the {language} input could not be parsed")
    return parsed


def _scope_type(node: Node) -> Optional[str]:
    """Scope created by a node, or None."""
    kind = node.type
    if kind in FUNCTION_NODES:
        return "function"
    if kind == "statement_block":
        parent = node.parent
        if parent is not None and (parent.type in FUNCTION_NODES or parent.type == "catch_clause"):
            return None
        return "block"
    if kind in ("for_statement", "for_in_statement"):
        return "for"
    if kind == "catch_clause":
        return "catch"
    if kind == "switch_body":
        return "switch"
    if kind in ("class", "class_declaration"):
        return "class"
    return None


def _pattern_names(node: Optional[Node]) -> list[Node]:
    """Identifiers bound by a declaration pattern, in source order."""
    names = []
    stack = [node] if node is not None else []
    while stack:
        current = stack.pop()
        kind = current.type
        if kind in ("identifier", "shorthand_property_identifier_pattern"):
            names.append(current)
        elif kind in ("assignment_pattern", "object_assignment_pattern"):
            left = current.child_by_field_name("left")
            if left is not None:
                stack.append(left)
        elif kind == "pair_pattern":
            value = current.child_by_field_name("value")
            if value is not None:
                stack.append(value)
        elif kind in ("required_parameter", "optional_parameter"):
            pattern = current.child_by_field_name("pattern")
            if pattern is not None:
                stack.append(pattern)
        elif kind in ("object_pattern", "array_pattern", "rest_pattern", "formal_parameters"):
            stack.extend(reversed(current.named_children))
    return names


def _declaration_kind(node: Node) -> Optional[str]:
    """``var``/``let``/``const`` keyword of a declaration-like node."""
    for child in node.children:
        if child.type in ("var", "let", "const"):
            return child.type
    return None


def _collect_declarations(ctx: AnalysisContext, node: Node, scope: ScopeInfo, inner: ScopeInfo) -> None:
    """Register the declarations made by ``node``.

    ``scope`` is the scope around the node, ``inner`` the one it creates (or
    ``scope`` again when it creates none).
    """
    kind = node.type

    if kind == "variable_declaration":
        target = inner.function_scope()
        for declarator in node.named_children:
            if declarator.type == "variable_declarator":
                for name in _pattern_names(declarator.child_by_field_name("name")):
                    ctx.declare(name, "var", target)

    elif kind == "lexical_declaration":
        binding_kind = _declaration_kind(node) or "let"
        for declarator in node.named_children:
            if declarator.type == "variable_declarator":
                for name in _pattern_names(declarator.child_by_field_name("name")):
                    ctx.declare(name, binding_kind, inner)

    elif kind in FUNCTION_NODES:
        name = node.child_by_field_name("name")
        if name is not None and name.type == "identifier":
            if kind in ("function_declaration", "generator_function_declaration"):
                ctx.declare(name, "function", scope)
            else:
                # named function expressions are visible only inside themselves
                ctx.declare(name, "function", inner)
        parameters = node.child_by_field_name("parameters") or node.child_by_field_name("parameter")
        if parameters is not None:
            for param in _pattern_names(parameters):
                ctx.declare(param, "param", inner)

    elif kind in ("class_declaration", "class"):
        name = node.child_by_field_name("name")
        if name is not None and name.type in ("identifier", "type_identifier"):
            ctx.declare(name, "class", scope if kind == "class_declaration" else inner)

    elif kind == "catch_clause":
        parameter = node.child_by_field_name("parameter")
        if parameter is not None:
            for name in _pattern_names(parameter):
                ctx.declare(name, "catch", inner)

    elif kind == "for_in_statement":
        loop_kind = _declaration_kind(node)
        left = node.child_by_field_name("left")
        if loop_kind is not None and left is not None:
            target = inner.function_scope() if loop_kind == "var" else inner
            for name in _pattern_names(left):
                ctx.declare(name, loop_kind, target)

    elif kind == "import_statement":
        program = ctx.scopes[0]
        for clause in node.named_children:
            if clause.type != "import_clause":
                continue
            for child in clause.named_children:
                if child.type == "identifier":
                    ctx.declare(child, "import", program)
                elif child.type == "namespace_import":
                    for name in child.named_children:
                        if name.type == "identifier":
                            ctx.declare(name, "import", program)
                elif child.type == "named_imports":
                    for spec in child.named_children:
                        if spec.type != "import_specifier":
                            continue
                        local = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
                        if local is not None and local.type == "identifier":
                            ctx.declare(local, "import", program)


def _build_scopes(ctx: AnalysisContext) -> None:
    """First pass: create scopes and record declarations of the name."""
    root = ctx.parsed.root
    program = ctx.new_scope("program", None)
    ctx.scope_by_node[root.id] = program

    stack = [(child, program) for child in reversed(root.children)]
    while stack:
        node, scope = stack.pop()
        inner = scope
        scope_type = _scope_type(node)
        if scope_type is not None:
            inner = ctx.new_scope(scope_type, scope)
            ctx.scope_by_node[node.id] = inner
        _collect_declarations(ctx, node, scope, inner)
        children = node.children
        if children:
            stack.extend((child, inner) for child in reversed(children))


def _is_non_variable_name(node: Node) -> bool:
    """Identifier positions that name something other than a variable."""
    parent = node.parent
    if parent is None:
        return False
    if parent.type in _JSX_NAME_PARENTS:
        return True
    if parent.type == "import_specifier":
        # `import { a as b }`: `a` names an export of the other module
        alias = parent.child_by_field_name("alias")
        return alias is not None and alias.id != node.id
    if parent.type == "export_specifier":
        alias = parent.child_by_field_name("alias")
        return alias is not None and alias.id == node.id
    return False


def _resolve(scope: ScopeInfo) -> Optional[Declaration]:
    current: Optional[ScopeInfo] = scope
    while current is not None:
        if current.declaration is not None:
            return current.declaration
        current = current.parent
    return None


def _collect_occurrences(ctx: AnalysisContext) -> None:
    """Second pass: resolve every occurrence of the name along the scope chain."""
    root = ctx.parsed.root
    stack = [(root, ctx.scopes[0])]
    while stack:
        node, scope = stack.pop()
        scope = ctx.scope_by_node.get(node.id, scope)

        declaration = ctx.declared_by_node.get(node.id)
        if declaration is not None:
            ctx.occurrences.append(Occurrence(node, declaration, is_declaration=True))
            continue

        if node.type in OCCURRENCE_NODES and ctx.matches(node):
            if not _is_non_variable_name(node):
                resolved = _resolve(scope)
                # unresolved names are globals
                if resolved is not None:
                    ctx.occurrences.append(Occurrence(node, resolved, is_declaration=False))
            continue

        children = node.children
        if children:
            stack.extend((child, scope) for child in reversed(children))


def _location(
    ctx: AnalysisContext,
    node: Node,
    position_map: Optional[PositionMap],
    lines: LineIndex,
) -> LocationInfo:
    position = ctx.parsed.node_position(node)
    original = position_map.resolve(position.line, position.column) if position_map is not None else None
    return LocationInfo(
        line=position.line,
        column=position.column,
        original=original,
        line_content=lines.line_content(position.line),
    )


def analyze_bindings(
    text: str,
    position_map: Optional[PositionMap],
    identifier: str,
    *,
    target_line: Optional[int] = None,
    max_references: Optional[int] = None,
    language: str = "javascript",
) -> AnalysisResult:
    """Find the bindings of an identifier, grouped by declaring scope.

    Args:
        text: Code to analyze (rendered, not truncated)
        position_map: Map from ``text`` to the original file, or None
        identifier: Variable or function name to look up
        target_line: Only the occurrence on this line selects a binding
        max_references: References listed per binding (10, or 15 when
            targeted)
        language: Grammar name

    Returns:
        AnalysisResult. In targeted mode it holds at most one binding, with
        ``hit_location`` set to the selecting occurrence.

    Raises:
        ParseError: If the code cannot be parsed
    """
    is_targeted = target_line is not None
    if max_references is None:
        max_references = TARGETED_MAX_REFERENCES if is_targeted else DEFAULT_MAX_REFERENCES
    result = AnalysisResult(bindings=[], identifier=identifier, is_targeted=is_targeted, target_line=target_line)
    if not identifier or identifier not in text:
        return result

    parsed = parse_code(text, language)
    ctx = AnalysisContext(parsed=parsed, identifier=identifier, name_bytes=identifier.encode("utf-8"))
    _build_scopes(ctx)
    _collect_occurrences(ctx)
    lines = LineIndex(text)

    hit: Optional[Occurrence] = None
    if is_targeted:
        for occurrence in ctx.occurrences:
            if parsed.node_position(occurrence.node).line == target_line:
                hit = occurrence
                break
        if hit is None:
            logger.debug("No binding of %r at line %d", identifier, target_line)
            return result
        selected = [hit.declaration]
    else:
        selected = []
        seen: set[int] = set()
        for occurrence in ctx.occurrences:
            scope_id = occurrence.declaration.scope.scope_id
            if scope_id not in seen:
                seen.add(scope_id)
                selected.append(occurrence.declaration)

    for declaration in selected:
        references = [
            occurrence.node
            for occurrence in ctx.occurrences
            if occurrence.declaration is declaration and not occurrence.is_declaration
        ]
        binding = Binding(
            scope_id=declaration.scope.scope_id,
            kind=declaration.kind,
            definition=_location(ctx, declaration.node, position_map, lines),
            references=[_location(ctx, node, position_map, lines) for node in references[:max_references]],
            total_reference_count=len(references),
        )
        if hit is not None:
            binding.hit_location = _location(ctx, hit.node, position_map, lines)
        result.bindings.append(binding)

    logger.debug("Found %d bindings of %r", len(result.bindings), identifier)
    return result
