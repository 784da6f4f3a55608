"""Statement, function and branch discovery over a tree-sitter tree.

The visitor only knows the node kinds Istanbul instruments; everything else
is walked through. Results are byte spans into the parsed text. Counting and
position mapping happen in the converter.

Statements: expression, variable declarator, return, throw, break,
continue, debugger, if, for, for-in/of, while, do-while, switch, try,
labeled and with statements, plus expression bodies of arrow functions.

Branches:

- ``if``: [consequence, alternative]; a missing else arm is "implicit" and
  located at the if statement itself
- ``cond-expr``: [consequence, alternative] of a ternary
- ``binary-expr``: every operand of a flattened ``&&``/``||``/``??`` chain
- ``switch``: one location per case (``default`` included)
- ``default-arg``: the default value of a parameter
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from nextcov.convert.parsing import ParsedSource
from nextcov.coverage.models import BranchMeta, FileCoverage, FunctionMeta, Span

STATEMENT_TYPES = frozenset(
    {
        "expression_statement",
        "return_statement",
        "throw_statement",
        "break_statement",
        "continue_statement",
        "debugger_statement",
        "if_statement",
        "for_statement",
        "for_in_statement",
        "while_statement",
        "do_statement",
        "switch_statement",
        "try_statement",
        "labeled_statement",
        "with_statement",
    }
)

FUNCTION_TYPES = frozenset(
    {
        "function_declaration",
        "function_expression",
        "function",
        "generator_function_declaration",
        "generator_function",
        "arrow_function",
        "method_definition",
    }
)

LOGICAL_OPERATORS = frozenset({"&&", "||", "??"})

_WEBPACK_RUNTIME_OBJECTS = frozenset({"__webpack_exports__", "__webpack_require__"})
_MODULE_LOADERS = frozenset({"__webpack_require__", "require"})


@dataclass(frozen=True, slots=True)
class ByteSpan:
    start: int
    end: int

    @classmethod
    def of(cls, node: Any) -> ByteSpan:
        return cls(node.start_byte, node.end_byte)


@dataclass(frozen=True, slots=True)
class FunctionSite:
    name: str
    decl: ByteSpan
    loc: ByteSpan
    node_start: int


@dataclass(frozen=True, slots=True)
class BranchSite:
    type: str
    loc: ByteSpan
    locations: tuple[ByteSpan, ...]
    implicit_else: bool = False


@dataclass
class Instrumentation:
    statements: list[ByteSpan] = field(default_factory=list)
    functions: list[FunctionSite] = field(default_factory=list)
    branches: list[BranchSite] = field(default_factory=list)


def _text(node: Any) -> str:
    return node.text.decode("utf-8", errors="replace") if node is not None else ""


def unwrap_parens(node: Any) -> Any:
    while node is not None and node.type == "parenthesized_expression" and node.named_child_count == 1:
        node = node.named_children[0]
    return node


def logical_operator(node: Any) -> str | None:
    """The operator of a ``&&``/``||``/``??`` binary expression, else None."""
    if node is None or node.type != "binary_expression":
        return None
    operator = node.child_by_field_name("operator")
    if operator is not None and operator.type in LOGICAL_OPERATORS:
        return operator.type
    return None


def is_ignored_statement(node: Any) -> bool:
    """Bundler bootstrap statements that never count as uncovered.

    ``"use strict"`` directives, module loader calls (``__webpack_require__(…)``,
    ``require(…)``), export registration on the webpack runtime objects
    (``__webpack_require__.d(…)``, ``__webpack_exports__.x(…)``) and
    ``module.exports = …`` assignments.
    """
    if node.type != "expression_statement" or node.named_child_count == 0:
        return False
    expr = node.named_children[0]

    if expr.type == "string":
        return _text(expr)[1:-1] == "use strict"

    if expr.type == "call_expression":
        callee = expr.child_by_field_name("function")
        if callee is None:
            return False
        if callee.type == "identifier":
            return _text(callee) in _MODULE_LOADERS
        if callee.type == "member_expression":
            obj = callee.child_by_field_name("object")
            return obj is not None and obj.type == "identifier" and _text(obj) in _WEBPACK_RUNTIME_OBJECTS
        return False

    if expr.type == "assignment_expression":
        left = expr.child_by_field_name("left")
        if left is None or left.type != "member_expression":
            return False
        obj = left.child_by_field_name("object")
        prop = left.child_by_field_name("property")
        return _text(obj) == "module" and _text(prop) == "exports"

    return False


class InstrumentVisitor:
    """Collects instrumentable sites in document order."""

    def __init__(self, parsed: ParsedSource, *, ignore_bootstrap: bool = True) -> None:
        self.parsed = parsed
        self.ignore_bootstrap = ignore_bootstrap
        self.result = Instrumentation()
        self._chained: set[int] = set()

    def visit(self) -> Instrumentation:
        stack = [self.parsed.root_node]
        while stack:
            node = stack.pop()
            self._visit_node(node)
            stack.extend(reversed(node.named_children))
        return self.result

    def _visit_node(self, node: Any) -> None:
        kind = node.type
        if kind in STATEMENT_TYPES:
            if not (self.ignore_bootstrap and is_ignored_statement(node)):
                self.result.statements.append(ByteSpan.of(node))
        elif kind == "variable_declarator":
            if node.child_by_field_name("value") is not None:
                self.result.statements.append(ByteSpan.of(node))

        if kind in FUNCTION_TYPES:
            self._visit_function(node)
        elif kind == "if_statement":
            self._visit_if(node)
        elif kind == "ternary_expression":
            self._visit_ternary(node)
        elif kind == "binary_expression":
            self._visit_logical(node)
        elif kind == "switch_statement":
            self._visit_switch(node)
        elif kind == "assignment_pattern":
            self._visit_default(node, node.child_by_field_name("right"))
        elif kind in ("required_parameter", "optional_parameter"):
            self._visit_default(node, node.child_by_field_name("value"))

    def _visit_function(self, node: Any) -> None:
        body = node.child_by_field_name("body")
        if body is None:
            return
        name_node = node.child_by_field_name("name")
        if name_node is not None:
            decl = ByteSpan.of(name_node)
        else:
            decl = ByteSpan(node.start_byte, node.start_byte + 1)
        self.result.functions.append(
            FunctionSite(
                name=self._function_name(node, name_node),
                decl=decl,
                loc=ByteSpan.of(body),
                node_start=node.start_byte,
            )
        )
        if node.type == "arrow_function" and body.type != "statement_block":
            self.result.statements.append(ByteSpan.of(body))

    def _function_name(self, node: Any, name_node: Any) -> str:
        if name_node is not None:
            return _text(name_node)
        parent = node.parent
        while parent is not None and parent.type == "parenthesized_expression":
            parent = parent.parent
        if parent is not None:
            if parent.type == "variable_declarator":
                return _text(parent.child_by_field_name("name"))
            if parent.type == "pair":
                return _text(parent.child_by_field_name("key"))
            if parent.type == "assignment_expression":
                return _text(parent.child_by_field_name("left"))
            if parent.type in ("public_field_definition", "field_definition"):
                prop = parent.child_by_field_name("property") or parent.child_by_field_name("name")
                if prop is not None:
                    return _text(prop)
        return f"(anonymous_{len(self.result.functions)})"

    def _visit_if(self, node: Any) -> None:
        consequence = node.child_by_field_name("consequence")
        if consequence is None:
            return
        alternative = node.child_by_field_name("alternative")
        if alternative is not None:
            # else_clause wraps the statement
            target = alternative.named_children[0] if alternative.named_child_count else alternative
            self.result.branches.append(
                BranchSite("if", ByteSpan.of(node), (ByteSpan.of(consequence), ByteSpan.of(target)))
            )
        else:
            self.result.branches.append(
                BranchSite(
                    "if",
                    ByteSpan.of(node),
                    (ByteSpan.of(consequence), ByteSpan.of(node)),
                    implicit_else=True,
                )
            )

    def _visit_ternary(self, node: Any) -> None:
        consequence = node.child_by_field_name("consequence")
        alternative = node.child_by_field_name("alternative")
        if consequence is None or alternative is None:
            return
        self.result.branches.append(
            BranchSite("cond-expr", ByteSpan.of(node), (ByteSpan.of(consequence), ByteSpan.of(alternative)))
        )

    def _visit_logical(self, node: Any) -> None:
        if node.id in self._chained or logical_operator(node) is None:
            return
        leaves: list[Any] = []
        pending = [node]
        while pending:
            current = unwrap_parens(pending.pop())
            if logical_operator(current) is not None:
                self._chained.add(current.id)
                left = current.child_by_field_name("left")
                right = current.child_by_field_name("right")
                pending.extend(n for n in (right, left) if n is not None)
            else:
                leaves.append(current)
        self.result.branches.append(
            BranchSite("binary-expr", ByteSpan.of(node), tuple(ByteSpan.of(leaf) for leaf in leaves))
        )

    def _visit_switch(self, node: Any) -> None:
        body = node.child_by_field_name("body")
        if body is None:
            return
        cases = [c for c in body.named_children if c.type in ("switch_case", "switch_default")]
        if cases:
            self.result.branches.append(
                BranchSite("switch", ByteSpan.of(node), tuple(ByteSpan.of(c) for c in cases))
            )

    def _visit_default(self, node: Any, value: Any) -> None:
        if value is None:
            return
        self.result.branches.append(BranchSite("default-arg", ByteSpan.of(value), (ByteSpan.of(value),)))


def instrument(parsed: ParsedSource, *, ignore_bootstrap: bool = True) -> Instrumentation:
    return InstrumentVisitor(parsed, ignore_bootstrap=ignore_bootstrap).visit()


def _span(parsed: ParsedSource, span: ByteSpan) -> Span:
    start_line, start_col = parsed.index.position(span.start)
    end_line, end_col = parsed.index.position(span.end)
    return Span.at(start_line, start_col, end_line, end_col)


def empty_file_coverage(path: str, parsed: ParsedSource) -> FileCoverage:
    """Zero-count coverage for an original source file that never loaded."""
    sites = instrument(parsed)
    fc = FileCoverage(path=path)
    for i, stmt in enumerate(sites.statements):
        fc.statement_map[str(i)] = _span(parsed, stmt)
        fc.s[str(i)] = 0
    for i, fn in enumerate(sites.functions):
        decl = _span(parsed, fn.decl)
        fc.fn_map[str(i)] = FunctionMeta(
            name=fn.name, decl=decl, loc=_span(parsed, fn.loc), line=decl.start.line
        )
        fc.f[str(i)] = 0
    for i, branch in enumerate(sites.branches):
        loc = _span(parsed, branch.loc)
        fc.branch_map[str(i)] = BranchMeta(
            type=branch.type,
            loc=loc,
            locations=tuple(_span(parsed, location) for location in branch.locations),
            line=loc.start.line,
        )
        fc.b[str(i)] = [0] * len(branch.locations)
    return fc
