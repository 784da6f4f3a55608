"""Per-file repair passes run after conversion.

Source-map projection can leave a file's coverage structurally degenerate.
The passes below run in order, each returning a new ``FileCoverage``:

1. ``restore_missing_maps``: functions exist but the statement or branch map
   came back empty; rebuild the missing map from the original source.
2. ``force_statements_covered``: a function ran but every statement reads 0;
   the module body evidently ran, so every statement is set to 1.
3. ``remove_spurious_branches``: ``binary-expr`` branches on lines whose
   original source holds no ``&&``/``||``/``??`` are dropped and the rest
   re-indexed from 0.
4. ``fix_file``: implicit branch / ``(module)`` function where none exist.
"""

from __future__ import annotations

from typing import Any

from nextcov.convert.instrument import empty_file_coverage, logical_operator
from nextcov.convert.parsing import ParsedSource, SourceParser
from nextcov.core.logging import get_logger
from nextcov.coverage.fixes import fix_file
from nextcov.coverage.models import FileCoverage

log = get_logger("convert.repair")


class LogicalLineVisitor:
    """Collects the start lines of logical expressions in a parsed source."""

    def __init__(self, parsed: ParsedSource) -> None:
        self.parsed = parsed
        self.lines: set[int] = set()

    def visit(self) -> set[int]:
        stack: list[Any] = [self.parsed.root_node]
        while stack:
            node = stack.pop()
            if logical_operator(node) is not None:
                self.lines.add(self.parsed.index.position(node.start_byte)[0])
            stack.extend(node.named_children)
        return self.lines


def logical_expression_lines(parsed: ParsedSource) -> set[int]:
    return LogicalLineVisitor(parsed).visit()


def needs_rebuild(fc: FileCoverage) -> bool:
    if fc.fn_map:
        return not fc.statement_map or not fc.branch_map
    return not fc.statement_map and not fc.branch_map


def restore_missing_maps(fc: FileCoverage, rebuilt: FileCoverage) -> FileCoverage:
    """Fill an empty statement/branch map from ``rebuilt`` (zero-count, from the original source).

    Counts follow whether any function in ``fc`` executed: statements get 1
    or 0, and a restored branch gets 1 on its first arm or all zeros.
    """
    executed = fc.any_function_covered
    fixed = fc.copy()

    if not fc.statement_map and rebuilt.statement_map:
        fixed.statement_map = dict(rebuilt.statement_map)
        fixed.s = {sid: 1 if executed else 0 for sid in rebuilt.statement_map}

    if fc.fn_map and not fc.branch_map and rebuilt.branch_map:
        fixed.branch_map = dict(rebuilt.branch_map)
        fixed.b = {
            bid: [1 if executed and i == 0 else 0 for i in range(len(branch.locations))]
            for bid, branch in rebuilt.branch_map.items()
        }

    return fixed


def force_statements_covered(fc: FileCoverage) -> FileCoverage:
    if not fc.any_function_covered or not fc.s or fc.any_statement_covered:
        return fc
    fixed = fc.copy()
    fixed.s = dict.fromkeys(fc.s, 1)
    return fixed


def remove_spurious_branches(fc: FileCoverage, logical_lines: set[int]) -> FileCoverage:
    """Drop ``binary-expr`` branches not on a logical-expression line; re-index from 0."""
    kept = [
        bid
        for bid, branch in fc.branch_map.items()
        if branch.type != "binary-expr" or branch.line in logical_lines
    ]
    if len(kept) == len(fc.branch_map):
        return fc
    fixed = fc.copy()
    fixed.branch_map = {str(i): fc.branch_map[bid] for i, bid in enumerate(kept)}
    fixed.b = {str(i): list(fc.b.get(bid, [])) for i, bid in enumerate(kept)}
    log.debug("spurious_branches_removed", path=fc.path, removed=len(fc.branch_map) - len(kept))
    return fixed


class FileRepairer:
    """Runs the repair passes for one file, given its original source text."""

    def __init__(self, parser: SourceParser | None = None) -> None:
        self.parser = parser or SourceParser()

    def _parse(self, path: str, source: str) -> ParsedSource | None:
        try:
            return self.parser.parse_path(path, source)
        except ValueError as e:
            log.debug("original_source_unparsable", path=path, error=str(e))
            return None

    def repair(self, fc: FileCoverage, source: str | None) -> FileCoverage:
        """Repair ``fc``; ``source`` is the original file's text, None if unreadable."""
        parsed = self._parse(fc.path, source) if source is not None else None

        if parsed is not None and needs_rebuild(fc):
            fc = restore_missing_maps(fc, empty_file_coverage(fc.path, parsed))

        fc = force_statements_covered(fc)

        if parsed is not None and any(b.type == "binary-expr" for b in fc.branch_map.values()):
            fc = remove_spurious_branches(fc, logical_expression_lines(parsed))

        return fix_file(fc)
