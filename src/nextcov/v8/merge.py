"""Merging of raw V8 process coverage.

Scripts are matched by URL and functions by their root range (the first
range, which spans the whole function). Within one function, V8 ranges nest:
an inner range states the count for its span and overrides the enclosing
range there instead of adding to it. To merge, each function is flattened
into elementary segments carrying the innermost count, the per-segment
counts are summed across processes, and the result is rebuilt as the root
range plus non-overlapping child ranges wherever the count differs from the
root.

Because every step is a per-segment sum, the merge is commutative and
associative: the order in which coverage files are read does not matter.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from nextcov.v8.models import (
    RawFunctionCoverage,
    RawProcessCoverage,
    RawRange,
    RawScriptCoverage,
)

_RootKey = tuple[int, int]


def _flatten(ranges: Sequence[RawRange]) -> list[tuple[int, int, int]]:
    """Elementary ``(start, end, count)`` segments; the innermost range wins."""
    boundaries = sorted({offset for r in ranges for offset in (r.start_offset, r.end_offset)})
    segments: list[tuple[int, int, int]] = []
    for start, end in zip(boundaries, boundaries[1:], strict=False):
        innermost: RawRange | None = None
        for r in ranges:
            if r.start_offset <= start and end <= r.end_offset:
                if innermost is None or r.length <= innermost.length:
                    innermost = r
        if innermost is not None:
            segments.append((start, end, innermost.count))
    return segments


def _merge_functions(functions: Sequence[RawFunctionCoverage]) -> RawFunctionCoverage:
    if len(functions) == 1:
        return functions[0]

    root_start = functions[0].ranges[0].start_offset
    root_end = functions[0].ranges[0].end_offset
    root_count = sum(fn.ranges[0].count for fn in functions)

    # Re-split every function's segments on the union of all boundaries
    boundaries = sorted(
        {offset for fn in functions for r in fn.ranges for offset in (r.start_offset, r.end_offset)}
    )
    per_fn = [_flatten(fn.ranges) for fn in functions]
    elementary: list[tuple[int, int, int]] = []
    for start, end in zip(boundaries, boundaries[1:], strict=False):
        count = 0
        for segments in per_fn:
            for seg_start, seg_end, seg_count in segments:
                if seg_start <= start and end <= seg_end:
                    count += seg_count
                    break
        elementary.append((start, end, count))

    children: list[RawRange] = []
    for start, end, count in elementary:
        if count == root_count:
            continue
        if children and children[-1].end_offset == start and children[-1].count == count:
            previous = children.pop()
            children.append(RawRange(previous.start_offset, end, count))
        else:
            children.append(RawRange(start, end, count))

    name = next((fn.function_name for fn in functions if fn.function_name), "")
    return RawFunctionCoverage(
        function_name=name,
        ranges=(RawRange(root_start, root_end, root_count), *children),
        is_block_coverage=any(fn.is_block_coverage for fn in functions),
    )


@dataclass(slots=True)
class _ScriptGroup:
    first: RawScriptCoverage
    functions: dict[_RootKey, list[RawFunctionCoverage]] = field(default_factory=dict)


def merge_process_covs(processes: Sequence[RawProcessCoverage]) -> RawProcessCoverage:
    """Merge coverage captured by several processes into one record.

    Scripts are emitted sorted by URL with fresh sequential script ids. The
    source-map cache of the first process that carries one is kept.
    """
    if len(processes) == 1:
        return processes[0]

    groups: dict[str, _ScriptGroup] = {}
    for process in processes:
        for script in process.result:
            group = groups.get(script.url)
            if group is None:
                group = groups[script.url] = _ScriptGroup(first=script)
            for fn in script.functions:
                root = fn.ranges[0]
                group.functions.setdefault((root.start_offset, root.end_offset), []).append(fn)

    result: list[RawScriptCoverage] = []
    for index, url in enumerate(sorted(groups)):
        group = groups[url]
        functions = tuple(
            _merge_functions(group.functions[key])
            for key in sorted(group.functions, key=lambda k: (k[0], -k[1]))
        )
        result.append(
            RawScriptCoverage(
                script_id=str(index),
                url=url,
                functions=functions,
                source=group.first.source,
                source_map=group.first.source_map,
            )
        )

    cache = next((p.source_map_cache for p in processes if p.source_map_cache), None)
    return RawProcessCoverage(result=result, source_map_cache=cache)
