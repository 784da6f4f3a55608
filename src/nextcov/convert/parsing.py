"""Tree-sitter parsing of JavaScript, TypeScript and TSX.

Generated bundles are parsed with the JavaScript grammar (which also accepts
JSX); original sources are parsed with the grammar matching their extension.

V8 reports positions as UTF-16 code-unit offsets, tree-sitter works on UTF-8
byte offsets, and Istanbul/source maps want 1-based lines with UTF-16
columns. ``TextIndex`` converts between the three.
"""

from __future__ import annotations

import importlib
from bisect import bisect_right
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

import tree_sitter

MAX_ERROR_RATIO = 0.10
"""Trees with more ERROR/missing nodes than this share are rejected."""


@dataclass(frozen=True, slots=True)
class GrammarSpec:
    name: str
    module: str
    language_func: str = "language"


GRAMMARS: dict[str, GrammarSpec] = {
    "javascript": GrammarSpec("javascript", "tree_sitter_javascript"),
    "typescript": GrammarSpec("typescript", "tree_sitter_typescript", "language_typescript"),
    "tsx": GrammarSpec("tsx", "tree_sitter_typescript", "language_tsx"),
}

_EXTENSIONS: dict[str, str] = {
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "ts": "typescript",
    "mts": "typescript",
    "cts": "typescript",
    "tsx": "tsx",
}


def language_for_path(path: str | PurePath) -> str | None:
    """Grammar name for a file extension, or None if unsupported."""
    ext = PurePath(path).suffix.lower().lstrip(".")
    return _EXTENSIONS.get(ext)


class TextIndex:
    """Offset conversions for one source text."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.data = text.encode("utf-8")
        self._ascii = text.isascii()
        self._line_starts = [0]
        pos = self.data.find(b"\n")
        while pos != -1:
            self._line_starts.append(pos + 1)
            pos = self.data.find(b"\n", pos + 1)

        # Per-character start offsets, only needed for non-ASCII text
        self._utf16_starts: list[int] = []
        self._byte_starts: list[int] = []
        if not self._ascii:
            utf16 = 0
            byte = 0
            for char in text:
                self._utf16_starts.append(utf16)
                self._byte_starts.append(byte)
                code = ord(char)
                utf16 += 2 if code > 0xFFFF else 1
                byte += len(char.encode("utf-8"))
            self._utf16_starts.append(utf16)
            self._byte_starts.append(byte)

    @property
    def utf16_length(self) -> int:
        return len(self.data) if self._ascii else self._utf16_starts[-1]

    def byte_to_utf16(self, byte: int) -> int:
        if self._ascii:
            return byte
        index = bisect_right(self._byte_starts, byte) - 1
        return self._utf16_starts[max(index, 0)]

    def utf16_to_byte(self, offset: int) -> int:
        if self._ascii:
            return min(offset, len(self.data))
        index = bisect_right(self._utf16_starts, offset) - 1
        return self._byte_starts[max(index, 0)]

    def position(self, byte: int) -> tuple[int, int]:
        """1-based line and 0-based UTF-16 column of a byte offset."""
        row = bisect_right(self._line_starts, byte) - 1
        line_start = self._line_starts[row]
        return row + 1, self.byte_to_utf16(byte) - self.byte_to_utf16(line_start)


@dataclass
class ParsedSource:
    """A parsed text plus its offset index."""

    tree: Any
    language: str
    index: TextIndex
    error_count: int
    total_nodes: int

    @property
    def root_node(self) -> Any:
        return self.tree.root_node

    @property
    def error_ratio(self) -> float:
        if self.total_nodes == 0:
            return 0.0
        return self.error_count / self.total_nodes

    @property
    def is_valid(self) -> bool:
        return self.error_ratio < MAX_ERROR_RATIO


def walk(node: Any) -> Iterator[Any]:
    """Pre-order traversal without recursion (bundles nest deeply)."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


@dataclass
class SourceParser:
    """Tree-sitter parser with lazily loaded grammars.

    Usage::

        parser = SourceParser()
        parsed = parser.parse(code, language="tsx")
        parsed = parser.parse_path(Path("src/app/page.tsx"), code)
    """

    _parser: Any = field(default=None, repr=False)
    _languages: dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        self._parser = tree_sitter.Parser()

    def _get_language(self, name: str) -> Any:
        if name in self._languages:
            return self._languages[name]
        spec = GRAMMARS.get(name)
        if spec is None:
            raise ValueError(f"Language not available: {name}")
        try:
            module = importlib.import_module(spec.module)
            lang = tree_sitter.Language(getattr(module, spec.language_func)())
        except (ImportError, AttributeError) as err:
            raise ValueError(f"Language not available: {name}") from err
        self._languages[name] = lang
        return lang

    def parse(self, code: str, language: str = "javascript") -> ParsedSource:
        self._parser.language = self._get_language(language)
        index = TextIndex(code)
        tree = self._parser.parse(index.data)

        error_count = 0
        total_nodes = 0
        for node in walk(tree.root_node):
            total_nodes += 1
            if node.type == "ERROR" or node.is_missing:
                error_count += 1

        return ParsedSource(
            tree=tree,
            language=language,
            index=index,
            error_count=error_count,
            total_nodes=total_nodes,
        )

    def parse_path(self, path: str | PurePath, code: str) -> ParsedSource:
        """Parse ``code`` with the grammar for ``path``'s extension.

        Raises:
            ValueError: If the extension is not JS/TS/TSX.
        """
        language = language_for_path(path)
        if language is None:
            raise ValueError(f"Unsupported file extension: {PurePath(path).suffix}")
        return self.parse(code, language)
