"""Chunking service - splits source files into function/class chunks.

Files are parsed with tree-sitter (grammars from tree-sitter-language-pack).
Every function and class declaration found in the syntax tree opens a chunk
at its first row; a top-level declaration also closes one after its last row,
so code between declarations lands in 'module' chunks. Nested declarations
(methods) get their own chunk, and the enclosing class keeps the rows before
its first member.

Text inside strings and comments never opens a chunk. Syntax errors do not
fail the parse: tree-sitter recovers and every non-blank line still lands in
some chunk. Languages without a grammar entry become a single module chunk.
"""

from __future__ import annotations

import itertools
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from tree_sitter import Node, Parser
from tree_sitter_language_pack import get_parser

from codebase_index.schemas.chunking import ChunkType, CodeChunk, Language, get_language

__all__ = [
    'ChunkParser',
    'estimate_complexity',
    'extract_imports',
]

logger = logging.getLogger(__name__)

# Leading lines scanned for the import block
IMPORT_SCAN_LINES = 50

MAX_COMPLEXITY = 5


@dataclass(frozen=True)
class _Grammar:
    """Node types that open a chunk in one tree-sitter grammar."""

    name: str
    functions: frozenset[str]
    classes: frozenset[str]


_JS_FUNCTIONS = frozenset({
    'function_declaration',
    'generator_function_declaration',
    'method_definition',
    'arrow_function',
    'function_expression',
    'function',
})

_GRAMMARS: Mapping[Language, _Grammar] = {
    'python': _Grammar('python', frozenset({'function_definition'}), frozenset({'class_definition'})),
    'javascript': _Grammar('javascript', _JS_FUNCTIONS, frozenset({'class_declaration', 'class'})),
    'typescript': _Grammar(
        'typescript',
        _JS_FUNCTIONS,
        frozenset({
            'class_declaration',
            'class',
            'abstract_class_declaration',
            'interface_declaration',
            'enum_declaration',
        }),
    ),
    'go': _Grammar('go', frozenset({'function_declaration', 'method_declaration'}), frozenset({'type_declaration'})),
    'rust': _Grammar(
        'rust',
        frozenset({'function_item'}),
        frozenset({'struct_item', 'enum_item', 'trait_item', 'impl_item'}),
    ),
    'java': _Grammar(
        'java',
        frozenset({'method_declaration', 'constructor_declaration'}),
        frozenset({'class_declaration', 'interface_declaration', 'enum_declaration', 'record_declaration'}),
    ),
    'c': _Grammar(
        'c',
        frozenset({'function_definition'}),
        frozenset({'struct_specifier', 'union_specifier', 'enum_specifier'}),
    ),
    'cpp': _Grammar(
        'cpp',
        frozenset({'function_definition'}),
        frozenset({'class_specifier', 'struct_specifier', 'union_specifier', 'enum_specifier'}),
    ),
    'csharp': _Grammar(
        'csharp',
        frozenset({'method_declaration', 'constructor_declaration', 'local_function_statement'}),
        frozenset({
            'class_declaration',
            'interface_declaration',
            'struct_declaration',
            'enum_declaration',
            'record_declaration',
        }),
    ),
    'ruby': _Grammar('ruby', frozenset({'method', 'singleton_method'}), frozenset({'class', 'module'})),
    'php': _Grammar(
        'php',
        frozenset({'function_definition', 'method_declaration'}),
        frozenset({'class_declaration', 'interface_declaration', 'trait_declaration', 'enum_declaration'}),
    ),
    'swift': _Grammar(
        'swift',
        frozenset({'function_declaration'}),
        frozenset({'class_declaration', 'protocol_declaration'}),
    ),
    'kotlin': _Grammar(
        'kotlin',
        frozenset({'function_declaration'}),
        frozenset({'class_declaration', 'object_declaration'}),
    ),
    'dart': _Grammar(
        'dart',
        frozenset({'function_signature', 'method_signature'}),
        frozenset({'class_definition', 'mixin_declaration', 'enum_declaration', 'extension_declaration'}),
    ),
}

# Function and class expressions only count when named or bound to a variable
_EXPRESSION_TYPES = frozenset({'arrow_function', 'function_expression', 'function', 'class'})

# Parents whose rows belong to the declaration they wrap
_WRAPPER_TYPES = frozenset({
    'decorated_definition',
    'export_statement',
    'variable_declarator',
    'lexical_declaration',
    'variable_declaration',
    'template_declaration',
})

# Siblings that stick to the declaration: Rust attributes before it, Dart bodies after it
_LEADING_TYPES = frozenset({'attribute_item'})
_TRAILING_TYPES = frozenset({'function_body'})

_NAME_TYPES = frozenset({
    'identifier',
    'type_identifier',
    'field_identifier',
    'property_identifier',
    'simple_identifier',
    'constant',
    'name',
})

_IMPORT_LINE = re.compile(r'^(?:import|from|require|using|use)\s|^#include\b')
_IMPORT_BLOCK_FILLER = re.compile(r'^(?:import|from|require|using|use|#include|//|#)|^\s*$')

_BRANCH = re.compile(r'\bif\b')
_LOOP = re.compile(r'\b(?:for|while)\b')


class ChunkParser:
    """Splits source files into CodeChunks with repo-relative paths."""

    def __init__(self, repo_root: Path) -> None:
        self._root = repo_root.resolve()
        self._parsers: dict[str, Parser] = {}

    def parse(self, path: Path) -> Sequence[CodeChunk]:
        """Chunk one file.

        Args:
            path: Absolute path inside the repository.

        Returns:
            Chunks in file order. Empty for blank files.

        Raises:
            OSError: File could not be read.
            UnicodeDecodeError: File is not valid UTF-8.
            ValueError: Path is outside the repository or not a watched language.
        """
        language = get_language(path)
        if language is None:
            raise ValueError(f'Unsupported file type: {path.suffix}')
        rel_path = path.resolve().relative_to(self._root).as_posix()

        text = path.read_text(encoding='utf-8')
        return self.parse_text(text, rel_path, language)

    def parse_text(self, text: str, rel_path: str, language: Language) -> Sequence[CodeChunk]:
        # Rows are '\n'-separated, matching tree-sitter's row numbering
        lines = [line.removesuffix('\r') for line in text.split('\n')]
        imports = extract_imports(lines)

        starts: dict[int, tuple[ChunkType, str]] = {}
        ends: set[int] = set()
        grammar = _GRAMMARS.get(language)
        if grammar is not None:
            tree = self._parser(grammar, rel_path).parse(text.encode('utf-8'))
            starts, ends = _collect_declarations(tree.root_node, grammar)

        chunks: list[CodeChunk] = []
        for start, stop in itertools.pairwise(sorted({0, len(lines), *starts, *ends})):
            first, last = start, stop - 1
            while first <= last and not lines[first].strip():
                first += 1
            while last >= first and not lines[last].strip():
                last -= 1
            if first > last:
                continue

            chunk_type, name = starts.get(start, ('module', 'anonymous'))
            content = '\n'.join(lines[first : last + 1])
            chunks.append(
                CodeChunk(
                    id=f'{rel_path}:{first + 1}:{len(chunks)}',
                    content=content,
                    type=chunk_type,
                    name=name,
                    file_path=rel_path,
                    start_line=first + 1,
                    end_line=last + 1,
                    language=language,
                    imports=imports,
                    complexity=estimate_complexity(content),
                )
            )
        return chunks

    def _parser(self, grammar: _Grammar, rel_path: str) -> Parser:
        name = 'tsx' if PurePosixPath(rel_path).suffix == '.tsx' else grammar.name
        parser = self._parsers.get(name)
        if parser is None:
            parser = get_parser(name)  # type: ignore[arg-type]
            self._parsers[name] = parser
            logger.debug(f'[CHUNK] Loaded tree-sitter grammar {name}')
        return parser


def extract_imports(lines: Sequence[str]) -> Sequence[str]:
    """Collect the leading import block from the first lines of a file."""
    imports: list[str] = []
    for line in lines[:IMPORT_SCAN_LINES]:
        if _IMPORT_LINE.match(line):
            imports.append(line.strip())
        elif imports and not _IMPORT_BLOCK_FILLER.match(line):
            break
    return imports


def estimate_complexity(content: str) -> int:
    """1 + branches + 2 per loop, capped at 5."""
    score = 1 + len(_BRANCH.findall(content)) + 2 * len(_LOOP.findall(content))
    return min(score, MAX_COMPLEXITY)


def _collect_declarations(root: Node, grammar: _Grammar) -> tuple[dict[int, tuple[ChunkType, str]], set[int]]:
    """Walk the tree once, pre-order.

    Returns:
        Start row -> (type, name) for every declaration (outermost wins a
        shared row), and the row after each top-level declaration.
    """
    starts: dict[int, tuple[ChunkType, str]] = {}
    ends: set[int] = set()
    stack: list[tuple[Node, bool]] = [(child, False) for child in reversed(root.named_children)]
    while stack:
        node, nested = stack.pop()
        declared = _classify(node, grammar)
        if declared is not None:
            first_row, last_row = _span(node)
            starts.setdefault(first_row, declared)
            if not nested:
                ends.add(last_row + 1)
        inside = nested or declared is not None
        stack.extend((child, inside) for child in reversed(node.named_children))
    return starts, ends


def _classify(node: Node, grammar: _Grammar) -> tuple[ChunkType, str] | None:
    if node.type in grammar.functions:
        chunk_type: ChunkType = 'function'
    elif node.type in grammar.classes:
        chunk_type = 'class'
    else:
        return None

    if node.type in _EXPRESSION_TYPES and node.child_by_field_name('name') is None:
        parent = node.parent
        if parent is None or parent.type != 'variable_declarator':
            return None
        return chunk_type, _text(parent.child_by_field_name('name'))

    # C forward declarations and struct-typed variables have no body
    if node.type.endswith('_specifier') and node.child_by_field_name('body') is None:
        return None
    return chunk_type, _declared_name(node)


def _span(node: Node) -> tuple[int, int]:
    """First and last row of a declaration including its wrappers."""
    anchor = node
    while anchor.parent is not None and anchor.parent.type in _WRAPPER_TYPES:
        anchor = anchor.parent

    first = anchor
    while (previous := first.prev_named_sibling) is not None and previous.type in _LEADING_TYPES:
        first = previous

    last = anchor
    following = anchor.next_named_sibling
    if following is not None and following.type in _TRAILING_TYPES:
        last = following
    return first.start_point[0], last.end_point[0]


def _declared_name(node: Node) -> str:
    target = node.child_by_field_name('name')

    # C/C++: function_definition -> function_declarator -> identifier
    if target is None and (declarator := node.child_by_field_name('declarator')) is not None:
        target = declarator
        while (inner := target.child_by_field_name('declarator')) is not None:
            target = inner

    # Rust: impl<T> Foo<T> is named after Foo
    if target is None and node.type == 'impl_item':
        target = node.child_by_field_name('type')
        if target is not None and target.type == 'generic_type':
            target = target.child_by_field_name('type')

    # Go: type_declaration -> type_spec(name)
    if target is None:
        target = next(
            (name for child in node.named_children if (name := child.child_by_field_name('name')) is not None),
            None,
        )

    if target is None:
        target = next((child for child in node.named_children if child.type in _NAME_TYPES), None)
    return _text(target)


def _text(node: Node | None) -> str:
    if node is None or not node.text:
        return 'anonymous'
    return node.text.decode('utf-8', errors='replace')
