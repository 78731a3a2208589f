"""Code chunk schemas.

Defines watched source languages and the chunk structure stored in Qdrant.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import PurePath
from typing import Annotated, Literal

import pydantic

from codebase_index.schemas.base import StrictModel

__all__ = [
    'LANGUAGE_MAP',
    'WATCHED_EXTENSIONS',
    'ChunkType',
    'CodeChunk',
    'Language',
    'get_language',
]

type Language = Literal[
    'python',
    'javascript',
    'typescript',
    'java',
    'go',
    'rust',
    'cpp',
    'c',
    'csharp',
    'ruby',
    'php',
    'swift',
    'kotlin',
    'dart',
    'vue',
    'svelte',
]

# module: leading lines before the first function/class boundary
type ChunkType = Literal['module', 'function', 'class']

# Extension to Language mapping. Keys double as the watched extension set.
LANGUAGE_MAP: Mapping[str, Language] = {
    '.py': 'python',
    '.js': 'javascript',
    '.jsx': 'javascript',
    '.ts': 'typescript',
    '.tsx': 'typescript',
    '.java': 'java',
    '.go': 'go',
    '.rs': 'rust',
    '.cpp': 'cpp',
    '.c': 'c',
    '.cs': 'csharp',
    '.rb': 'ruby',
    '.php': 'php',
    '.swift': 'swift',
    '.kt': 'kotlin',
    '.dart': 'dart',
    '.vue': 'vue',
    '.svelte': 'svelte',
}

WATCHED_EXTENSIONS = frozenset(LANGUAGE_MAP)


class CodeChunk(StrictModel):
    """Line-bounded slice of a source file, embedded as one vector.

    Line numbers are 1-based and inclusive.
    """

    id: str  # "{file_path}:{start_line}:{n}"
    content: Annotated[str, pydantic.Field(min_length=1)]
    type: ChunkType
    name: str
    file_path: str  # Repo-relative POSIX path
    start_line: int
    end_line: int
    language: Language
    imports: Sequence[str] = ()
    complexity: Annotated[int, pydantic.Field(ge=1, le=5)] = 1


def get_language(path: PurePath) -> Language | None:
    """Get Language for a path, or None if not watched."""
    return LANGUAGE_MAP.get(path.suffix.lower())
