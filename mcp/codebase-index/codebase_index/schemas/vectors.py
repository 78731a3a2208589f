"""Vector search schemas."""

from __future__ import annotations

from codebase_index.schemas.base import StrictModel
from codebase_index.schemas.chunking import ChunkType

__all__ = [
    'SearchHit',
]


class SearchHit(StrictModel):
    """Single code search result with source location."""

    score: float
    file_path: str
    name: str
    type: ChunkType
    language: str
    start_line: int
    end_line: int
    content: str
