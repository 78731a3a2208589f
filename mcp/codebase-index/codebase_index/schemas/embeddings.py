"""Embedding operation schemas.

Verified Gemini constraints (2026-01):
- Batch size: Max 100 items per request (hard error)
- Text length: Silently truncates to ~2048 tokens (no error, data loss)
"""

from __future__ import annotations

from typing import Literal

__all__ = [
    'MAX_BATCH_SIZE',
    'MAX_TEXT_CHARS',
    'TaskIntent',
]

# document: indexing chunks, query: search queries.
# Each client translates intent to its provider-specific task type.
type TaskIntent = Literal['document', 'query']

MAX_BATCH_SIZE = 100

# Max characters before truncation risk (~2048 tokens * ~4 chars/token, conservative)
MAX_TEXT_CHARS = 6000
