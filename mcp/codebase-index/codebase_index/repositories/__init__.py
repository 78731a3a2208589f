"""Repositories for data persistence."""

from __future__ import annotations

from codebase_index.repositories.code_vector import CodeVectorRepository
from codebase_index.repositories.ledger_store import JsonLedgerStore

__all__ = [
    'CodeVectorRepository',
    'JsonLedgerStore',
]
