"""Centralized file paths for codebase indexing.

All persistent file locations in one place for consistency.
"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    'CODEBASE_INDEX_DIR',
    'GEMINI_API_KEY_PATH',
    'LEDGER_FILENAME',
    'SCAN_HASHES_FILENAME',
    'ledger_path',
    'scan_hashes_path',
]

# Base directory for secrets and defaults outside the indexed repository
CODEBASE_INDEX_DIR = Path.home() / '.codebase-index'

# Fallback API key location when GEMINI_API_KEY is unset
GEMINI_API_KEY_PATH = CODEBASE_INDEX_DIR / 'secrets' / 'gemini_api_key'

# Persisted engine state, stored under the configured memory directory
LEDGER_FILENAME = 'incremental_state.json'
SCAN_HASHES_FILENAME = 'index-metadata.json'


def ledger_path(memory_dir: Path) -> Path:
    """Ledger document location for a memory directory."""
    return memory_dir / LEDGER_FILENAME


def scan_hashes_path(memory_dir: Path) -> Path:
    """Scanner hash map location for a memory directory."""
    return memory_dir / SCAN_HASHES_FILENAME
