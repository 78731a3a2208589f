"""Indexer configuration schema.

Configuration is read from environment variables once at server startup.
Each variable maps to one IndexerConfig field; unset variables keep defaults.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any

import pydantic

from codebase_index.schemas.base import StrictModel
from codebase_index.schemas.embeddings import MAX_BATCH_SIZE

__all__ = [
    'CHECKPOINT_INTERVAL',
    'DAILY_QUOTA_LIMIT',
    'ENV_VARS',
    'ConfigError',
    'IndexerConfig',
    'load_config',
]

logger = logging.getLogger(__name__)

DAILY_QUOTA_LIMIT = 10_000  # Chunks per calendar day
CHECKPOINT_INTERVAL = 10  # Files between checkpoints

# Environment variable -> IndexerConfig field
ENV_VARS: Mapping[str, str] = {
    'REPO_PATH': 'repo_path',
    'MEMORY_FILE_PATH': 'memory_path',
    'QDRANT_URL': 'qdrant_url',
    'QDRANT_API_KEY': 'qdrant_api_key',
    'QDRANT_COLLECTION': 'collection_name',
    'GEMINI_API_KEY': 'gemini_api_key',
    'EMBEDDING_MODEL': 'embedding_model',
    'EMBEDDING_DIMENSIONS': 'embedding_dimensions',
    'EMBEDDING_CONCURRENCY': 'embedding_concurrency',
    'BATCH_SIZE': 'batch_size',
    'WATCH_MODE': 'watch_mode',
    'DAILY_QUOTA_LIMIT': 'daily_quota_limit',
    'CHECKPOINT_INTERVAL': 'checkpoint_interval',
}


class ConfigError(ValueError):
    """Configuration is missing or invalid."""


class IndexerConfig(StrictModel):
    """Server configuration.

    Paths are resolved to absolute paths at load time so the server
    behaves the same regardless of later working directory changes.
    """

    repo_path: Path
    memory_path: Path = Path('memory')

    # Qdrant
    qdrant_url: str = 'http://localhost:6333'
    qdrant_api_key: str | None = None
    collection_name: Annotated[str, pydantic.Field(min_length=1)] = 'codebase'

    # Gemini embeddings
    gemini_api_key: str | None = None  # None: load from secrets file
    embedding_model: str = 'gemini-embedding-001'
    embedding_dimensions: Annotated[int, pydantic.Field(gt=0)] = 768
    embedding_concurrency: Annotated[int, pydantic.Field(ge=1)] = 4  # Batches in flight
    batch_size: Annotated[int, pydantic.Field(ge=1, le=MAX_BATCH_SIZE)] = MAX_BATCH_SIZE

    # Engine
    watch_mode: bool = True
    daily_quota_limit: Annotated[int, pydantic.Field(gt=0)] = DAILY_QUOTA_LIMIT
    checkpoint_interval: Annotated[int, pydantic.Field(ge=1)] = CHECKPOINT_INTERVAL


def load_config(environ: Mapping[str, str] | None = None) -> IndexerConfig:
    """Build config from environment variables.

    Args:
        environ: Variable source. Defaults to os.environ.

    Returns:
        Validated IndexerConfig with absolute paths.

    Raises:
        ConfigError: If a variable has an invalid value or REPO_PATH is not a directory.
    """
    source = os.environ if environ is None else environ

    data: dict[str, Any] = {}
    for env_var, field in ENV_VARS.items():
        value = source.get(env_var)
        if value is not None and value != '':
            data[field] = value
    data.setdefault('repo_path', Path.cwd())

    try:
        # Lax validation: environment values are strings ("768", "false")
        config = IndexerConfig.model_validate(data, strict=False)
    except pydantic.ValidationError as e:
        raise ConfigError(f'Invalid configuration: {e}') from e

    repo_path = config.repo_path.expanduser().resolve()
    if not repo_path.is_dir():
        raise ConfigError(f'REPO_PATH is not a directory: {repo_path}')

    memory_path = config.memory_path.expanduser()
    if not memory_path.is_absolute():
        memory_path = Path.cwd() / memory_path

    config = config.model_copy(update={'repo_path': repo_path, 'memory_path': memory_path.resolve()})
    logger.info(
        f'Loaded config: repo={config.repo_path}, collection={config.collection_name}, '
        f'model={config.embedding_model}, watch={config.watch_mode}'
    )
    return config
