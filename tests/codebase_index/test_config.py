"""Tests for load_config -- environment variables into IndexerConfig."""

from __future__ import annotations

from pathlib import Path

import pytest

from codebase_index.schemas.config import ConfigError, load_config


class TestLoadConfig:
    """Defaults, coercion, and validation."""

    def test_defaults(self, tmp_path: Path) -> None:
        config = load_config({'REPO_PATH': str(tmp_path)})

        assert config.repo_path == tmp_path.resolve()
        assert config.memory_path.is_absolute()
        assert config.collection_name == 'codebase'
        assert config.qdrant_url == 'http://localhost:6333'
        assert config.batch_size == 100
        assert config.watch_mode is True
        assert config.daily_quota_limit == 10_000
        assert config.checkpoint_interval == 10

    def test_string_values_coerced(self, tmp_path: Path) -> None:
        config = load_config(
            {
                'REPO_PATH': str(tmp_path),
                'EMBEDDING_DIMENSIONS': '1536',
                'BATCH_SIZE': '25',
                'WATCH_MODE': 'false',
                'DAILY_QUOTA_LIMIT': '500',
                'CHECKPOINT_INTERVAL': '5',
                'QDRANT_COLLECTION': 'my-repo',
            }
        )

        assert config.embedding_dimensions == 1536
        assert config.batch_size == 25
        assert config.watch_mode is False
        assert config.daily_quota_limit == 500
        assert config.checkpoint_interval == 5
        assert config.collection_name == 'my-repo'

    def test_empty_values_treated_as_unset(self, tmp_path: Path) -> None:
        config = load_config({'REPO_PATH': str(tmp_path), 'QDRANT_API_KEY': '', 'BATCH_SIZE': ''})

        assert config.qdrant_api_key is None
        assert config.batch_size == 100

    def test_relative_memory_path_resolved_against_cwd(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)

        config = load_config({'REPO_PATH': str(tmp_path), 'MEMORY_FILE_PATH': 'state'})

        assert config.memory_path == tmp_path.resolve() / 'state'

    @pytest.mark.parametrize('value', ['0', '101', 'many'])
    def test_invalid_batch_size(self, tmp_path: Path, value: str) -> None:
        with pytest.raises(ConfigError, match='Invalid configuration'):
            load_config({'REPO_PATH': str(tmp_path), 'BATCH_SIZE': value})

    def test_zero_checkpoint_interval_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_config({'REPO_PATH': str(tmp_path), 'CHECKPOINT_INTERVAL': '0'})

    def test_missing_repo_path(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match='not a directory'):
            load_config({'REPO_PATH': str(tmp_path / 'nope')})

    def test_repo_path_is_file(self, tmp_path: Path) -> None:
        file = tmp_path / 'file.py'
        file.write_text('')
        with pytest.raises(ConfigError, match='not a directory'):
            load_config({'REPO_PATH': str(file)})
