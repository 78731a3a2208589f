"""Tests for ChangeScanner and IgnoreRules."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from codebase_index.services import scanner as scanner_module
from codebase_index.services.scanner import ChangeScanner, IgnoreRules, file_hash
from tests.codebase_index import fakes


class TestIgnoreRules:
    """Directory pruning and extension filtering."""

    @pytest.mark.parametrize(
        'rel_path, watched',
        [
            ('main.py', True),
            ('src/app.TS', True),
            ('lib/widget.dart', True),
            ('README.md', False),
            ('node_modules/pkg/index.js', False),
            ('packages/a/node_modules/x.js', False),
            ('ios/Pods/Thing.swift', False),
            ('app/ios/Pods/Thing.swift', False),
            ('ios/Pods/Sub/Deep.swift', False),
            ('Pods/Thing.swift', True),
            ('ios/Runner/AppDelegate.swift', True),
            ('src/build/gen.py', False),
        ],
    )
    def test_is_watched_file(self, rel_path: str, watched: bool) -> None:
        assert IgnoreRules().is_watched_file(rel_path) is watched

    def test_custom_patterns_and_extensions(self) -> None:
        rules = IgnoreRules(['generated/'], {'.py'})
        assert rules.is_watched_file('src/a.py')
        assert not rules.is_watched_file('src/a.ts')
        assert not rules.is_watched_file('generated/a.py')


class TestScan:
    """Full-repository scans."""

    def test_reports_all_files_as_changed_initially(self, repo: Path) -> None:
        fakes.write_files(repo, {'a.py': 'x = 1\n', 'pkg/b.go': 'package pkg\n', 'notes.txt': 'hi'})

        result = ChangeScanner(repo).scan()

        assert sorted(result.current_hashes) == ['a.py', 'pkg/b.go']
        assert sorted(result.changed) == ['a.py', 'pkg/b.go']
        assert result.files_scanned == 2
        assert result.current_hashes['a.py'] == file_hash(repo / 'a.py')

    def test_only_differing_hashes_are_changed(self, repo: Path) -> None:
        fakes.write_files(repo, {'a.py': 'x = 1\n', 'b.py': 'y = 2\n'})
        committed = {'a.py': file_hash(repo / 'a.py'), 'b.py': 'stale'}

        result = ChangeScanner(repo, committed=committed).scan()

        assert result.changed == ['b.py']

    def test_scan_never_mutates_committed_hashes(self, repo: Path) -> None:
        fakes.write_files(repo, {'a.py': 'x = 1\n'})
        scanner = ChangeScanner(repo, committed={'a.py': 'old'})

        scanner.scan()
        scanner.scan()

        assert dict(scanner.committed_hashes) == {'a.py': 'old'}

    def test_ignored_directories_never_descended(self, repo: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        fakes.write_files(repo, {'src/a.py': '', 'node_modules/dep/deep/x.js': '', '.git/hooks/h.py': ''})
        visited: list[str] = []
        real_walk = os.walk

        def recording_walk(top: Path, onerror: Callable[[OSError], None]) -> Iterator[tuple[str, list[str], list[str]]]:
            for root, dirnames, filenames in real_walk(top, onerror=onerror):
                visited.append(Path(root).relative_to(repo.resolve()).as_posix())
                yield root, dirnames, filenames

        monkeypatch.setattr(scanner_module.os, 'walk', recording_walk)
        result = ChangeScanner(repo).scan()

        assert list(result.current_hashes) == ['src/a.py']
        assert not any(v.startswith(('node_modules', '.git')) for v in visited)

    def test_unreadable_file_skipped(self, repo: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        fakes.write_files(repo, {'a.py': 'x = 1\n', 'locked.py': 'secret\n'})
        real_hash = scanner_module.file_hash

        def flaky_hash(path: Path) -> str:
            if path.name == 'locked.py':
                raise PermissionError(13, 'Permission denied', str(path))
            return real_hash(path)

        monkeypatch.setattr(scanner_module, 'file_hash', flaky_hash)
        result = ChangeScanner(repo).scan()

        assert list(result.current_hashes) == ['a.py']
        assert result.skipped == {'locked.py'}


class TestCommittedHashes:
    """Hash bookkeeping used by the pipeline after successful indexing."""

    def test_commit_forget_clear(self, repo: Path) -> None:
        scanner = ChangeScanner(repo)

        scanner.commit_hash('a.py', 'h1')
        scanner.commit_hash('b.py', 'h2')
        scanner.forget('a.py')
        assert dict(scanner.committed_hashes) == {'b.py': 'h2'}

        scanner.clear_committed()
        assert dict(scanner.committed_hashes) == {}

    def test_relative_path(self, repo: Path, tmp_path: Path) -> None:
        scanner = ChangeScanner(repo)
        assert scanner.relative_path(repo / 'pkg' / 'a.py') == 'pkg/a.py'
        assert scanner.relative_path(tmp_path / 'elsewhere.py') is None
