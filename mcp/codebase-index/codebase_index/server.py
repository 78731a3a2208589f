"""Codebase Index MCP Server.

Keeps a Qdrant index of a source repository in sync with the filesystem
and serves semantic code search over it.

Tools:
- index_status: Engine snapshot (phase, quota, pending queue, recent errors)
- trigger_index: Run an incremental scan-and-index pass now
- check_index: Cross-reference repository files with stored vectors
- repair_index: Remove orphaned vectors and re-index missing files
- search_code: Search indexed code by natural language query
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
import typing
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass

import mcp.server.fastmcp
import mcp.types

from codebase_index.clients import QdrantClient, create_embedding_client, create_qdrant_client
from codebase_index.repositories import CodeVectorRepository, JsonLedgerStore
from codebase_index.schemas.config import IndexerConfig, load_config
from codebase_index.schemas.health import HealthIssue, IndexHealthReport, RepairReport
from codebase_index.schemas.indexing import IndexingRunResult, IndexStatus
from codebase_index.schemas.vectors import SearchHit
from codebase_index.services.chunking import ChunkParser
from codebase_index.services.embedding import EmbeddingService
from codebase_index.services.health import ALL_ISSUES, IndexHealthService
from codebase_index.services.pipeline import IndexingPipeline
from codebase_index.services.reconciler import SyncReconciler
from codebase_index.services.trigger import DebouncedTrigger
from codebase_index.services.watcher import RepositoryWatcher
from codebase_index.utils import DualLogger, humanize_seconds

__all__ = [
    'ServerState',
    'main',
]

logger = logging.getLogger(__name__)

MAX_SEARCH_LIMIT = 50


@dataclass
class ServerState:
    """Container for all server state - initialized once at startup."""

    config: IndexerConfig
    qdrant_client: QdrantClient
    embedding_service: EmbeddingService
    vector_store: CodeVectorRepository
    pipeline: IndexingPipeline
    trigger: DebouncedTrigger
    health: IndexHealthService
    watcher: RepositoryWatcher | None = None

    @classmethod
    async def create(cls, config: IndexerConfig) -> typing.Self:
        """Async factory method to create server state.

        Must be called from async context so semaphores and timers bind to
        the running loop.
        """
        qdrant_client = create_qdrant_client(config)
        embedding_service = EmbeddingService(create_embedding_client(config), batch_size=config.batch_size)
        vector_store = CodeVectorRepository(qdrant_client, config.collection_name, config.embedding_dimensions)
        ledger_store = JsonLedgerStore(config.memory_path)

        pipeline = await asyncio.to_thread(
            IndexingPipeline.from_store,
            repo_root=config.repo_path,
            parser=ChunkParser(config.repo_path),
            embedder=embedding_service,
            vector_store=vector_store,
            ledger_store=ledger_store,
            quota_limit=config.daily_quota_limit,
            checkpoint_interval=config.checkpoint_interval,
        )
        trigger = DebouncedTrigger(pipeline)

        return cls(
            config=config,
            qdrant_client=qdrant_client,
            embedding_service=embedding_service,
            vector_store=vector_store,
            pipeline=pipeline,
            trigger=trigger,
            health=IndexHealthService(pipeline, vector_store),
        )

    def start_watcher(self) -> None:
        self.watcher = RepositoryWatcher(
            self.config.repo_path,
            self.trigger,
            asyncio.get_running_loop(),
            self.pipeline.scanner.rules,
        )
        self.watcher.start()

    async def close(self) -> None:
        """Stop watching, let an in-flight run finish, release clients."""
        if self.watcher is not None:
            self.watcher.stop()
        await self.trigger.close()
        await self.embedding_service.close()
        await self.qdrant_client.close()


def register_tools(state: ServerState) -> None:
    """Register MCP tools with closure over server state."""

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Index Status',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=False,
        ),
    )
    async def index_status() -> IndexStatus:
        """Get a snapshot of the indexing engine.

        Returns:
            IndexStatus with run phase, progress, deferred and pending path
            counts, daily quota usage, last categorization stats, and the
            most recent per-file errors (newest first).
        """
        return state.pipeline.get_status()

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Trigger Index',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=False,
            openWorldHint=True,
        ),
    )
    async def trigger_index(
        ctx: mcp.server.fastmcp.Context[typing.Any, typing.Any, typing.Any] | None = None,
    ) -> IndexingRunResult:
        """Run an incremental scan-and-index pass over the repository now.

        Only new and modified files are embedded; deleted files are removed
        from the index. If a run is already active the call returns outcome
        'busy' and changes are picked up by the next run. Stops early with
        outcome 'quota_exhausted' when the daily chunk budget runs out;
        remaining files are retried on the next run.

        Returns:
            IndexingRunResult with categorization counts and processing outcomes.
        """
        if ctx is None:
            raise ValueError('MCP context required')

        logger = DualLogger(ctx)
        await logger.info(f'Indexing {state.config.repo_path}')

        result = await state.pipeline.trigger_scan_and_index()

        if result.outcome == 'busy':
            await logger.warning('Indexing already in progress, changes will be picked up by the next run')
        else:
            await logger.info(
                f'{result.outcome}: {result.files_indexed} indexed, {result.deleted_files} deleted, '
                f'{result.files_deferred} deferred in {humanize_seconds(result.elapsed_seconds)}'
            )
        if result.errors:
            await logger.warning(result.error_summary)
        return result

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Check Index',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=True,
        ),
    )
    async def check_index() -> IndexHealthReport:
        """Cross-reference repository files with the paths holding vectors.

        Returns:
            IndexHealthReport listing missing files (on disk, no vectors) and
            orphaned paths (vectors for files no longer on disk). Results may
            be transient while indexing_in_progress is true.
        """
        return await state.health.check()

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Repair Index',
            destructiveHint=True,
            idempotentHint=True,
            readOnlyHint=False,
            openWorldHint=True,
        ),
    )
    async def repair_index(
        issues: Sequence[HealthIssue] = ALL_ISSUES,
        auto_fix: bool = False,
        ctx: mcp.server.fastmcp.Context[typing.Any, typing.Any, typing.Any] | None = None,
    ) -> RepairReport:
        """Repair disagreement between the repository and the index.

        Args:
            issues: Issue kinds to address: 'missing_files', 'orphaned_paths'.
            auto_fix: False (default) only reports. True deletes orphaned
                vectors, forgets missing files, and runs an index pass.

        Returns:
            RepairReport with the issues found and what was fixed.
        """
        if ctx is None:
            raise ValueError('MCP context required')
        if state.pipeline.is_indexing:
            raise ValueError('Indexing is in progress. Retry repair_index after it finishes (see index_status).')

        logger = DualLogger(ctx)
        report = await state.health.repair(issues, auto_fix=auto_fix)

        if auto_fix:
            await logger.info(
                f'Removed {report.orphans_removed} orphaned paths, re-indexed {report.files_requeued} missing files'
            )
        else:
            await logger.info(
                f'Found {len(report.missing_files)} missing files and {len(report.orphaned_paths)} orphaned paths'
            )
        return report

    @server.tool(
        annotations=mcp.types.ToolAnnotations(
            title='Search Code',
            destructiveHint=False,
            idempotentHint=True,
            readOnlyHint=True,
            openWorldHint=True,
        ),
    )
    async def search_code(query: str, limit: int = 10) -> Sequence[SearchHit]:
        """Search indexed code by natural language query.

        Args:
            query: What the code does, e.g. 'retry with exponential backoff'.
            limit: Maximum number of chunks to return (1-50).

        Returns:
            Matching chunks ordered by similarity, with file path and line range.
        """
        if not query.strip():
            raise ValueError('query must not be empty')
        if not 1 <= limit <= MAX_SEARCH_LIMIT:
            raise ValueError(f'limit must be between 1 and {MAX_SEARCH_LIMIT}, got {limit}')

        vector = await state.embedding_service.embed_query(query)
        return await state.vector_store.search(vector, limit=limit)


@contextlib.asynccontextmanager
async def lifespan(mcp_server: mcp.server.fastmcp.FastMCP) -> AsyncIterator[None]:
    """Manage server lifecycle - initialization before requests, cleanup after shutdown."""

    # stdout carries the MCP stdio protocol
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S',
        stream=sys.stderr,
    )
    # Silence noisy third-party loggers
    for name in ('httpx', 'httpcore', 'google', 'watchdog'):
        logging.getLogger(name).setLevel(logging.WARNING)

    config = load_config()
    state = await ServerState.create(config)

    await state.vector_store.ensure_collection()
    sync_outcome = await SyncReconciler(state.pipeline, state.vector_store).reconcile()

    register_tools(state)

    if config.watch_mode:
        state.start_watcher()

    # Startup run goes through the trigger so shutdown waits for it
    state.trigger.flush()

    logger.info(
        f'[STARTUP] Codebase index ready: repo={config.repo_path}, collection={config.collection_name}, '
        f'sync={sync_outcome}, watch={config.watch_mode}'
    )

    yield

    await state.close()
    logger.info('[SHUTDOWN] Codebase index stopped')


server = mcp.server.fastmcp.FastMCP('codebase-index', lifespan=lifespan)


def main() -> None:
    """Entry point for the MCP server."""
    server.run()


if __name__ == '__main__':
    main()
