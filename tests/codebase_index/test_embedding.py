"""Tests for EmbeddingService -- batching and per-text fallback."""

from __future__ import annotations

from collections.abc import Sequence

from codebase_index.schemas.chunking import CodeChunk
from codebase_index.schemas.embeddings import MAX_BATCH_SIZE, MAX_TEXT_CHARS
from codebase_index.services.embedding import EmbeddingService
from tests.codebase_index import fakes


def _chunks(contents: Sequence[str]) -> list[CodeChunk]:
    return [
        CodeChunk(
            id=f'a.py:{i + 1}:{i}',
            content=content,
            type='function',
            name=f'f{i}',
            file_path='a.py',
            start_line=i + 1,
            end_line=i + 1,
            language='python',
        )
        for i, content in enumerate(contents)
    ]


class TestEmbedChunks:
    """Document embedding."""

    async def test_batches_preserve_order(self) -> None:
        client = fakes.FakeEmbeddingClient()
        service = EmbeddingService(client, batch_size=2)

        vectors = await service.embed_chunks(_chunks(['a', 'bb', 'ccc', 'dddd', 'eeeee']))

        assert [len(batch) for batch in client.batches] == [2, 2, 1]
        assert [vector[0] for vector in vectors if vector is not None] == [1.0, 2.0, 3.0, 4.0, 5.0]
        assert set(client.intents) == {'document'}

    async def test_batch_size_capped(self) -> None:
        client = fakes.FakeEmbeddingClient()
        service = EmbeddingService(client, batch_size=MAX_BATCH_SIZE * 5)

        await service.embed_chunks(_chunks([f'text {i}' for i in range(MAX_BATCH_SIZE + 50)]))

        assert sorted(len(batch) for batch in client.batches) == [50, MAX_BATCH_SIZE]

    async def test_poisoned_text_isolated(self) -> None:
        client = fakes.FakeEmbeddingClient(poisoned={'bad'})
        service = EmbeddingService(client)

        vectors = await service.embed_chunks(_chunks(['a', 'bad', 'ccc']))

        assert vectors[0] == [1.0, 0.5]
        assert vectors[1] is None
        assert vectors[2] == [3.0, 0.5]
        assert client.batches[0] == ['a', 'bad', 'ccc']
        assert sorted(client.batches[1:]) == [['a'], ['bad'], ['ccc']]

    async def test_long_text_truncated(self) -> None:
        client = fakes.FakeEmbeddingClient()
        service = EmbeddingService(client)

        vectors = await service.embed_chunks(_chunks(['x' * (MAX_TEXT_CHARS + 1000)]))

        assert len(client.batches[0][0]) == MAX_TEXT_CHARS
        assert vectors[0] == [float(MAX_TEXT_CHARS), 0.5]

    async def test_no_chunks_no_calls(self) -> None:
        client = fakes.FakeEmbeddingClient()
        assert await EmbeddingService(client).embed_chunks([]) == []
        assert client.batches == []


class TestQueryAndLifecycle:
    """Query embedding and client passthrough."""

    async def test_embed_query_uses_query_intent(self) -> None:
        client = fakes.FakeEmbeddingClient()

        vector = await EmbeddingService(client).embed_query('where is auth handled')

        assert vector == [21.0, 0.5]
        assert client.intents == ['query']

    async def test_close_and_properties(self) -> None:
        client = fakes.FakeEmbeddingClient(concurrency=3)
        service = EmbeddingService(client)

        assert service.preferred_concurrency == 3
        await service.close()
        assert client.closed
