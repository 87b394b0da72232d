# tests/integration/test_end_to_end.py
"""
端到端集成测试：写入触发 -> 任务扇出 -> 进程内队列 -> 任务处理器 -> 处理管线 -> 记录存储。

全部组件都是真实实现，只有 AI 提供方使用离线的 debug 提供方，
文档存储分别覆盖内存实现与 SQLite 实现。
"""

from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from melaka.config import MelakaConfig, MelakaSettings, RetryPolicyConfig
from melaka.core.interfaces import DocumentStore
from melaka.persistence import (
    InMemoryDocumentStore,
    SQLAlchemyDocumentStore,
    TranslationRecordStore,
    create_document_store,
)
from melaka.processor import TranslationProcessor
from melaka.providers.debug import DebugProvider, DebugProviderConfig
from melaka.tasks import (
    LocalTaskQueue,
    TaskHandlerContext,
    enqueue_collection_translation,
    execute_translation_task,
    on_document_written,
)
from tests.helpers.factories import create_article


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def store(
    request: pytest.FixtureRequest, tmp_path: Path
) -> AsyncGenerator[DocumentStore, None]:
    if request.param == "memory":
        yield InMemoryDocumentStore()
        return
    settings = MelakaSettings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'e2e.db'}", _env_file=None
    )
    sql_store = create_document_store(settings)
    assert isinstance(sql_store, SQLAlchemyDocumentStore)
    await sql_store.connect()
    yield sql_store
    await sql_store.close()


def build_queue(
    store: DocumentStore, config: MelakaConfig, processor: TranslationProcessor | None = None
) -> LocalTaskQueue:
    context = TaskHandlerContext(store=store, config=config, processor=processor)

    async def handler(payload: dict[str, Any]) -> None:
        await execute_translation_task(payload, context)

    return LocalTaskQueue(
        handler,
        retry_policy=RetryPolicyConfig(max_attempts=3, min_backoff=1, max_backoff=2),
        sleep=AsyncMock(),
    )


@pytest.mark.asyncio
async def test_write_translates_into_every_language(
    store: DocumentStore, melaka_config: MelakaConfig
) -> None:
    records = TranslationRecordStore(store)
    queue = build_queue(store, melaka_config)
    article = create_article()
    await store.set("articles/a1", article)

    result = await on_document_written(queue, melaka_config, "articles/a1", article)
    await queue.run_until_idle()

    assert result is not None and result.tasks_enqueued == 2
    assert queue.completed == 2
    assert queue.dead_letters == []
    for locale in ["ms-MY", "zh-CN"]:
        record = await records.read("articles/a1", locale)
        assert record is not None
        assert record["title"] == f"[{locale}] Hello World"
        assert record["tags"] == [f"[{locale}] travel", f"[{locale}] food"]
        assert record["views"] == 42
        assert record["author"] == {"path": "users/u1", "id": "u1"}
        assert record["_meta"]["status"] == "completed"
        assert record["_meta"]["model"] == "debug"


@pytest.mark.asyncio
async def test_unchanged_write_skips_and_edit_retranslates(
    store: DocumentStore, melaka_config: MelakaConfig
) -> None:
    records = TranslationRecordStore(store)
    queue = build_queue(store, melaka_config)
    article = create_article()
    await store.set("articles/a1", article)
    await on_document_written(queue, melaka_config, "articles/a1", article)
    await queue.run_until_idle()
    first = await records.read_metadata("articles/a1", "ms-MY")

    # 只修改透传字段，指纹不变
    touched = create_article(views=43)
    await store.set("articles/a1", touched)
    await on_document_written(queue, melaka_config, "articles/a1", touched)
    await queue.run_until_idle()
    unchanged = await records.read("articles/a1", "ms-MY")
    assert unchanged is not None and unchanged["views"] == 42

    edited = create_article(title="Jonker Walk")
    await store.set("articles/a1", edited)
    await on_document_written(queue, melaka_config, "articles/a1", edited)
    await queue.run_until_idle()
    record = await records.read("articles/a1", "ms-MY")
    assert record is not None and record["title"] == "[ms-MY] Jonker Walk"
    assert record["_meta"]["source_hash"] != first.source_hash


@pytest.mark.asyncio
async def test_failing_provider_marks_record_and_dead_letters(
    store: DocumentStore, melaka_config: MelakaConfig
) -> None:
    processor = TranslationProcessor(
        TranslationRecordStore(store),
        provider_factory=lambda ai: DebugProvider(DebugProviderConfig(mode="FAIL")),
    )
    queue = build_queue(store, melaka_config, processor)
    await store.set("articles/a1", create_article())

    await on_document_written(queue, melaka_config, "articles/a1", create_article())
    await queue.run_until_idle()

    assert queue.completed == 0
    assert len(queue.dead_letters) == 2
    assert all(letter.attempts == 3 for letter in queue.dead_letters)
    metadata = await TranslationRecordStore(store).read_metadata("articles/a1", "ms-MY")
    assert metadata is not None
    assert metadata.status == "failed"
    assert metadata.error and "FAIL mode" in metadata.error


@pytest.mark.asyncio
async def test_collection_backfill_and_delete_cascade(
    store: DocumentStore, melaka_config: MelakaConfig
) -> None:
    records = TranslationRecordStore(store)
    queue = build_queue(store, melaka_config)
    await store.set("articles/a1", create_article())
    await store.set("articles/a2", create_article(title="Stadthuys"))
    await store.set("users/u1/comments/c1", {"text": "Sedap"})

    await enqueue_collection_translation(
        queue, store, melaka_config.collections[0], melaka_config.languages
    )
    await enqueue_collection_translation(
        queue, store, melaka_config.collections[1], ["ms-MY"]
    )
    await queue.run_until_idle()

    assert queue.completed == 5
    assert sorted(await records.list_locales("articles/a2")) == ["ms-MY", "zh-CN"]
    comment = await records.read("users/u1/comments/c1", "ms-MY")
    assert comment is not None and comment["text"] == "[ms-MY] Sedap"

    await store.delete("articles/a2")
    await on_document_written(
        queue, melaka_config, "articles/a2", None, record_store=records
    )
    assert await records.list_locales("articles/a2") == []
    assert sorted(await records.list_locales("articles/a1")) == ["ms-MY", "zh-CN"]
