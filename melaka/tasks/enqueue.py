# melaka/tasks/enqueue.py
"""
将翻译工作按 (文档, 语言) 拆分为异步任务并投递到任务传输层。

同一次投递产生的所有任务共享一个批次 ID。第 i 个任务的延迟为
`floor(i × stagger_delay_ms / 1000)` 秒，对集合投递而言 i 在整个
(文档 × 语言) 笛卡尔积上连续递增。并发上限由传输层自身配置。
"""

from typing import Optional

import structlog

from melaka.config import CollectionConfig
from melaka.core.interfaces import DocumentStore, TaskQueue
from melaka.tasks.payload import EnqueueResult, TaskPayload
from melaka.utils import generate_batch_id

logger = structlog.get_logger(__name__)

DEFAULT_STAGGER_DELAY_MS = 100


def compute_delay_seconds(index: int, stagger_delay_ms: int) -> int:
    return (index * stagger_delay_ms) // 1000


class _BatchEnqueuer:
    """在一次投递中累计计数与错误。"""

    def __init__(self, queue: TaskQueue, batch_id: str, stagger_delay_ms: int):
        self.queue = queue
        self.batch_id = batch_id
        self.stagger_delay_ms = stagger_delay_ms
        self.index = 0
        self.enqueued = 0
        self.errors: list[str] = []

    async def enqueue(
        self,
        collection_path: str,
        document_id: str,
        language: str,
        config: CollectionConfig,
    ) -> None:
        delay_seconds = compute_delay_seconds(self.index, self.stagger_delay_ms)
        self.index += 1
        payload = TaskPayload(
            collection_path=collection_path,
            document_id=document_id,
            target_language=language,
            config=config,
            batch_id=self.batch_id,
        )
        try:
            await self.queue.enqueue(payload.to_wire(), delay_seconds=delay_seconds)
        except Exception as e:
            message = f"Failed to enqueue {document_id}/{language}: {e}"
            logger.warning("任务投递失败", batch_id=self.batch_id, error=message)
            self.errors.append(message)
        else:
            self.enqueued += 1

    def result(self) -> EnqueueResult:
        return EnqueueResult(
            batch_id=self.batch_id,
            tasks_enqueued=self.enqueued,
            failed=len(self.errors),
            errors=list(self.errors),
        )


async def enqueue_document_translation(
    queue: TaskQueue,
    collection_path: str,
    document_id: str,
    languages: list[str],
    config: CollectionConfig,
    *,
    stagger_delay_ms: int = DEFAULT_STAGGER_DELAY_MS,
    batch_id: Optional[str] = None,
) -> EnqueueResult:
    """为一个文档的每种目标语言投递一个任务。"""
    batch = _BatchEnqueuer(queue, batch_id or generate_batch_id(), stagger_delay_ms)
    for language in languages:
        await batch.enqueue(collection_path, document_id, language, config)

    result = batch.result()
    logger.info(
        "文档翻译任务已投递",
        batch_id=result.batch_id,
        document_id=document_id,
        enqueued=result.tasks_enqueued,
        failed=result.failed,
    )
    return result


async def enqueue_collection_translation(
    queue: TaskQueue,
    store: DocumentStore,
    config: CollectionConfig,
    languages: list[str],
    *,
    stagger_delay_ms: int = DEFAULT_STAGGER_DELAY_MS,
    batch_id: Optional[str] = None,
) -> EnqueueResult:
    """
    为集合中的每个文档、每种语言投递任务。

    对集合组而言，任务的集合路径取文档实际所在的父集合路径。
    """
    snapshots = await store.list_documents(
        config.path, group=config.is_collection_group
    )
    batch = _BatchEnqueuer(queue, batch_id or generate_batch_id(), stagger_delay_ms)
    for snapshot in snapshots:
        collection_path = (
            snapshot.parent_path if config.is_collection_group else config.path
        )
        for language in languages:
            await batch.enqueue(collection_path, snapshot.id, language, config)

    result = batch.result()
    logger.info(
        "集合翻译任务已投递",
        batch_id=result.batch_id,
        collection=config.path,
        documents=len(snapshots),
        enqueued=result.tasks_enqueued,
        failed=result.failed,
    )
    return result
