# melaka/tasks/triggers.py
"""对源文档的写入事件作出反应：为每种配置的语言投递翻译任务。"""

from typing import Any, Optional

import structlog

from melaka.config import MelakaConfig, find_collection_config
from melaka.core.interfaces import TaskQueue
from melaka.persistence.records import TranslationRecordStore
from melaka.persistence.utils import split_document_path
from melaka.tasks.enqueue import DEFAULT_STAGGER_DELAY_MS, enqueue_document_translation
from melaka.tasks.payload import EnqueueResult

logger = structlog.get_logger(__name__)


async def on_document_written(
    queue: TaskQueue,
    config: MelakaConfig,
    document_path: str,
    after_data: Optional[dict[str, Any]],
    *,
    record_store: Optional[TranslationRecordStore] = None,
    stagger_delay_ms: int = DEFAULT_STAGGER_DELAY_MS,
) -> Optional[EnqueueResult]:
    """
    处理一次文档写入事件。

    Args:
        queue: 任务传输层。
        config: Melaka 配置。
        document_path: 被写入的源文档路径。
        after_data: 写入后的文档数据；为 None 表示文档被删除。
        record_store: 提供时，文档删除会级联删除它的全部翻译记录。
        stagger_delay_ms: 任务之间的错峰间隔。

    Returns:
        投递结果；删除事件或未配置的集合返回 None。

    """
    collection_path, document_id = split_document_path(document_path)

    if after_data is None:
        if record_store is not None:
            await record_store.delete_all(document_path)
        logger.debug("源文档已删除，不投递翻译任务", document_path=document_path)
        return None

    collection_config = find_collection_config(config, collection_path)
    if collection_config is None:
        logger.debug("集合未配置翻译，忽略写入事件", collection_path=collection_path)
        return None

    return await enqueue_document_translation(
        queue,
        collection_path,
        document_id,
        config.languages,
        collection_config,
        stagger_delay_ms=stagger_delay_ms,
    )
