# melaka/tasks/handler.py
"""
任务处理器：在任务被分派时重新加载文档、解析集合配置并调用处理管线。

`handle_translation_task` 只返回结果而不抛出异常；
`execute_translation_task` 面向传输层，把需要重试的失败转换为 `TaskRetryError`。
"""

from dataclasses import dataclass
from typing import Any, Optional

import pydantic
import structlog

from melaka.config import (
    MelakaConfig,
    MelakaSettings,
    find_collection_config,
    resolve_api_key,
    resolve_effective_config,
)
from melaka.core.exceptions import TaskRetryError
from melaka.core.interfaces import DocumentStore
from melaka.core.types import ProcessResult
from melaka.persistence.records import TranslationRecordStore
from melaka.processor import TranslationProcessor
from melaka.tasks.payload import TaskPayload

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TaskHandlerContext:
    """任务处理器的依赖项。"""

    store: DocumentStore
    config: MelakaConfig
    api_key: Optional[str] = None
    settings: Optional[MelakaSettings] = None
    processor: Optional[TranslationProcessor] = None

    def get_processor(self) -> TranslationProcessor:
        if self.processor is not None:
            return self.processor
        return TranslationProcessor(TranslationRecordStore(self.store))


def _describe_validation_error(error: pydantic.ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or '(root)'}: {err['msg']}"
        for err in error.errors()
    )


async def handle_translation_task(
    payload: Any, context: TaskHandlerContext
) -> ProcessResult:
    """处理一个被分派的翻译任务。"""
    try:
        task = TaskPayload.model_validate(payload)
    except pydantic.ValidationError as e:
        error = f"Invalid task payload: {_describe_validation_error(e)}"
        logger.error("任务负载格式无效", error=error)
        return ProcessResult(success=False, skipped=False, error=error)

    with structlog.contextvars.bound_contextvars(
        batch_id=task.batch_id,
        document_id=task.document_id,
        language=task.target_language,
    ):
        document_path = task.document_path
        data = await context.store.get(document_path)
        if data is None:
            logger.info("文档已不存在，跳过任务", document_path=document_path)
            return ProcessResult(
                success=True, skipped=True, error="Document no longer exists"
            )
        if not data:
            logger.info("文档没有数据，跳过任务", document_path=document_path)
            return ProcessResult(success=True, skipped=True, error="Document has no data")

        collection_config = find_collection_config(context.config, task.collection_path)
        if collection_config is None:
            error = f"Collection not configured: {task.collection_path}"
            logger.error("未找到集合配置", collection_path=task.collection_path)
            return ProcessResult(
                success=False, skipped=False, error=error, retryable=False
            )

        effective = resolve_effective_config(context.config, collection_config)
        api_key = context.api_key or resolve_api_key(effective.ai, context.settings)
        if api_key:
            effective = effective.model_copy(
                update={"ai": effective.ai.model_copy(update={"api_key": api_key})}
            )

        return await context.get_processor().process_translation(
            task.document_id,
            document_path,
            data,
            task.target_language,
            effective,
            force_update=effective.force_update,
        )


async def execute_translation_task(
    payload: Any, context: TaskHandlerContext
) -> ProcessResult:
    """
    面向传输层的入口。

    Raises:
        TaskRetryError: 处理失败且不是跳过。`retryable=False` 表示硬失败，
            传输层不应再次投递。

    """
    try:
        result = await handle_translation_task(payload, context)
    except Exception as e:
        logger.error("任务处理器发生意外错误", exc_info=True)
        raise TaskRetryError(f"{e.__class__.__name__}: {e}", retryable=True) from e

    if not result.success and not result.skipped:
        raise TaskRetryError(
            result.error or "Translation failed", retryable=result.retryable
        )
    return result
