# melaka/tasks/__init__.py
"""任务编排：按语言扇出翻译任务、处理被分派的任务以及进程内传输层。"""

from .enqueue import (
    DEFAULT_STAGGER_DELAY_MS,
    compute_delay_seconds,
    enqueue_collection_translation,
    enqueue_document_translation,
)
from .handler import TaskHandlerContext, execute_translation_task, handle_translation_task
from .local import DeadLetter, LocalTaskQueue
from .payload import EnqueueResult, TaskPayload
from .triggers import on_document_written

__all__ = [
    "DEFAULT_STAGGER_DELAY_MS",
    "DeadLetter",
    "EnqueueResult",
    "LocalTaskQueue",
    "TaskHandlerContext",
    "TaskPayload",
    "compute_delay_seconds",
    "enqueue_collection_translation",
    "enqueue_document_translation",
    "execute_translation_task",
    "handle_translation_task",
    "on_document_written",
]
