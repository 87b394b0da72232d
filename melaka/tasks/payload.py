# melaka/tasks/payload.py
"""任务负载与批量投递结果的数据模型。"""

from typing import Any

from pydantic import Field

from melaka.config import CollectionConfig
from melaka.core.types import WireModel


class TaskPayload(WireModel):
    """
    一个 (文档, 语言) 翻译任务的负载。

    在投递时创建，投递后不可变。序列化形式为
    `{collectionPath, documentId, targetLanguage, config, batchId}`。
    """

    collection_path: str = Field(min_length=1)
    document_id: str = Field(min_length=1)
    target_language: str = Field(min_length=1)
    config: CollectionConfig
    batch_id: str = Field(min_length=1)

    @property
    def document_path(self) -> str:
        return f"{self.collection_path.strip('/')}/{self.document_id}"

    def to_wire(self) -> dict[str, Any]:
        """转换为可以交给任务传输层的 JSON 兼容字典。"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EnqueueResult(WireModel):
    batch_id: str
    tasks_enqueued: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)
