# melaka/core/interfaces.py
"""定义了核心逻辑所依赖的外部协作者的接口协议：文档存储与任务传输。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class DocumentSnapshot:
    """集合查询返回的最小投影，只携带文档定位信息而不含数据。"""

    id: str
    path: str
    parent_path: str


class DocumentStore(Protocol):
    """按路径寻址的文档存储的纯异步接口协议。"""

    async def get(self, path: str) -> dict[str, Any] | None:
        """读取一个文档的数据，不存在时返回 None。"""
        ...

    async def set(self, path: str, data: dict[str, Any]) -> None:
        """整体写入（替换）一个文档。"""
        ...

    async def update(self, path: str, updates: dict[str, Any]) -> None:
        """
        部分更新一个已存在的文档。

        键中的 `.` 表示嵌套路径，例如 `_meta.status`。
        文档不存在时应抛出 DocumentStoreError。
        """
        ...

    async def delete(self, path: str) -> None:
        """删除一个文档；文档不存在时不做任何事。"""
        ...

    async def delete_many(self, paths: list[str]) -> None:
        """原子地删除一组文档：要么全部删除，要么全部保留。"""
        ...

    async def list_documents(
        self, collection_path: str, *, group: bool = False
    ) -> list[DocumentSnapshot]:
        """
        列出集合中的文档。

        `group=True` 时执行集合组查询：匹配所有最后一段路径等于
        `collection_path` 的集合，无论其所在的父文档是什么。
        """
        ...


class TaskQueue(Protocol):
    """任务投递传输层的接口协议。并发上限与重试退避由传输层自身配置。"""

    async def enqueue(self, payload: dict[str, Any], *, delay_seconds: int = 0) -> None:
        """投递一个任务负载，在 `delay_seconds` 秒之后才可被分派。"""
        ...
