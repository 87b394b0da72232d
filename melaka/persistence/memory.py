# melaka/persistence/memory.py
"""`DocumentStore` 协议的内存实现，适用于测试与本地开发。"""

import copy
from typing import Any, Optional

import structlog

from melaka.core.exceptions import DocumentStoreError
from melaka.core.interfaces import DocumentSnapshot
from melaka.persistence.utils import apply_dotted_updates, normalize_path

logger = structlog.get_logger(__name__)


class InMemoryDocumentStore:
    """以路径为键的字典存储。读写都经过深拷贝，调用方无法意外修改存储内容。"""

    def __init__(self, documents: Optional[dict[str, dict[str, Any]]] = None) -> None:
        self._documents: dict[str, dict[str, Any]] = {
            normalize_path(path): copy.deepcopy(data)
            for path, data in (documents or {}).items()
        }

    def __len__(self) -> int:
        return len(self._documents)

    def paths(self) -> list[str]:
        return sorted(self._documents)

    async def get(self, path: str) -> dict[str, Any] | None:
        data = self._documents.get(normalize_path(path))
        return copy.deepcopy(data) if data is not None else None

    async def set(self, path: str, data: dict[str, Any]) -> None:
        self._documents[normalize_path(path)] = copy.deepcopy(data)

    async def update(self, path: str, updates: dict[str, Any]) -> None:
        key = normalize_path(path)
        existing = self._documents.get(key)
        if existing is None:
            raise DocumentStoreError(f"无法更新不存在的文档: {key}")
        self._documents[key] = apply_dotted_updates(existing, updates)

    async def delete(self, path: str) -> None:
        self._documents.pop(normalize_path(path), None)

    async def delete_many(self, paths: list[str]) -> None:
        keys = [normalize_path(path) for path in paths]
        for key in keys:
            self._documents.pop(key, None)
        logger.debug("批量删除文档完成", count=len(keys))

    async def list_documents(
        self, collection_path: str, *, group: bool = False
    ) -> list[DocumentSnapshot]:
        wanted = normalize_path(collection_path)
        snapshots: list[DocumentSnapshot] = []
        for path in sorted(self._documents):
            parent, _, doc_id = path.rpartition("/")
            if not parent:
                continue
            matched = (
                parent.rsplit("/", 1)[-1] == wanted if group else parent == wanted
            )
            if matched:
                snapshots.append(DocumentSnapshot(id=doc_id, path=path, parent_path=parent))
        return snapshots
