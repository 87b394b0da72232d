# melaka/persistence/records.py
"""
翻译记录存储：按 (父文档, 语言) 读写每条翻译记录及其状态元数据。

记录保存在父文档的 `i18n` 子集合中，路径为 `{document_path}/i18n/{locale}`，
其结构为 `{...译文字段, ...透传字段, _meta: {...}}`。
"""

from datetime import datetime
from typing import Any, Optional

import pydantic
import structlog

from melaka.core.interfaces import DocumentStore
from melaka.core.types import (
    META_FIELD,
    MISSING_STATUS,
    TranslationMetadata,
    TranslationStatus,
)

logger = structlog.get_logger(__name__)

I18N_COLLECTION = "i18n"


def get_translation_path(document_path: str, locale: str) -> str:
    return f"{document_path.strip('/')}/{I18N_COLLECTION}/{locale}"


class TranslationRecordStore:
    """基于任意 `DocumentStore` 的翻译记录读写。本身不持有任何可变状态。"""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    @property
    def store(self) -> DocumentStore:
        return self._store

    async def read(self, document_path: str, locale: str) -> Optional[dict[str, Any]]:
        return await self._store.get(get_translation_path(document_path, locale))

    async def read_metadata(
        self, document_path: str, locale: str
    ) -> Optional[TranslationMetadata]:
        """读取记录的元数据。记录不存在或元数据格式损坏时返回 None。"""
        record = await self.read(document_path, locale)
        if record is None:
            return None
        raw = record.get(META_FIELD)
        if not isinstance(raw, dict):
            return None
        try:
            return TranslationMetadata.model_validate(raw)
        except pydantic.ValidationError:
            logger.warning(
                "翻译记录的元数据格式无效，按不存在处理",
                document_path=document_path,
                locale=locale,
            )
            return None

    async def write(
        self,
        document_path: str,
        locale: str,
        translated: dict[str, Any],
        passthrough: dict[str, Any],
        metadata: TranslationMetadata,
    ) -> None:
        """整体替换记录。旧 schema 遗留的字段不会保留下来。"""
        record = {**translated, **passthrough, META_FIELD: metadata.to_record()}
        await self._store.set(get_translation_path(document_path, locale), record)

    async def update_metadata(
        self, document_path: str, locale: str, updates: dict[str, Any]
    ) -> None:
        """只更新元数据中的指定键，已持久化的译文保持不变。"""
        dotted = {f"{META_FIELD}.{key}": value for key, value in updates.items()}
        await self._store.update(get_translation_path(document_path, locale), dotted)

    async def mark_failed(
        self,
        document_path: str,
        locale: str,
        error: str,
        timestamp: datetime,
    ) -> None:
        """
        将记录标记为失败。

        记录已存在时只更新元数据；否则创建一条只含元数据的最小记录。
        """
        path = get_translation_path(document_path, locale)
        if await self._store.get(path) is not None:
            await self.update_metadata(
                document_path,
                locale,
                {
                    "status": TranslationStatus.FAILED.value,
                    "error": error,
                    "translated_at": timestamp,
                },
            )
            return

        metadata = TranslationMetadata(
            source_hash="",
            translated_at=timestamp,
            model="",
            status=TranslationStatus.FAILED,
            reviewed=False,
            error=error,
        )
        await self._store.set(path, {META_FIELD: metadata.to_record()})

    async def delete(self, document_path: str, locale: str) -> None:
        await self._store.delete(get_translation_path(document_path, locale))

    async def delete_all(self, document_path: str) -> int:
        """原子地删除一个文档的所有语言记录，返回删除的数量。"""
        locales = await self.list_locales(document_path)
        if not locales:
            return 0
        await self._store.delete_many(
            [get_translation_path(document_path, locale) for locale in locales]
        )
        logger.info(
            "已删除文档的全部翻译记录", document_path=document_path, count=len(locales)
        )
        return len(locales)

    async def list_locales(self, document_path: str) -> list[str]:
        snapshots = await self._store.list_documents(
            f"{document_path.strip('/')}/{I18N_COLLECTION}"
        )
        return [snapshot.id for snapshot in snapshots]

    async def is_current(
        self, document_path: str, locale: str, expected_hash: str
    ) -> bool:
        """当且仅当记录存在、状态为 completed 且源指纹一致时返回 True。"""
        metadata = await self.read_metadata(document_path, locale)
        if metadata is None:
            return False
        return (
            metadata.status == TranslationStatus.COMPLETED.value
            and metadata.source_hash == expected_hash
        )

    async def get_status(
        self, document_path: str, locales: list[str]
    ) -> dict[str, str]:
        """返回每个语言的记录状态；没有记录的语言为 `missing`。"""
        statuses: dict[str, str] = {}
        for locale in locales:
            metadata = await self.read_metadata(document_path, locale)
            statuses[locale] = str(metadata.status) if metadata else MISSING_STATUS
        return statuses
