# melaka/persistence/sql.py
"""
`DocumentStore` 协议的 SQLAlchemy 异步实现。

所有文档保存在单张 `melaka_documents` 表中：以完整路径为主键，
数据以 JSON 列保存。默认使用 `sqlite+aiosqlite`，也可以指向 PostgreSQL。
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import JSON, DateTime, String, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

from melaka.core.exceptions import DocumentStoreError
from melaka.core.interfaces import DocumentSnapshot
from melaka.persistence.utils import (
    apply_dotted_updates,
    normalize_path,
    split_document_path,
)

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    pass


class MelakaDocument(Base):
    """一个按路径寻址的文档。"""

    __tablename__ = "melaka_documents"

    path: Mapped[str] = mapped_column(String(1024), primary_key=True)
    collection_path: Mapped[str] = mapped_column(String(1024), index=True)
    collection_id: Mapped[str] = mapped_column(String(255), index=True)
    doc_id: Mapped[str] = mapped_column(String(255), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class SQLAlchemyDocumentStore:
    """基于 SQLAlchemy ORM Session 的文档存储。"""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    @property
    def _engine(self) -> AsyncEngine | None:
        return self._sessionmaker.kw.get("bind")

    async def connect(self) -> None:
        """确保数据表存在。"""
        engine = self._engine
        if engine is None:
            raise DocumentStoreError("sessionmaker 未绑定数据库引擎")
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"初始化文档表失败: {e}") from e
        logger.info("文档存储已连接", url=engine.url.render_as_string(hide_password=True))

    async def close(self) -> None:
        """安全地关闭 SQLAlchemy 引擎及其底层连接池。"""
        engine = self._engine
        if engine is not None:
            await engine.dispose()
        logger.info("文档存储引擎已关闭。")

    async def get(self, path: str) -> dict[str, Any] | None:
        try:
            async with self._sessionmaker() as session:
                row = await session.get(MelakaDocument, normalize_path(path))
                return dict(row.data) if row is not None else None
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"读取文档失败: {path}: {e}") from e

    async def set(self, path: str, data: dict[str, Any]) -> None:
        key = normalize_path(path)
        collection_path, doc_id = split_document_path(key)
        try:
            async with self._sessionmaker.begin() as session:
                row = await session.get(MelakaDocument, key)
                if row is None:
                    session.add(
                        MelakaDocument(
                            path=key,
                            collection_path=collection_path,
                            collection_id=collection_path.rsplit("/", 1)[-1],
                            doc_id=doc_id,
                            data=dict(data),
                        )
                    )
                else:
                    row.data = dict(data)
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"写入文档失败: {key}: {e}") from e

    async def update(self, path: str, updates: dict[str, Any]) -> None:
        key = normalize_path(path)
        try:
            async with self._sessionmaker.begin() as session:
                row = await session.get(MelakaDocument, key)
                if row is None:
                    raise DocumentStoreError(f"无法更新不存在的文档: {key}")
                # 重新赋值整个对象，JSON 列的原地修改不会被 ORM 察觉
                row.data = apply_dotted_updates(row.data, updates)
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"更新文档失败: {key}: {e}") from e

    async def delete(self, path: str) -> None:
        await self.delete_many([path])

    async def delete_many(self, paths: list[str]) -> None:
        keys = [normalize_path(path) for path in paths]
        if not keys:
            return
        try:
            async with self._sessionmaker.begin() as session:
                await session.execute(
                    delete(MelakaDocument).where(MelakaDocument.path.in_(keys))
                )
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"批量删除文档失败: {e}") from e

    async def list_documents(
        self, collection_path: str, *, group: bool = False
    ) -> list[DocumentSnapshot]:
        wanted = normalize_path(collection_path)
        column = MelakaDocument.collection_id if group else MelakaDocument.collection_path
        stmt = (
            select(
                MelakaDocument.doc_id,
                MelakaDocument.path,
                MelakaDocument.collection_path,
            )
            .where(column == wanted)
            .order_by(MelakaDocument.path)
        )
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(stmt)
                return [
                    DocumentSnapshot(id=doc_id, path=path, parent_path=parent)
                    for doc_id, path, parent in result.all()
                ]
        except SQLAlchemyError as e:
            raise DocumentStoreError(f"查询集合失败: {wanted}: {e}") from e
