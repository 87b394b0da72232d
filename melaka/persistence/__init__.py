# melaka/persistence/__init__.py
"""本模块作为持久化层的公共入口，导出文档存储实现与翻译记录存储。"""

from typing import Any

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from melaka.config import MelakaSettings
from melaka.core.exceptions import ConfigurationError
from melaka.core.interfaces import DocumentStore

from .memory import InMemoryDocumentStore
from .records import TranslationRecordStore, get_translation_path
from .sql import SQLAlchemyDocumentStore
from .utils import json_dumps


def create_document_store(settings: MelakaSettings) -> DocumentStore:
    """
    根据配置创建并返回一个具体的文档存储实例。

    `memory://` 返回进程内存储；`sqlite` 与 `postgresql` 返回 SQLAlchemy 存储，
    使用前需调用其 `connect()`。
    """
    db_url = settings.database_url

    if db_url.startswith("memory://"):
        return InMemoryDocumentStore()

    if db_url.startswith("sqlite"):
        engine_kwargs: dict[str, Any] = {"json_serializer": json_dumps}
        if ":memory:" in db_url:
            # 内存 SQLite 每个连接都是独立数据库，必须共享同一连接
            engine_kwargs["poolclass"] = StaticPool
        engine = create_async_engine(db_url, **engine_kwargs)
    elif db_url.startswith("postgresql"):
        try:
            engine = create_async_engine(
                db_url, json_serializer=json_dumps, pool_size=20, max_overflow=10
            )
        except ImportError as e:
            raise ConfigurationError(
                "要使用 PostgreSQL, 请安装 'asyncpg' 驱动: pip install asyncpg"
            ) from e
    else:
        raise ConfigurationError(f"不支持的数据库类型或驱动: '{db_url}'")

    sessionmaker = async_sessionmaker(engine, expire_on_commit=False)
    return SQLAlchemyDocumentStore(sessionmaker)


__all__ = [
    "create_document_store",
    "DocumentStore",
    "InMemoryDocumentStore",
    "SQLAlchemyDocumentStore",
    "TranslationRecordStore",
    "get_translation_path",
]
