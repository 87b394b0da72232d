# melaka/cli/utils.py
"""提供 CLI 命令使用的共享工具函数。"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from rich.console import Console
from rich.table import Table

from melaka.config import MelakaConfig, MelakaSettings, resolve_effective_config
from melaka.core.interfaces import DocumentStore
from melaka.persistence import SQLAlchemyDocumentStore, create_document_store

console = Console()


@asynccontextmanager
async def open_document_store(settings: MelakaSettings) -> AsyncIterator[DocumentStore]:
    """创建文档存储，在退出时安全关闭。"""
    store = create_document_store(settings)
    if isinstance(store, SQLAlchemyDocumentStore):
        await store.connect()
    try:
        yield store
    finally:
        if isinstance(store, SQLAlchemyDocumentStore):
            await store.close()


def build_config_table(config: MelakaConfig) -> Table:
    table = Table(title="集合配置", show_lines=False)
    table.add_column("集合", style="cyan")
    table.add_column("集合组")
    table.add_column("字段")
    table.add_column("提供方 / 模型")
    table.add_column("批大小", justify="right")
    table.add_column("并发", justify="right")
    table.add_column("强制更新")

    for collection in config.collections:
        effective = resolve_effective_config(config, collection)
        fields = effective.allowed_fields
        table.add_row(
            collection.path,
            "是" if collection.is_collection_group else "否",
            ", ".join(fields) if fields is not None else "(全部字符串字段)",
            f"{effective.ai.provider.value} / {effective.ai.model}",
            str(effective.batch_size),
            str(effective.max_concurrency),
            "是" if effective.force_update else "否",
        )
    return table
