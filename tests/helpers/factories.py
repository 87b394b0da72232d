# tests/helpers/factories.py
"""
提供用于创建一致、可预测的测试数据的工厂函数。
测试用例只需覆盖它们关心的参数，其余字段都取合理的默认值。
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from melaka.config import CollectionConfig
from melaka.tasks.payload import TaskPayload

# ---- 定义一组全局共享的、可预测的常量 ----
TEST_LANGUAGES = ["ms-MY", "zh-CN"]
TEST_COLLECTION = "articles"
TEST_GROUP = "comments"
TEST_BATCH_ID = "batch_1700000000000_abc123"
FIXED_NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def create_config_data(
    *,
    languages: list[str] | None = None,
    collections: list[dict[str, Any]] | None = None,
    **overrides: Any,
) -> dict[str, Any]:
    """
    创建一个标准的配置字典，可直接交给 `MelakaConfig.model_validate`。

    默认包含一个限定字段的普通集合 `articles` 和一个集合组 `comments`，
    AI 提供方为离线的 debug 提供方。
    """
    data: dict[str, Any] = {
        "languages": languages if languages is not None else list(TEST_LANGUAGES),
        "ai": {"provider": "debug", "model": "debug", "temperature": 0.3},
        "glossary": {"Melaka": "Melaka", "sign in": "log masuk"},
        "collections": collections
        if collections is not None
        else [
            {
                "path": TEST_COLLECTION,
                "fields": ["title", "body", "tags"],
                "prompt": "Articles for a travel blog.",
                "glossary": {"sign in": "masuk"},
            },
            {"path": TEST_GROUP, "is_collection_group": True},
        ],
    }
    data.update(overrides)
    return data


def create_article(**overrides: Any) -> dict[str, Any]:
    """创建一篇同时包含可翻译字段与透传字段的文章。"""
    article: dict[str, Any] = {
        "title": "Hello World",
        "body": "Welcome to **Melaka**.",
        "tags": ["travel", "food"],
        "views": 42,
        "published": True,
        "author": {"path": "users/u1", "id": "u1"},
    }
    article.update(overrides)
    return article


def create_task_payload(
    *,
    collection_path: str = TEST_COLLECTION,
    document_id: str = "a1",
    target_language: str = "ms-MY",
    config: CollectionConfig | None = None,
    batch_id: str = TEST_BATCH_ID,
) -> dict[str, Any]:
    """创建一个 camelCase 形式的任务负载字典，与传输层收到的一致。"""
    return TaskPayload(
        collection_path=collection_path,
        document_id=document_id,
        target_language=target_language,
        config=config or CollectionConfig(path=collection_path),
        batch_id=batch_id,
    ).to_wire()
