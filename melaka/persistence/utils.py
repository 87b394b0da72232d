# melaka/persistence/utils.py
"""提供文档存储实现共享的通用工具函数。"""

import copy
import json
from datetime import date, datetime
from typing import Any


def normalize_path(path: str) -> str:
    """去掉首尾的 `/`，使 `/posts/p1/` 与 `posts/p1` 指向同一文档。"""
    normalized = path.strip("/")
    if not normalized:
        raise ValueError("文档路径不能为空")
    return normalized


def split_document_path(path: str) -> tuple[str, str]:
    """将文档路径拆分为 (所在集合路径, 文档 ID)。"""
    parent, _, doc_id = normalize_path(path).rpartition("/")
    if not parent:
        raise ValueError(f"'{path}' 不是一个文档路径：缺少所在集合")
    return parent, doc_id


def apply_dotted_updates(
    data: dict[str, Any], updates: dict[str, Any]
) -> dict[str, Any]:
    """
    返回应用了部分更新后的新字典，原字典保持不变。

    键中的 `.` 表示嵌套路径：`{"_meta.status": "failed"}` 只会修改
    `_meta` 中的 `status`，不影响其它字段。
    """
    result = copy.deepcopy(data)
    for dotted_key, value in updates.items():
        *parents, leaf = dotted_key.split(".")
        target = result
        for part in parents:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        target[leaf] = copy.deepcopy(value)
    return result


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def json_dumps(value: Any) -> str:
    """序列化为 JSON，时间戳以 ISO 8601 字符串保存。"""
    return json.dumps(value, ensure_ascii=False, default=_json_default)
