# melaka/classifier.py
"""
字段分类器：为文档中每个字段的值推断语义类型，并将文档拆分为可翻译内容与透传内容。

只有字符串和字符串数组会被翻译。文档引用、时间戳和地理坐标等结构会被识别出来，
并作为不透明对象原样透传。
"""

from collections.abc import Collection, Mapping
from datetime import date, datetime
from typing import Any, Optional

from melaka.core.types import (
    META_FIELD,
    TRANSLATABLE_TYPES,
    SchemaType,
    SeparatedContent,
)


def _has_field(value: Any, name: str) -> bool:
    if isinstance(value, Mapping):
        return name in value
    return hasattr(value, name)


def _get_field(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def is_document_reference(value: Any) -> bool:
    """判断一个值是否为文档引用：同时带有字符串 `path` 与 `id`。"""
    if value is None or isinstance(value, (str, bytes)):
        return False
    return isinstance(_get_field(value, "path"), str) and _has_field(value, "id")


def is_timestamp(value: Any) -> bool:
    if isinstance(value, (datetime, date)):
        return True
    return (
        isinstance(value, Mapping)
        and "_seconds" in value
        and "_nanoseconds" in value
    )


def is_geo_point(value: Any) -> bool:
    if value is None or isinstance(value, (str, bytes)):
        return False
    return _has_field(value, "latitude") and _has_field(value, "longitude")


def _is_number(value: Any) -> bool:
    # bool 是 int 的子类，必须先排除
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _detect_array_type(items: list[Any] | tuple[Any, ...]) -> SchemaType:
    """只检查首个元素；空数组视为字符串数组。"""
    if not items:
        return SchemaType.STRING_ARRAY
    first = items[0]
    if is_document_reference(first):
        return SchemaType.REFERENCE_ARRAY
    if isinstance(first, str):
        return SchemaType.STRING_ARRAY
    if _is_number(first):
        return SchemaType.NUMBER_ARRAY
    return SchemaType.OBJECT_ARRAY


def detect_field_type(value: Any) -> SchemaType:
    """
    推断一个字段值的语义类型。

    这是一个全函数：任何输入都会得到一个类型标签，无法识别的值一律归为 `object`。
    """
    if value is None:
        return SchemaType.OBJECT_NULL
    if isinstance(value, (list, tuple)):
        return _detect_array_type(value)
    if is_document_reference(value):
        return SchemaType.REFERENCE
    if is_timestamp(value) or is_geo_point(value):
        return SchemaType.OBJECT
    if isinstance(value, bool):
        return SchemaType.BOOLEAN
    if isinstance(value, str):
        return SchemaType.STRING
    if _is_number(value):
        return SchemaType.NUMBER
    return SchemaType.OBJECT


def is_translatable_type(schema_type: SchemaType) -> bool:
    return schema_type in TRANSLATABLE_TYPES


def separate_content(
    document: Mapping[str, Any],
    allowed_fields: Optional[Collection[str]] = None,
    forced_passthrough: Optional[Collection[str]] = None,
) -> SeparatedContent:
    """
    将文档拆分为可翻译内容与透传内容。

    Args:
        document: 源文档数据。
        allowed_fields: 允许翻译的字段集合。提供时，不在集合中的字段无论类型
            一律透传，且不会记录检测到的类型。
        forced_passthrough: 无论检测到什么类型都必须透传的字段，
            例如字段映射中被声明为不可翻译类型的字段。

    Returns:
        拆分结果。保留的 `_meta` 字段不会出现在任何一侧。

    """
    translatable: dict[str, Any] = {}
    passthrough: dict[str, Any] = {}
    detected_types: dict[str, SchemaType] = {}

    for key, value in document.items():
        if key == META_FIELD:
            continue
        if allowed_fields is not None and key not in allowed_fields:
            passthrough[key] = value
            continue

        schema_type = detect_field_type(value)
        detected_types[key] = schema_type
        if is_translatable_type(schema_type) and (
            forced_passthrough is None or key not in forced_passthrough
        ):
            translatable[key] = value
        else:
            passthrough[key] = value

    return SeparatedContent(
        translatable=translatable,
        passthrough=passthrough,
        detected_types=detected_types,
    )
