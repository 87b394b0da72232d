# melaka/core/types.py
"""
本模块定义了 Melaka 系统的核心数据类型。

包括字段类型标签、翻译记录元数据、翻译提供方的结果联合类型以及处理管线的结果。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# 记录文档中保留给翻译元数据的字段名
META_FIELD = "_meta"

# 状态查询中表示“尚无翻译记录”的取值
MISSING_STATUS = "missing"


class WireModel(BaseModel):
    """对外序列化为 camelCase 的不可变模型基类，用于配置快照和任务负载。"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class SchemaType(str, Enum):
    """字段的语义类型标签。"""

    STRING = "string"
    STRING_ARRAY = "string[]"
    NUMBER = "number"
    NUMBER_ARRAY = "number[]"
    BOOLEAN = "boolean"
    OBJECT = "object"
    OBJECT_ARRAY = "object[]"
    OBJECT_NULL = "object|null"
    REFERENCE = "DocumentReference"
    REFERENCE_ARRAY = "DocumentReference[]"


# 只有这两种类型会被送入大模型翻译
TRANSLATABLE_TYPES: frozenset[SchemaType] = frozenset(
    {SchemaType.STRING, SchemaType.STRING_ARRAY}
)


class TranslationStatus(str, Enum):
    """表示一条翻译记录在其生命周期中的状态。"""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class TranslationMetadata(BaseModel):
    """存储在每条翻译记录 `_meta` 字段中的元数据。"""

    model_config = ConfigDict(use_enum_values=True)

    source_hash: str
    translated_at: Optional[datetime] = None
    model: str
    status: TranslationStatus
    reviewed: bool = False
    error: Optional[str] = None

    def to_record(self) -> dict[str, Any]:
        """转换为写入文档存储的字典，未设置的 `error` 不会出现在记录中。"""
        return self.model_dump(exclude_none=True)


@dataclass(frozen=True)
class SeparatedContent:
    """一次字段分类的结果：可翻译内容、透传内容以及每个字段检测到的类型。"""

    translatable: dict[str, Any] = field(default_factory=dict)
    passthrough: dict[str, Any] = field(default_factory=dict)
    detected_types: dict[str, SchemaType] = field(default_factory=dict)


class TokenUsage(BaseModel):
    """一次模型调用的 token 用量。"""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class FailureCause(str, Enum):
    """翻译失败的原因分类，用于诊断。"""

    PROVIDER = "provider"
    PARSE = "parse"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    NOT_IMPLEMENTED = "not_implemented"
    UNEXPECTED = "unexpected"


class TranslationSuccess(BaseModel):
    """代表翻译提供方成功返回、且已通过 schema 校验的结果。"""

    output: dict[str, Any]
    model: str
    usage: Optional[TokenUsage] = None
    duration_ms: Optional[float] = None


class TranslationFailure(BaseModel):
    """代表翻译提供方的失败结果，并指明失败原因以及是否可重试。"""

    error: str
    cause: FailureCause
    is_retryable: bool = True
    duration_ms: Optional[float] = None


TranslationOutcome = Union[TranslationSuccess, TranslationFailure]


class TranslationOptions(BaseModel):
    """一次翻译调用的选项。"""

    model_config = ConfigDict(frozen=True)

    target_language: str
    prompt_context: Optional[str] = None
    glossary: dict[str, str] = Field(default_factory=dict)
    temperature: float = 0.3
    field_notes: dict[str, str] = Field(default_factory=dict)


class ProcessResult(BaseModel):
    """处理管线对单个 (文档, 语言) 的处理结果。"""

    success: bool
    skipped: bool = False
    error: Optional[str] = None
    duration_ms: Optional[float] = None
    retryable: bool = True
