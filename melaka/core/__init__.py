# melaka/core/__init__.py
"""
本核心包定义了 Melaka 系统中最基础、最稳定的构建块。

这里包含了系统的核心数据类型、协作者接口协议和自定义异常。
所有其他模块都依赖于此核心包，但本包不依赖于项目中的任何其他模块。
"""

from .exceptions import (
    ConfigurationError,
    DocumentStoreError,
    MelakaError,
    ParseError,
    ProviderError,
    ProviderNotFoundError,
    TaskRetryError,
    ValidationError,
)
from .interfaces import DocumentSnapshot, DocumentStore, TaskQueue
from .types import (
    META_FIELD,
    MISSING_STATUS,
    TRANSLATABLE_TYPES,
    FailureCause,
    ProcessResult,
    SchemaType,
    SeparatedContent,
    TokenUsage,
    TranslationFailure,
    TranslationMetadata,
    TranslationOptions,
    TranslationOutcome,
    TranslationStatus,
    TranslationSuccess,
    WireModel,
)

__all__ = [
    # from exceptions.py
    "MelakaError",
    "ConfigurationError",
    "ValidationError",
    "ProviderError",
    "ParseError",
    "DocumentStoreError",
    "ProviderNotFoundError",
    "TaskRetryError",
    # from interfaces.py
    "DocumentSnapshot",
    "DocumentStore",
    "TaskQueue",
    # from types.py
    "META_FIELD",
    "MISSING_STATUS",
    "TRANSLATABLE_TYPES",
    "FailureCause",
    "ProcessResult",
    "SchemaType",
    "SeparatedContent",
    "TokenUsage",
    "TranslationFailure",
    "TranslationMetadata",
    "TranslationOptions",
    "TranslationOutcome",
    "TranslationStatus",
    "TranslationSuccess",
    "WireModel",
]
