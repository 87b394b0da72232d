# melaka/__init__.py
"""Melaka: 基于大模型的文档翻译同步工具。

源文档写入后按目标语言扇出翻译任务，每个任务把可翻译字段交给 AI 提供方，
校验其结构化输出，并把结果连同来源哈希写入文档下的 `i18n/{locale}` 记录。
"""

__version__ = "0.1.0"

from .config import MelakaConfig, MelakaSettings, load_config
from .core.types import ProcessResult, TranslationStatus
from .persistence import TranslationRecordStore, create_document_store
from .processor import TranslationProcessor

__all__ = [
    "__version__",
    "MelakaConfig",
    "MelakaSettings",
    "ProcessResult",
    "TranslationProcessor",
    "TranslationRecordStore",
    "TranslationStatus",
    "create_document_store",
    "load_config",
]
