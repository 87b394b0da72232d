# melaka/providers/__init__.py
"""翻译网关：提供方抽象、提示词构建与提供方注册表。"""

from .base import BaseProviderConfig, BaseTranslationProvider, Completion, CompletionRequest
from .registry import PROVIDER_REGISTRY, create_provider, discover_providers, get_provider_class

__all__ = [
    "BaseProviderConfig",
    "BaseTranslationProvider",
    "Completion",
    "CompletionRequest",
    "PROVIDER_REGISTRY",
    "create_provider",
    "discover_providers",
    "get_provider_class",
]
