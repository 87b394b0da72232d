# melaka/providers/registry.py
"""本模块负责动态发现 `melaka.providers` 包下的翻译提供方，并按标识创建实例。"""

import importlib
import inspect
import pkgutil
from typing import Any

import structlog

from melaka.config import AIConfig
from melaka.core.exceptions import ProviderNotFoundError
from melaka.providers.base import BaseTranslationProvider

log = structlog.get_logger(__name__)
PROVIDER_REGISTRY: dict[str, type[BaseTranslationProvider[Any]]] = {}

_NON_PROVIDER_MODULES = {"base", "prompt", "registry"}


def discover_providers() -> None:
    """
    动态发现 `melaka.providers` 包下的所有提供方并注册。

    此函数是幂等的，只在首次调用时执行发现操作。
    """
    if PROVIDER_REGISTRY:
        return

    import melaka.providers

    skipped: list[dict[str, str]] = []
    for module_info in pkgutil.iter_modules(melaka.providers.__path__):
        module_name = module_info.name
        if module_name in _NON_PROVIDER_MODULES or module_name.startswith("_"):
            continue

        try:
            module = importlib.import_module(f"melaka.providers.{module_name}")
        except ImportError as e:
            skipped.append({"module": module_name, "missing_dependency": str(e.name)})
            continue

        for _, attr in inspect.getmembers(module, inspect.isclass):
            provider_name = getattr(attr, "PROVIDER_NAME", None)
            if (
                issubclass(attr, BaseTranslationProvider)
                and provider_name
                and not inspect.isabstract(attr)
            ):
                PROVIDER_REGISTRY[provider_name] = attr

    log_payload: dict[str, Any] = {"registered": sorted(PROVIDER_REGISTRY)}
    if skipped:
        log_payload["skipped"] = skipped
    log.info("翻译提供方发现完成。", **log_payload)


def get_provider_class(name: str) -> type[BaseTranslationProvider[Any]]:
    discover_providers()
    try:
        return PROVIDER_REGISTRY[name]
    except KeyError:
        raise ProviderNotFoundError(
            f"未知的翻译提供方 '{name}'。可用: {', '.join(sorted(PROVIDER_REGISTRY))}"
        ) from None


def create_provider(
    ai_config: AIConfig, **provider_kwargs: Any
) -> BaseTranslationProvider[Any]:
    """根据有效的 AI 配置创建一个提供方实例。额外的关键字参数传给提供方构造函数。"""
    provider_cls = get_provider_class(ai_config.provider.value)
    config = provider_cls.CONFIG_MODEL(model=ai_config.model, api_key=ai_config.api_key)
    return provider_cls(config, **provider_kwargs)
