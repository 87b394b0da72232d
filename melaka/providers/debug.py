# melaka/providers/debug.py
"""提供一个用于开发和测试的调试翻译提供方，不发起任何网络请求。"""

import json
from typing import Any, Literal

from pydantic import Field

from melaka.core.exceptions import ProviderError
from melaka.providers.base import (
    BaseProviderConfig,
    BaseTranslationProvider,
    Completion,
    CompletionRequest,
)


class DebugProviderConfig(BaseProviderConfig):
    """Debug 提供方的配置模型。"""

    model: str = "debug"
    mode: Literal["SUCCESS", "FAIL", "FENCED", "INVALID", "GARBAGE"] = Field(
        default="SUCCESS"
    )
    fail_is_retryable: bool = True
    translation_map: dict[str, str] = Field(default_factory=dict)


class DebugProvider(BaseTranslationProvider[DebugProviderConfig]):
    """
    一个确定性的调试提供方。

    每个字符串会被翻译为 `[<语言>] <原文>`，除非 `translation_map` 中给出了译文。
    回复文本同样会经过 JSON 提取和 schema 校验。
    """

    CONFIG_MODEL = DebugProviderConfig
    PROVIDER_NAME = "debug"
    VERSION = "1.0.0"

    def _translate_text(self, text: str, target_language: str) -> str:
        return self.config.translation_map.get(text, f"[{target_language}] {text}")

    def _translate_value(self, value: Any, target_language: str) -> Any:
        if isinstance(value, str):
            return self._translate_text(value, target_language)
        if isinstance(value, (list, tuple)):
            return [self._translate_value(item, target_language) for item in value]
        return value

    async def _complete(self, request: CompletionRequest) -> Completion:
        mode = self.config.mode
        if mode == "FAIL":
            raise ProviderError(
                "DebugProvider is in FAIL mode.",
                retryable=self.config.fail_is_retryable,
            )
        if mode == "GARBAGE":
            return Completion(text="I am unable to translate this content.")

        target = request.options.target_language
        translated = {
            key: self._translate_value(value, target)
            for key, value in request.content.items()
        }
        if mode == "INVALID":
            translated["unexpected_field"] = "?"

        body = json.dumps(translated, ensure_ascii=False)
        if mode == "FENCED":
            return Completion(text=f"Here is the translation:\n```json\n{body}\n```")
        return Completion(text=body)
