# melaka/providers/stubs.py
"""
尚未实现的翻译提供方。

它们已经注册在提供方注册表中，可以被配置选中，但每次调用都会确定性地
返回一个 "not implemented" 失败结果，而不是抛出异常。
"""

from typing import Any

from melaka.core.types import (
    FailureCause,
    TranslationFailure,
    TranslationOptions,
    TranslationOutcome,
)
from melaka.providers.base import (
    BaseProviderConfig,
    BaseTranslationProvider,
    Completion,
    CompletionRequest,
)
from melaka.schema import TranslationSchema


class _NotImplementedProvider(BaseTranslationProvider[BaseProviderConfig]):
    CONFIG_MODEL = BaseProviderConfig
    DISPLAY_NAME = "Unknown"

    async def _complete(self, request: CompletionRequest) -> Completion:
        """不会被调用：`translate` 直接返回失败结果，不发起请求。"""
        ...

    @property
    def _message(self) -> str:
        return f"{self.DISPLAY_NAME} provider not yet implemented"

    async def translate(
        self,
        content: dict[str, Any],
        schema: TranslationSchema,
        options: TranslationOptions,
    ) -> TranslationOutcome:
        return TranslationFailure(
            error=self._message,
            cause=FailureCause.NOT_IMPLEMENTED,
            is_retryable=False,
            duration_ms=0.0,
        )


class OpenAIProvider(_NotImplementedProvider):
    PROVIDER_NAME = "openai"
    DISPLAY_NAME = "OpenAI"


class ClaudeProvider(_NotImplementedProvider):
    PROVIDER_NAME = "claude"
    DISPLAY_NAME = "Claude"
