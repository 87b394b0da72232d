# melaka/providers/gemini.py
"""通过 Google Gemini `generateContent` REST 接口实现的翻译提供方。"""

from typing import Any, Optional

import httpx
import structlog

from melaka.core.exceptions import ConfigurationError, ProviderError
from melaka.core.types import TokenUsage
from melaka.providers.base import (
    BaseProviderConfig,
    BaseTranslationProvider,
    Completion,
    CompletionRequest,
)

logger = structlog.get_logger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiProviderConfig(BaseProviderConfig):
    """Gemini 提供方的配置模型。"""

    base_url: str = GEMINI_BASE_URL


class GeminiProvider(BaseTranslationProvider[GeminiProviderConfig]):
    """使用 httpx 调用 Gemini 的翻译提供方，要求模型直接返回 JSON。"""

    CONFIG_MODEL = GeminiProviderConfig
    PROVIDER_NAME = "gemini"
    VERSION = "1.0.0"

    # 这些状态码代表临时性故障，交由传输层重试才有意义
    RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

    def __init__(
        self,
        config: GeminiProviderConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(config)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def initialize(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout),
                transport=self._transport,
            )
        await super().initialize()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        await super().close()

    def _build_request_body(self, request: CompletionRequest) -> dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": request.user_prompt}]}],
            "systemInstruction": {"parts": [{"text": request.system_prompt}]},
            "generationConfig": {
                "temperature": request.options.temperature,
                "responseMimeType": "application/json",
            },
        }

    @staticmethod
    def _extract_text(data: dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    @staticmethod
    def _extract_usage(data: dict[str, Any]) -> Optional[TokenUsage]:
        metadata = data.get("usageMetadata")
        if not metadata:
            return None
        return TokenUsage(
            prompt_tokens=metadata.get("promptTokenCount", 0),
            completion_tokens=metadata.get("candidatesTokenCount", 0),
            total_tokens=metadata.get("totalTokenCount", 0),
        )

    async def _complete(self, request: CompletionRequest) -> Completion:
        if not self.config.api_key:
            raise ConfigurationError("Gemini API key not configured")
        if self._client is None:
            await self.initialize()
        assert self._client is not None

        try:
            response = await self._client.post(
                f"/models/{self.model}:generateContent",
                json=self._build_request_body(request),
                headers={"x-goog-api-key": self.config.api_key},
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"Gemini request failed: {e}") from e

        if response.is_error:
            logger.warning(
                "Gemini 返回错误状态码",
                status_code=response.status_code,
                model=self.model,
            )
            raise ProviderError(
                f"Gemini API error: {response.status_code} {response.text}",
                status_code=response.status_code,
                retryable=response.status_code in self.RETRYABLE_STATUS_CODES,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("Gemini returned a non-JSON response body") from e

        text = self._extract_text(data) if isinstance(data, dict) else ""
        if not text.strip():
            raise ProviderError("No response from Gemini")

        return Completion(text=text, usage=self._extract_usage(data))
