# melaka/providers/base.py
"""
本模块定义了所有翻译提供方必须继承的抽象基类（ABC）。

基类以模板方法实现了统一的翻译流程：构建提示词、调用模型、提取 JSON、
按动态 schema 校验。任何失败都会被转换为 `TranslationFailure`，
`translate()` 永远不会向调用方抛出异常。
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, Optional, TypeVar

import structlog
from pydantic import BaseModel, Field

from melaka.core.exceptions import (
    ConfigurationError,
    ParseError,
    ProviderError,
    ValidationError,
)
from melaka.core.types import (
    FailureCause,
    TokenUsage,
    TranslationFailure,
    TranslationOptions,
    TranslationOutcome,
    TranslationSuccess,
)
from melaka.providers.prompt import (
    build_system_prompt,
    build_translation_prompt,
    extract_json_from_response,
)
from melaka.schema import TranslationSchema

logger = structlog.get_logger(__name__)

_ConfigType = TypeVar("_ConfigType", bound="BaseProviderConfig")


class BaseProviderConfig(BaseModel):
    """所有提供方配置模型的基类。"""

    model: str = Field(min_length=1)
    api_key: Optional[str] = Field(default=None, repr=False)
    timeout: float = Field(default=60.0, gt=0, description="单次请求超时（秒）")


@dataclass(frozen=True)
class CompletionRequest:
    """一次模型调用所需的全部输入。"""

    content: dict[str, Any]
    options: TranslationOptions
    system_prompt: str
    user_prompt: str


@dataclass(frozen=True)
class Completion:
    """模型返回的原始文本及可选的用量信息。"""

    text: str
    usage: Optional[TokenUsage] = None


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


class BaseTranslationProvider(ABC, Generic[_ConfigType]):
    """翻译提供方的纯异步抽象基类。"""

    CONFIG_MODEL: type[_ConfigType]
    PROVIDER_NAME: ClassVar[str]
    VERSION: str = "1.0.0"

    def __init__(self, config: _ConfigType):
        self.config = config
        self.initialized: bool = False

    @property
    def name(self) -> str:
        return getattr(self, "PROVIDER_NAME", self.__class__.__name__.lower())

    @property
    def model(self) -> str:
        return self.config.model

    async def initialize(self) -> None:
        """异步初始化钩子，用于建立连接池等。"""
        self.initialized = True

    async def close(self) -> None:
        """异步关闭钩子，用于安全释放资源。"""
        self.initialized = False

    async def __aenter__(self) -> "BaseTranslationProvider[_ConfigType]":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @abstractmethod
    async def _complete(self, request: CompletionRequest) -> Completion:
        """
        [子类实现] 调用模型并返回原始回复。

        失败时应抛出 ProviderError 或 ConfigurationError。
        """
        ...

    def _failure(
        self,
        error: str,
        cause: FailureCause,
        started: float,
        is_retryable: bool = True,
    ) -> TranslationFailure:
        return TranslationFailure(
            error=error,
            cause=cause,
            is_retryable=is_retryable,
            duration_ms=_elapsed_ms(started),
        )

    async def translate(
        self,
        content: dict[str, Any],
        schema: TranslationSchema,
        options: TranslationOptions,
    ) -> TranslationOutcome:
        """[模板方法] 翻译一组字段并按 schema 校验输出。"""
        started = time.perf_counter()
        try:
            request = CompletionRequest(
                content=content,
                options=options,
                system_prompt=build_system_prompt(),
                user_prompt=build_translation_prompt(content, options),
            )
            completion = await self._complete(request)
            parsed = extract_json_from_response(completion.text)
            output = schema.validate(parsed)
        except ConfigurationError as e:
            return self._failure(str(e), FailureCause.CONFIGURATION, started, False)
        except ProviderError as e:
            return self._failure(str(e), FailureCause.PROVIDER, started, e.retryable)
        except ParseError as e:
            return self._failure(str(e), FailureCause.PARSE, started)
        except ValidationError as e:
            return self._failure(str(e), FailureCause.VALIDATION, started)
        except Exception as e:
            logger.error(
                "翻译提供方执行异常", provider=self.name, model=self.model, exc_info=True
            )
            return self._failure(
                f"{e.__class__.__name__}: {e}", FailureCause.UNEXPECTED, started
            )

        duration_ms = _elapsed_ms(started)
        logger.debug(
            "翻译提供方调用成功",
            provider=self.name,
            model=self.model,
            fields=len(output),
            duration_ms=duration_ms,
        )
        return TranslationSuccess(
            output=output,
            model=self.model,
            usage=completion.usage,
            duration_ms=duration_ms,
        )
