# melaka/processor.py
"""
翻译处理管线：针对单个 (文档, 语言) 组合串联字段分类、指纹比对、schema 合成、
提供方调用与记录写入。

处理管线本身不持有任何可变状态，可以被并发、重入地调用。
`process_translation` 保证永远不会向外抛出异常：任何意外错误都会在边界处被捕获，
转换为失败结果，并尽力把记录标记为 failed。
"""

import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from melaka.classifier import is_translatable_type, separate_content
from melaka.config import AIConfig, EffectiveConfig
from melaka.core.types import (
    ProcessResult,
    SeparatedContent,
    TranslationFailure,
    TranslationMetadata,
    TranslationOptions,
    TranslationStatus,
)
from melaka.persistence.records import TranslationRecordStore
from melaka.providers.base import BaseTranslationProvider
from melaka.providers.registry import create_provider
from melaka.schema import (
    create_translation_schema,
    map_to_output_fields,
    missing_required_fields,
)
from melaka.utils import get_content_hash

logger = structlog.get_logger(__name__)

ProviderFactory = Callable[[AIConfig], BaseTranslationProvider[Any]]

UNKNOWN_ERROR = "Unknown translation error"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


class TranslationProcessor:
    """处理管线。所有依赖通过构造函数注入。"""

    def __init__(
        self,
        record_store: TranslationRecordStore,
        provider_factory: ProviderFactory = create_provider,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._records = record_store
        self._provider_factory = provider_factory
        self._clock = clock

    @property
    def records(self) -> TranslationRecordStore:
        return self._records

    def classify(self, data: dict[str, Any], config: EffectiveConfig) -> SeparatedContent:
        """按集合配置拆分文档。映射中声明为不可翻译类型的字段会被强制透传。"""
        declared_passthrough = [
            m.source_field
            for m in config.field_mappings or []
            if not is_translatable_type(m.schema_type)
        ]
        return separate_content(
            data,
            allowed_fields=config.allowed_fields,
            forced_passthrough=declared_passthrough or None,
        )

    async def process_translation(
        self,
        document_id: str,
        document_path: str,
        data: dict[str, Any],
        language: str,
        config: EffectiveConfig,
        *,
        force_update: Optional[bool] = None,
    ) -> ProcessResult:
        """
        处理单个 (文档, 语言) 组合。

        Args:
            document_id: 文档 ID，仅用于日志。
            document_path: 源文档的完整路径，翻译记录保存在其 `i18n` 子集合下。
            data: 源文档数据。
            language: 目标语言代码。
            config: 该集合的有效配置。
            force_update: 为 True 时即使记录已是最新也重新翻译；默认取配置值。

        Returns:
            处理结果，始终附带耗时。

        """
        started = time.perf_counter()
        force = config.force_update if force_update is None else force_update

        with structlog.contextvars.bound_contextvars(
            document_id=document_id, language=language
        ):
            try:
                result = await self._process(document_path, data, language, config, force)
            except Exception as e:
                error = str(e) or e.__class__.__name__
                logger.error("翻译处理发生意外错误", error=error, exc_info=True)
                await self._mark_failed_safely(document_path, language, error)
                result = ProcessResult(success=False, skipped=False, error=error)

        return result.model_copy(update={"duration_ms": _elapsed_ms(started)})

    async def _process(
        self,
        document_path: str,
        data: dict[str, Any],
        language: str,
        config: EffectiveConfig,
        force: bool,
    ) -> ProcessResult:
        content = self.classify(data, config)
        if not content.translatable:
            logger.debug("文档没有可翻译字段，跳过")
            return ProcessResult(success=True, skipped=True)

        missing = missing_required_fields(content, config.field_mappings)
        if missing:
            error = f"Required field missing: {', '.join(missing)}"
            logger.warning("文档缺少必需字段", missing=missing)
            return await self._fail(document_path, language, error)

        payload = map_to_output_fields(content.translatable, config.field_mappings)
        collisions = sorted(set(payload) & set(content.passthrough))
        if collisions:
            error = f"Output field collides with passthrough field: {', '.join(collisions)}"
            logger.warning("输出字段与透传字段同名", collisions=collisions)
            return await self._fail(document_path, language, error, retryable=False)

        source_hash = get_content_hash(content.translatable)
        if not force and await self._records.is_current(
            document_path, language, source_hash
        ):
            logger.debug("翻译记录已是最新，跳过", source_hash=source_hash)
            return ProcessResult(success=True, skipped=True)

        schema = create_translation_schema(content, config.field_mappings)
        options = TranslationOptions(
            target_language=language,
            prompt_context=config.prompt,
            glossary=config.glossary,
            temperature=config.ai.temperature,
            field_notes={
                name: spec.description
                for name, spec in schema.fields.items()
                if spec.description
            },
        )

        provider = self._provider_factory(config.ai)
        async with provider:
            outcome = await provider.translate(payload, schema, options)

        if isinstance(outcome, TranslationFailure):
            logger.warning(
                "翻译失败",
                provider=provider.name,
                cause=outcome.cause.value,
                error=outcome.error,
            )
            return await self._fail(
                document_path, language, outcome.error, retryable=outcome.is_retryable
            )

        metadata = TranslationMetadata(
            source_hash=source_hash,
            translated_at=self._clock(),
            model=outcome.model,
            status=TranslationStatus.COMPLETED,
            reviewed=False,
        )
        await self._records.write(
            document_path, language, outcome.output, content.passthrough, metadata
        )
        logger.info(
            "翻译完成",
            model=outcome.model,
            fields=len(outcome.output),
            total_tokens=outcome.usage.total_tokens if outcome.usage else None,
        )
        return ProcessResult(success=True, skipped=False)

    async def _fail(
        self, document_path: str, language: str, error: str, *, retryable: bool = True
    ) -> ProcessResult:
        error = error or UNKNOWN_ERROR
        await self._records.mark_failed(document_path, language, error, self._clock())
        return ProcessResult(
            success=False, skipped=False, error=error, retryable=retryable
        )

    async def _mark_failed_safely(
        self, document_path: str, language: str, error: str
    ) -> None:
        try:
            await self._records.mark_failed(
                document_path, language, error, self._clock()
            )
        except Exception:
            logger.warning("标记翻译失败时再次出错，已放弃", exc_info=True)

    async def process_all_languages(
        self,
        document_id: str,
        document_path: str,
        data: dict[str, Any],
        languages: list[str],
        config: EffectiveConfig,
        *,
        force_update: Optional[bool] = None,
    ) -> dict[str, ProcessResult]:
        """依次处理每种语言。某种语言的失败不会中断或影响其它语言。"""
        results: dict[str, ProcessResult] = {}
        for language in languages:
            results[language] = await self.process_translation(
                document_id,
                document_path,
                data,
                language,
                config,
                force_update=force_update,
            )

        failed = [lang for lang, res in results.items() if not res.success]
        logger.info(
            "文档的全部语言处理完成",
            document_id=document_id,
            total=len(results),
            failed=failed,
        )
        return results
