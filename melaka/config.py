# melaka/config.py
"""
Melaka 的配置模型、运行时设置与分层配置解析。

配置分为两部分：
- `MelakaConfig`：描述需要翻译的集合、目标语言和 AI 设置，从 YAML/JSON 文件加载。
- `MelakaSettings`：进程级运行时设置（数据库、日志、队列、重试），从环境变量和 `.env` 读取。

集合级别的有效配置由纯函数在共享默认值之上叠加集合覆盖项得出，不存在任何全局可变状态。
"""

import enum
import json
import os
from pathlib import Path
from typing import Any, Literal, Optional

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from melaka.core.exceptions import ConfigurationError
from melaka.core.types import SchemaType, WireModel
from melaka.utils import validate_lang_codes

DEFAULT_API_KEY_SECRET = "GEMINI_API_KEY"


class ProviderName(str, enum.Enum):
    GEMINI = "gemini"
    OPENAI = "openai"
    CLAUDE = "claude"
    DEBUG = "debug"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: Literal["json", "console"] = "console"


class RetryPolicyConfig(BaseModel):
    """任务传输层的重试策略：有上限的尝试次数加指数退避（秒）。"""

    max_attempts: int = Field(default=3, gt=0)
    min_backoff: float = Field(default=60.0, ge=0)
    max_backoff: float = Field(default=300.0, ge=0)

    @model_validator(mode="after")
    def check_backoff_consistency(self) -> "RetryPolicyConfig":
        if self.max_backoff < self.min_backoff:
            raise ValueError("max_backoff 必须大于或等于 min_backoff")
        return self


class QueueConfig(BaseModel):
    """系统对外暴露的两项并发控制：最大并发分派数与任务错峰间隔。"""

    max_concurrent_dispatches: int = Field(default=10, gt=0)
    stagger_delay_ms: int = Field(default=100, ge=0)


class FieldMapping(WireModel):
    """显式声明的字段映射，可以重命名输出字段并指定类型与是否必需。"""

    source_field: str = Field(min_length=1)
    target_field: Optional[str] = None
    schema_type: SchemaType = SchemaType.STRING
    required: bool = True
    description: Optional[str] = None

    @property
    def output_field(self) -> str:
        return self.target_field or self.source_field


def _allowed_fields(
    fields: Optional[list[str]], mappings: Optional[list[FieldMapping]]
) -> Optional[list[str]]:
    """允许翻译的源字段；既没有 `fields` 也没有映射时返回 None，表示不限制。"""
    if fields is None and mappings is None:
        return None
    allowed = list(fields or [])
    for mapping in mappings or []:
        if mapping.source_field not in allowed:
            allowed.append(mapping.source_field)
    return allowed


class AIConfig(WireModel):
    provider: ProviderName
    model: str = Field(min_length=1)
    temperature: float = Field(default=0.3, ge=0, le=1)
    api_key_secret: Optional[str] = None
    api_key: Optional[str] = Field(default=None, repr=False)


class AIOverride(WireModel):
    """集合级别的 AI 覆盖项，未设置的字段沿用全局配置。"""

    provider: Optional[ProviderName] = None
    model: Optional[str] = Field(default=None, min_length=1)
    temperature: Optional[float] = Field(default=None, ge=0, le=1)
    api_key_secret: Optional[str] = None
    api_key: Optional[str] = Field(default=None, repr=False)


class DefaultsConfig(WireModel):
    batch_size: int = Field(default=20, ge=1, le=500)
    max_concurrency: int = Field(default=10, ge=1, le=100)
    force_update: bool = False


class CollectionConfig(WireModel):
    path: str = Field(min_length=1)
    is_collection_group: bool = False
    fields: Optional[list[str]] = None
    field_mappings: Optional[list[FieldMapping]] = None
    prompt: Optional[str] = None
    glossary: dict[str, str] = Field(default_factory=dict)
    ai: Optional[AIOverride] = None
    batch_size: Optional[int] = Field(default=None, ge=1, le=500)
    max_concurrency: Optional[int] = Field(default=None, ge=1, le=100)
    force_update: Optional[bool] = None

    @property
    def allowed_fields(self) -> Optional[list[str]]:
        return _allowed_fields(self.fields, self.field_mappings)

    @model_validator(mode="after")
    def check_mapping_targets(self) -> "CollectionConfig":
        """重命名后的输出字段不能与其他源字段或其他输出字段同名。"""
        mappings = self.field_mappings or []
        outputs = [m.output_field for m in mappings]
        duplicates = sorted({o for o in outputs if outputs.count(o) > 1})
        if duplicates:
            raise ValueError(f"字段映射的输出字段重复: {', '.join(duplicates)}")

        sources = set(self.fields or []) | {m.source_field for m in mappings}
        collisions = sorted(
            m.output_field
            for m in mappings
            if m.output_field != m.source_field and m.output_field in sources
        )
        if collisions:
            raise ValueError(f"字段映射的输出字段与源字段同名: {', '.join(collisions)}")
        return self


class MelakaConfig(WireModel):
    languages: list[str] = Field(min_length=1)
    ai: AIConfig
    region: str = "us-central1"
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    glossary: dict[str, str] = Field(default_factory=dict)
    collections: list[CollectionConfig] = Field(min_length=1)

    @field_validator("languages")
    @classmethod
    def check_languages(cls, v: list[str]) -> list[str]:
        validate_lang_codes(v)
        if len(set(v)) != len(v):
            raise ValueError("languages 中存在重复的语言代码")
        return v

    @model_validator(mode="after")
    def check_unique_collections(self) -> "MelakaConfig":
        paths = [c.path for c in self.collections]
        duplicates = sorted({p for p in paths if paths.count(p) > 1})
        if duplicates:
            raise ValueError(f"集合路径重复: {', '.join(duplicates)}")
        return self


class EffectiveConfig(BaseModel):
    """某个集合完全解析后的设置。按需计算，不做存储。"""

    model_config = ConfigDict(frozen=True)

    collection_path: str
    is_collection_group: bool = False
    ai: AIConfig
    batch_size: int
    max_concurrency: int
    force_update: bool
    glossary: dict[str, str] = Field(default_factory=dict)
    fields: Optional[list[str]] = None
    field_mappings: Optional[list[FieldMapping]] = None
    prompt: Optional[str] = None

    @property
    def allowed_fields(self) -> Optional[list[str]]:
        return _allowed_fields(self.fields, self.field_mappings)


class MelakaSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MELAKA_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    config_path: Path = Path("melaka.yaml")
    database_url: str = "sqlite+aiosqlite:///melaka.db"
    gemini_api_key: Optional[SecretStr] = None

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    retry_policy: RetryPolicyConfig = Field(default_factory=RetryPolicyConfig)


def load_config(path: Path | str) -> MelakaConfig:
    """
    从 YAML 或 JSON 文件加载并校验 Melaka 配置。

    Raises:
        ConfigurationError: 文件不存在、无法解析或未通过校验。

    """
    config_path = Path(path)
    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"无法读取配置文件 '{config_path}': {e}") from e

    try:
        if config_path.suffix.lower() == ".json":
            raw: Any = json.loads(raw_text)
        else:
            raw = yaml.safe_load(raw_text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"配置文件 '{config_path}' 格式错误: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"配置文件 '{config_path}' 的顶层必须是一个对象。")

    try:
        return MelakaConfig.model_validate(raw)
    except pydantic.ValidationError as e:
        details = "\n".join(
            f"  - {'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"配置校验失败:\n{details}") from e


def get_effective_ai_config(root: MelakaConfig, collection: CollectionConfig) -> AIConfig:
    if collection.ai is None:
        return root.ai
    overrides = collection.ai.model_dump(exclude_none=True)
    return root.ai.model_copy(update=overrides)


def get_effective_batch_size(root: MelakaConfig, collection: CollectionConfig) -> int:
    if collection.batch_size is not None:
        return collection.batch_size
    return root.defaults.batch_size


def get_effective_max_concurrency(
    root: MelakaConfig, collection: CollectionConfig
) -> int:
    if collection.max_concurrency is not None:
        return collection.max_concurrency
    return root.defaults.max_concurrency


def get_effective_force_update(root: MelakaConfig, collection: CollectionConfig) -> bool:
    if collection.force_update is not None:
        return collection.force_update
    return root.defaults.force_update


def merge_glossaries(
    shared: Optional[dict[str, str]], collection: Optional[dict[str, str]]
) -> dict[str, str]:
    """合并术语表，集合术语表中的条目逐键覆盖共享术语表。"""
    return {**(shared or {}), **(collection or {})}


def find_collection_config(
    root: MelakaConfig, collection_path: str
) -> Optional[CollectionConfig]:
    """
    按路径查找集合配置。

    普通集合要求路径完全相等；集合组只比较最后一段，
    因此 `users/u1/posts` 会匹配路径为 `posts` 的集合组配置。
    """
    for collection in root.collections:
        if collection.path == collection_path:
            return collection
    last_segment = collection_path.rstrip("/").rsplit("/", 1)[-1]
    for collection in root.collections:
        if collection.is_collection_group and collection.path == last_segment:
            return collection
    return None


def resolve_effective_config(
    root: MelakaConfig, collection: CollectionConfig
) -> EffectiveConfig:
    return EffectiveConfig(
        collection_path=collection.path,
        is_collection_group=collection.is_collection_group,
        ai=get_effective_ai_config(root, collection),
        batch_size=get_effective_batch_size(root, collection),
        max_concurrency=get_effective_max_concurrency(root, collection),
        force_update=get_effective_force_update(root, collection),
        glossary=merge_glossaries(root.glossary, collection.glossary),
        fields=collection.fields,
        field_mappings=collection.field_mappings,
        prompt=collection.prompt,
    )


def resolve_api_key(
    ai: AIConfig, settings: Optional[MelakaSettings] = None
) -> Optional[str]:
    """按 显式密钥 -> 密钥环境变量 -> 运行时设置 的顺序解析 API 密钥。"""
    if ai.api_key:
        return ai.api_key
    from_env = os.environ.get(ai.api_key_secret or DEFAULT_API_KEY_SECRET)
    if from_env:
        return from_env
    if settings is not None and settings.gemini_api_key is not None:
        return settings.gemini_api_key.get_secret_value()
    return None
