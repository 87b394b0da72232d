# melaka/schema.py
"""
Schema 合成器：为每一次翻译请求动态构建输出校验器。

校验器由逐字段的 pydantic `TypeAdapter` 组合而成，以输出字段名为键，
每个字段只能是字符串或字符串数组。校验是严格的：多余字段、缺失的必需字段
以及类型不符都会导致拒绝，不做任何尽力而为的类型转换。
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

import pydantic
from pydantic import StrictStr, TypeAdapter

from melaka.core.exceptions import ValidationError
from melaka.core.types import SchemaType, SeparatedContent

if TYPE_CHECKING:
    from melaka.config import FieldMapping

_FIELD_ADAPTERS: dict[SchemaType, TypeAdapter[Any]] = {
    SchemaType.STRING: TypeAdapter(StrictStr),
    SchemaType.STRING_ARRAY: TypeAdapter(list[StrictStr]),
}


@dataclass(frozen=True)
class FieldSpec:
    """单个输出字段的校验规则。"""

    name: str
    schema_type: SchemaType
    required: bool = True
    description: Optional[str] = None


class TranslationSchema:
    """一个不可变的、由字段规则组合而成的输出校验器。"""

    def __init__(self, fields: Sequence[FieldSpec]) -> None:
        self._fields: dict[str, FieldSpec] = {spec.name: spec for spec in fields}

    @property
    def fields(self) -> Mapping[str, FieldSpec]:
        return dict(self._fields)

    @property
    def field_names(self) -> list[str]:
        return list(self._fields)

    @property
    def required_fields(self) -> list[str]:
        return [name for name, spec in self._fields.items() if spec.required]

    def __len__(self) -> int:
        return len(self._fields)

    def _collect_errors(self, data: Any) -> list[str]:
        if not isinstance(data, Mapping):
            return [f"(root): Expected object, received {type(data).__name__}"]

        errors: list[str] = [
            f"{key}: Unrecognized key" for key in data if key not in self._fields
        ]
        for name, spec in self._fields.items():
            if name not in data:
                if spec.required:
                    errors.append(f"{name}: Required")
                continue
            try:
                _FIELD_ADAPTERS[spec.schema_type].validate_python(
                    data[name], strict=True
                )
            except pydantic.ValidationError as e:
                for err in e.errors():
                    location = ".".join([name, *(str(part) for part in err["loc"])])
                    errors.append(f"{location}: {err['msg']}")
        return errors

    def validate(self, data: Any) -> dict[str, Any]:
        """
        校验数据并返回只包含 schema 字段的副本。

        Raises:
            ValidationError: 数据不符合 schema，消息中逐条列出错误。

        """
        errors = self._collect_errors(data)
        if errors:
            details = "\n".join(f"  - {error}" for error in errors)
            raise ValidationError(f"Schema validation failed:\n{details}", errors)
        return {name: data[name] for name in self._fields if name in data}

    def is_valid(self, data: Any) -> bool:
        return not self._collect_errors(data)

    def to_json_schema(self) -> dict[str, Any]:
        """导出为 JSON Schema，可用于提示词或调试。"""
        properties: dict[str, Any] = {}
        for name, spec in self._fields.items():
            prop = _FIELD_ADAPTERS[spec.schema_type].json_schema()
            if spec.description:
                prop["description"] = spec.description
            properties[name] = prop
        return {
            "type": "object",
            "properties": properties,
            "required": self.required_fields,
            "additionalProperties": False,
        }


class SchemaBuilder:
    """按字段逐步组合出一个 `TranslationSchema`。"""

    def __init__(self) -> None:
        self._specs: dict[str, FieldSpec] = {}

    def add_field(
        self,
        name: str,
        schema_type: SchemaType = SchemaType.STRING,
        *,
        required: bool = True,
        description: Optional[str] = None,
    ) -> SchemaBuilder:
        if schema_type not in _FIELD_ADAPTERS:
            raise ValueError(
                f"字段 '{name}' 的类型 '{schema_type.value}' 不可翻译，无法加入输出 schema。"
            )
        self._specs[name] = FieldSpec(name, schema_type, required, description)
        return self

    def build(self) -> TranslationSchema:
        return TranslationSchema(list(self._specs.values()))


def _translatable_mappings(
    mappings: Optional[Sequence[FieldMapping]],
) -> dict[str, FieldMapping]:
    return {
        m.source_field: m for m in mappings or [] if m.schema_type in _FIELD_ADAPTERS
    }


def create_translation_schema(
    content: SeparatedContent,
    mappings: Optional[Sequence[FieldMapping]] = None,
) -> TranslationSchema:
    """
    根据字段分类结果构建 schema。

    未被映射的可翻译字段保持原名且为必需；缺少类型信息时按字符串处理。
    被映射的字段使用映射声明的输出名、是否必需和描述。
    """
    mapped = _translatable_mappings(mappings)
    builder = SchemaBuilder()
    for name in content.translatable:
        schema_type = content.detected_types.get(name, SchemaType.STRING)
        mapping = mapped.get(name)
        if mapping is None:
            builder.add_field(name, schema_type)
        else:
            builder.add_field(
                mapping.output_field,
                schema_type,
                required=mapping.required,
                description=mapping.description,
            )
    return builder.build()


def map_to_output_fields(
    translatable: dict[str, Any],
    mappings: Optional[Sequence[FieldMapping]] = None,
) -> dict[str, Any]:
    """将以源字段名为键的可翻译内容改写为以输出字段名为键。"""
    mapped = _translatable_mappings(mappings)
    return {
        (mapped[name].output_field if name in mapped else name): value
        for name, value in translatable.items()
    }


def missing_required_fields(
    content: SeparatedContent,
    mappings: Optional[Sequence[FieldMapping]] = None,
) -> list[str]:
    """返回被声明为必需、但在文档中缺失或无法翻译的源字段。"""
    return [
        source
        for source, mapping in _translatable_mappings(mappings).items()
        if mapping.required and source not in content.translatable
    ]


def create_schema_from_mappings(mappings: Sequence[FieldMapping]) -> TranslationSchema:
    """
    根据显式的字段映射列表构建 schema。

    输出字段名取 `target_field`（缺省时为 `source_field`）。
    声明为不可翻译类型的映射不会进入 schema。
    """
    builder = SchemaBuilder()
    for mapping in mappings:
        if mapping.schema_type not in _FIELD_ADAPTERS:
            continue
        builder.add_field(
            mapping.output_field,
            mapping.schema_type,
            required=mapping.required,
            description=mapping.description,
        )
    return builder.build()
