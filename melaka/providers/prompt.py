# melaka/providers/prompt.py
"""构建翻译提示词，并从模型的自由文本回复中提取 JSON 对象。"""

import json
import re
from typing import Any

from melaka.core.exceptions import ParseError
from melaka.core.types import TranslationOptions
from melaka.utils import get_language_name

SOURCE_LANGUAGE = "English"

_FENCED_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_BRACED_BLOCK_PATTERN = re.compile(r"\{[\s\S]*\}")

_PRESERVE_RULES = (
    "JSON structure and field names (only translate the values)",
    "Markdown formatting (headers, bold, italic, links, lists, code blocks)",
    "Proper nouns (names, brands, places) unless the glossary specifies otherwise",
    "Numbers, dates and measurements",
    "URLs, email addresses and code snippets",
    "Emoji and special characters",
)


def build_system_prompt() -> str:
    return (
        "You are a professional translator specializing in software localization.\n\n"
        "Your task is to translate content while:\n"
        "1. Maintaining the exact JSON structure\n"
        "2. Preserving technical terms, brand names, and proper nouns\n"
        "3. Adapting idioms and cultural references appropriately\n"
        "4. Ensuring natural, fluent translations in the target language\n"
        "5. Following any glossary terms provided exactly\n\n"
        "Always respond with valid JSON that matches the input structure."
    )


def format_glossary(glossary: dict[str, str]) -> str:
    """将术语表渲染为逐行的 `术语 → 译法`。"""
    if not glossary:
        return "No specific glossary terms."
    return "\n".join(f"{term} → {translation}" for term, translation in glossary.items())


def build_translation_prompt(content: dict[str, Any], options: TranslationOptions) -> str:
    """构建发送给模型的用户提示词。"""
    language_name = get_language_name(options.target_language)
    sections = [
        f"Translate the following content from {SOURCE_LANGUAGE} to "
        f"{language_name} ({options.target_language}).",
        "Preserve exactly:\n" + "\n".join(f"- {rule}" for rule in _PRESERVE_RULES),
    ]

    if options.prompt_context:
        sections.append(f"Context:\n{options.prompt_context}")

    if options.field_notes:
        notes = "\n".join(f"- {name}: {note}" for name, note in options.field_notes.items())
        sections.append(f"Field notes:\n{notes}")

    sections.append(
        "Glossary (use these translations consistently):\n"
        + format_glossary(options.glossary)
    )

    sections.append(
        "Content to translate:\n" + json.dumps(content, ensure_ascii=False, indent=2)
    )
    sections.append(
        "Respond with ONLY the translated JSON object. "
        "Do not include any explanation or markdown code blocks."
    )
    return "\n\n".join(sections)


def extract_json_from_response(text: str) -> Any:
    """
    从模型回复中提取 JSON。

    依次尝试：整体严格解析、从 ``` 代码块中提取、提取最外层的花括号子串。

    Raises:
        ParseError: 三种策略全部失败。

    """
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        first_error = e

    fenced = _FENCED_BLOCK_PATTERN.search(text)
    if fenced:
        try:
            return json.loads(fenced.group(1).strip())
        except json.JSONDecodeError:
            pass

    braced = _BRACED_BLOCK_PATTERN.search(text)
    if braced:
        try:
            return json.loads(braced.group(0))
        except json.JSONDecodeError:
            pass

    raise ParseError(f"Failed to parse JSON from response: {first_error}") from first_error
