# melaka/utils.py
"""
本模块包含项目范围内的通用工具函数：内容指纹、语言代码校验与展示名称、批次 ID 生成。
"""

import hashlib
import json
import re
import secrets
import time
from typing import Any

from langcodes import Language
from langcodes.tag_parser import LanguageTagError

# 语言子标签应该由 2-3 个字母组成 (BCP 47)
LANGUAGE_SUBTAG_PATTERN = re.compile(r"^[a-zA-Z]{2,3}$")

# 配置中接受的区域代码形式，例如 `ms-MY`、`zh-CN` 或 `de`
LOCALE_CODE_PATTERN = re.compile(r"^[a-z]{2,3}(-[A-Z]{2,3})?$")

LANGUAGE_NAMES: dict[str, str] = {
    "ms-MY": "Malay (Malaysia)",
    "zh-CN": "Chinese (Simplified)",
    "zh-TW": "Chinese (Traditional)",
    "ta-IN": "Tamil (India)",
    "hi-IN": "Hindi (India)",
    "id-ID": "Indonesian",
    "th-TH": "Thai",
    "vi-VN": "Vietnamese",
    "ja-JP": "Japanese",
    "ko-KR": "Korean",
    "es-ES": "Spanish (Spain)",
    "es-MX": "Spanish (Mexico)",
    "fr-FR": "French (France)",
    "de-DE": "German (Germany)",
    "pt-BR": "Portuguese (Brazil)",
    "pt-PT": "Portuguese (Portugal)",
    "ar-SA": "Arabic (Saudi Arabia)",
    "ru-RU": "Russian",
    "it-IT": "Italian",
    "nl-NL": "Dutch",
    "pl-PL": "Polish",
    "tr-TR": "Turkish",
    "en-US": "English (US)",
    "en-GB": "English (UK)",
}

_BATCH_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def get_content_hash(content: dict[str, Any]) -> str:
    """
    计算可翻译内容的 SHA-256 指纹（十六进制）。

    键在序列化前按字典序排序，因此指纹与字段的插入顺序无关。
    它只作为变更检测的等值判断依据，而不是安全原语。
    """
    canonical = json.dumps(
        content,
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def validate_lang_codes(lang_codes: list[str]) -> None:
    """使用 `langcodes` 库校验语言代码列表中的每个代码是否符合 BCP 47 规范。"""
    for code in lang_codes:
        if not LOCALE_CODE_PATTERN.match(code):
            raise ValueError(
                f"提供的语言代码 '{code}' 格式无效。应形如 'ms-MY' 或 'de'。"
            )
        try:
            lang = Language.get(code)
            if not lang.language or not LANGUAGE_SUBTAG_PATTERN.match(lang.language):
                raise LanguageTagError(
                    f"Tag '{code}' lacks a valid 2-3 letter language subtag."
                )
        except LanguageTagError as e:
            raise ValueError(f"提供的语言代码 '{code}' 格式无效。原因: {e}") from e


def get_language_name(code: str) -> str:
    """返回语言代码的英文展示名称；未知代码原样返回。"""
    return LANGUAGE_NAMES.get(code, code)


def generate_batch_id() -> str:
    """生成形如 `batch_<毫秒时间戳>_<6 位随机串>` 的批次 ID。"""
    timestamp_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BATCH_ID_ALPHABET) for _ in range(6))
    return f"batch_{timestamp_ms}_{suffix}"
