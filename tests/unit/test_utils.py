# tests/unit/test_utils.py
"""针对 `melaka.utils` 模块的单元测试。"""

import re

import pytest

from melaka.utils import (
    generate_batch_id,
    get_content_hash,
    get_language_name,
    validate_lang_codes,
)


def test_get_content_hash_stability() -> None:
    """测试 get_content_hash 对相同但顺序不同的字典能生成相同的哈希。"""
    assert get_content_hash({"a": 1, "b": 2}) == get_content_hash({"b": 2, "a": 1})


def test_get_content_hash_with_nested_dict() -> None:
    """测试对嵌套字典的哈希稳定性。"""
    content1 = {"title": "Hi", "meta": {"c": 3, "d": ["x", "y"]}}
    content2 = {"meta": {"d": ["x", "y"], "c": 3}, "title": "Hi"}
    assert get_content_hash(content1) == get_content_hash(content2)


def test_get_content_hash_detects_changes() -> None:
    base = {"title": "Hello", "tags": ["a", "b"]}
    assert get_content_hash(base) != get_content_hash({"title": "Hello!", "tags": ["a", "b"]})
    # 数组元素的顺序属于内容的一部分
    assert get_content_hash(base) != get_content_hash({"title": "Hello", "tags": ["b", "a"]})


def test_get_content_hash_is_sha256_hex() -> None:
    digest = get_content_hash({"title": "Selamat datang"})
    assert re.fullmatch(r"[0-9a-f]{64}", digest)


@pytest.mark.parametrize("valid_codes", [["ms-MY"], ["zh-CN", "ta-IN"], ["de"], ["fil"]])
def test_validate_lang_codes_accepts_valid_tags(valid_codes: list[str]) -> None:
    """测试有效的语言代码能通过校验，不引发异常。"""
    try:
        validate_lang_codes(valid_codes)
    except ValueError as e:
        pytest.fail(f"validate_lang_codes() 错误地对有效代码 {valid_codes} 引发了异常: {e}")


@pytest.mark.parametrize(
    "invalid_code",
    ["german", "e", "123", "ms_MY", "ms-my", "MS-MY", "zh-Hant", "en-US-x"],
)
def test_validate_lang_codes_rejects_invalid_tags(invalid_code: str) -> None:
    """测试不符合 `ms-MY` 形式的代码会引发 ValueError，并包含中文说明。"""
    with pytest.raises(ValueError) as excinfo:
        validate_lang_codes([invalid_code])

    assert f"提供的语言代码 '{invalid_code}' 格式无效" in str(excinfo.value)


def test_get_language_name() -> None:
    assert get_language_name("ms-MY") == "Malay (Malaysia)"
    assert get_language_name("zh-CN") == "Chinese (Simplified)"
    # 未知代码原样返回
    assert get_language_name("xx-YY") == "xx-YY"


def test_generate_batch_id_format_and_uniqueness() -> None:
    ids = {generate_batch_id() for _ in range(50)}

    assert len(ids) == 50
    for batch_id in ids:
        assert re.fullmatch(r"batch_\d{13}_[0-9a-z]{6}", batch_id)
