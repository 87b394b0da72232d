# tests/conftest.py
"""项目全局共享的测试 Fixtures。"""

import logging
from collections.abc import Generator
from typing import Any

import pytest
import structlog
from pytest_mock import MockerFixture
from rich.console import Console

from melaka.config import MelakaConfig, resolve_effective_config
from melaka.persistence import InMemoryDocumentStore, TranslationRecordStore
from tests.helpers.factories import create_config_data


@pytest.fixture(scope="session", autouse=True)
def disable_rich_colors_for_tests(
    session_mocker: MockerFixture,
) -> Generator[None, None, None]:
    """全局禁用 rich 库的颜色输出，以确保测试结果的确定性。"""
    original_init = Console.__init__

    def new_init(self: Console, *args: Any, **kwargs: Any) -> None:
        kwargs["force_terminal"] = False
        kwargs["color_system"] = None
        original_init(self, *args, **kwargs)

    session_mocker.patch("rich.console.Console.__init__", new=new_init)
    yield


@pytest.fixture(autouse=True)
def clear_api_key_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """确保宿主环境中的 API 密钥不会泄漏进测试。"""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("MELAKA_GEMINI_API_KEY", raising=False)


@pytest.fixture
def memory_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def record_store(memory_store: InMemoryDocumentStore) -> TranslationRecordStore:
    return TranslationRecordStore(memory_store)


@pytest.fixture
def melaka_config() -> MelakaConfig:
    """一个包含普通集合与集合组的标准配置。"""
    return MelakaConfig.model_validate(create_config_data())


@pytest.fixture
def effective_config(melaka_config: MelakaConfig):
    """`articles` 集合的有效配置。"""
    return resolve_effective_config(melaka_config, melaka_config.collections[0])


@pytest.fixture
def restore_logging() -> Generator[None, None, None]:
    """测试结束后恢复标准库 logging 与 structlog 的全局配置。"""
    root_logger = logging.getLogger()
    melaka_logger = logging.getLogger("melaka")
    handlers = list(root_logger.handlers)
    root_level = root_logger.level
    melaka_level = melaka_logger.level
    yield
    root_logger.handlers[:] = handlers
    root_logger.setLevel(root_level)
    melaka_logger.setLevel(melaka_level)
    structlog.reset_defaults()
