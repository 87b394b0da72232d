# melaka/cli/state.py
"""定义 CLI 应用的共享状态对象。"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

from melaka.config import load_config

if TYPE_CHECKING:
    from melaka.config import MelakaConfig, MelakaSettings


class State:
    """通过 Typer 上下文传递的共享状态。配置文件在首次使用时才加载。"""

    def __init__(self, settings: "MelakaSettings") -> None:
        self.settings = settings
        self._config: Optional["MelakaConfig"] = None

    def load_config(self, path: Optional[Path] = None) -> "MelakaConfig":
        if path is not None:
            return load_config(path)
        if self._config is None:
            self._config = load_config(self.settings.config_path)
        return self._config
