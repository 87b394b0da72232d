# melaka/logging_config.py
"""
本模块负责集中配置项目的日志系统。

开发环境下使用基于 Rich 的面板渲染器，生产环境下输出 JSON，
两种格式共享同一条 structlog 处理器链。
"""

import logging
from collections.abc import MutableMapping
from typing import Any, Literal

import structlog
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from structlog.typing import Processor

# 出现在面板标题中的关联键，而不是键值表中
_CORRELATION_KEYS = ("batch_id", "document_id", "language")


class TaskPanelRenderer:
    """
    将日志事件渲染为 Rich 面板。

    任务关联键（批次、文档、语言）显示在标题中，其余键值对按键名排序后
    以两列表格显示在消息下方。DEBUG 级别只渲染为单行以减少噪音。
    """

    _LEVEL_STYLES = {
        "debug": "blue",
        "info": "green",
        "warning": "yellow",
        "error": "bold red",
        "critical": "bold magenta",
    }

    def __init__(self, kv_truncate_at: int = 120, console: Console | None = None):
        self._console = console or Console()
        self._kv_truncate_at = kv_truncate_at

    def _format_value(self, value: Any) -> str:
        text = value if isinstance(value, str) else repr(value)
        if len(text) > self._kv_truncate_at:
            return text[: self._kv_truncate_at - 1] + "…"
        return text

    def _capture(self, renderable: RenderableType) -> str:
        with self._console.capture() as capture:
            self._console.print(renderable)
        return capture.get().rstrip()

    def __call__(
        self, logger: Any, name: str, event_dict: MutableMapping[str, Any]
    ) -> str:
        event = str(event_dict.pop("event", "")).strip()
        level = str(event_dict.pop("level", "info")).lower()
        timestamp = str(event_dict.pop("timestamp", ""))
        logger_name = str(event_dict.pop("logger", ""))
        style = self._LEVEL_STYLES.get(level, "default")

        if level == "debug":
            line = Text()
            line.append(f"{timestamp} ", style="dim")
            line.append(f"{level.upper():<8}", style=style)
            line.append(f" {event} ")
            pairs = " ".join(
                f"{k}={self._format_value(v)}" for k, v in event_dict.items()
            )
            line.append(pairs, style="dim")
            return self._capture(line)

        correlation = [
            f"{key}={event_dict.pop(key)}" for key in _CORRELATION_KEYS if key in event_dict
        ]
        title = Text.from_markup(f"[{style}]{level.upper()}[/] [cyan dim]{logger_name}[/]")
        if correlation:
            title.append(f" [{' '.join(correlation)}]", style="magenta")

        renderables: list[RenderableType] = [Text(event)]
        if event_dict:
            table = Table(show_header=False, show_edge=False, box=None, padding=(0, 1))
            table.add_column(style="dim", justify="right")
            table.add_column(overflow="fold")
            for key, value in sorted(event_dict.items()):
                table.add_row(key, self._format_value(value))
            renderables.append(table)

        return self._capture(
            Panel(
                Group(*renderables),
                title=title,
                title_align="left",
                subtitle=Text(timestamp, style="dim") if timestamp else None,
                subtitle_align="right",
                border_style=style,
                expand=False,
            )
        )


def setup_logging(
    log_level: str = "INFO",
    log_format: Literal["json", "console"] = "console",
) -> None:
    """
    配置全局的 structlog 日志系统。这是整个应用的日志配置入口。

    Args:
        log_level: `melaka` 日志记录器的最低级别。
        log_format: 'console' 用于开发环境的面板输出，'json' 用于生产环境的机器可读输出。

    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "console":
        processors.insert(3, structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"))
        processors.append(TaskPanelRenderer())
    else:
        processors.insert(3, structlog.processors.TimeStamper(fmt="iso", utc=True))
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # structlog 已经渲染好最终字符串，标准库 logging 只负责输出
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING)

    logging.getLogger("melaka").setLevel(log_level.upper())

    structlog.get_logger("melaka.logging_config").debug(
        "日志系统已配置完成。", log_format=log_format, app_log_level=log_level.upper()
    )
