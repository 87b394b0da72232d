# melaka/core/exceptions.py
"""
本模块定义了 Melaka 项目中所有自定义的、语义化的异常类型。

上层调用者可以根据异常类型决定后续动作：配置错误不会被重试，
而提供方、解析和校验错误都会被记录为翻译失败，并交由任务传输层重试。
"""

from typing import Optional


class MelakaError(Exception):
    """
    所有 Melaka 自定义异常的通用基类。
    捕获此异常可以处理所有源自本项目的预期错误。
    """

    pass


class ConfigurationError(MelakaError):
    """
    表示在加载、解析或查找配置时发生的错误。
    例如，配置文件缺失、字段格式不正确，或任务指向了一个未配置的集合。
    """

    pass


class ValidationError(MelakaError):
    """
    表示数据未能通过结构校验。

    既用于格式错误的任务负载，也用于未能通过动态 schema 校验的模型输出。
    `errors` 中保存了每一条 `路径: 原因` 形式的错误描述。
    """

    def __init__(self, message: str, errors: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.errors: list[str] = errors or []


class ProviderError(MelakaError):
    """
    表示与外部翻译服务交互时发生的错误。
    例如，网络问题、API 密钥缺失、服务返回非 2xx 状态码或空响应。
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class ParseError(MelakaError):
    """表示模型的回复无法通过任何一种提取策略解析为 JSON 对象。"""

    pass


class DocumentStoreError(MelakaError):
    """
    表示在文档存储层操作（如读取、部分更新、批量删除）中发生的错误。
    通常是底层存储驱动异常的包装。
    """

    pass


class ProviderNotFoundError(MelakaError, KeyError):
    """
    表示尝试访问一个未注册的翻译提供方时引发的错误。
    继承自 KeyError 是为了保持与字典查找行为的一致性。
    """

    pass


class TaskRetryError(MelakaError):
    """
    任务处理器向传输层发出的信号。

    `retryable=True` 时传输层应按其退避策略重新投递；
    `retryable=False` 表示硬失败，不应再次尝试。
    """

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable
