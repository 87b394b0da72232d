# melaka/tasks/local.py
"""
进程内的任务传输层实现，用于本地运行与测试。

它实现了 `TaskQueue` 协议，并提供托管队列应有的两项保证：
- 同一时刻最多分派 `max_concurrent_dispatches` 个任务；
- 失败的任务按指数退避重试，最多尝试 `max_attempts` 次，之后进入死信列表。
"""

import asyncio
import itertools
import signal
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from melaka.config import MelakaSettings, RetryPolicyConfig
from melaka.core.exceptions import TaskRetryError

logger = structlog.get_logger(__name__)

TaskHandler = Callable[[dict[str, Any]], Awaitable[Any]]
Sleeper = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class DeadLetter:
    """一个被放弃的任务。"""

    task_id: int
    payload: dict[str, Any]
    attempts: int
    error: str


class LocalTaskQueue:
    """基于 asyncio 的任务队列。所有依赖项通过构造函数注入。"""

    def __init__(
        self,
        handler: TaskHandler,
        *,
        max_concurrent_dispatches: int = 10,
        retry_policy: Optional[RetryPolicyConfig] = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self._handler = handler
        self._semaphore = asyncio.Semaphore(max_concurrent_dispatches)
        self._retry_policy = retry_policy or RetryPolicyConfig()
        self._sleep = sleep
        self._ids = itertools.count(1)
        self._pending: set[asyncio.Task[None]] = set()
        self._in_flight = 0

        self.completed = 0
        self.peak_concurrency = 0
        self.dead_letters: list[DeadLetter] = []

    @classmethod
    def from_settings(
        cls,
        handler: TaskHandler,
        settings: MelakaSettings,
        *,
        max_concurrency: Optional[int] = None,
        **kwargs: Any,
    ) -> "LocalTaskQueue":
        """`max_concurrency` 为集合配置的并发上限，与运行时设置取较小值。"""
        limit = settings.queue.max_concurrent_dispatches
        if max_concurrency is not None:
            limit = min(limit, max_concurrency)
        return cls(
            handler,
            max_concurrent_dispatches=limit,
            retry_policy=settings.retry_policy,
            **kwargs,
        )

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def backoff_seconds(self, attempt: int) -> float:
        """第 `attempt` 次失败之后的等待时间。"""
        policy = self._retry_policy
        return min(policy.min_backoff * (2 ** (attempt - 1)), policy.max_backoff)

    async def enqueue(self, payload: dict[str, Any], *, delay_seconds: int = 0) -> None:
        task_id = next(self._ids)
        task = asyncio.create_task(self._run(task_id, payload, delay_seconds))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        logger.debug("任务已入队", task_id=task_id, delay_seconds=delay_seconds)

    async def _dispatch(self, payload: dict[str, Any]) -> None:
        async with self._semaphore:
            self._in_flight += 1
            self.peak_concurrency = max(self.peak_concurrency, self._in_flight)
            try:
                await self._handler(payload)
            finally:
                self._in_flight -= 1

    async def _run(self, task_id: int, payload: dict[str, Any], delay_seconds: int) -> None:
        if delay_seconds > 0:
            await self._sleep(delay_seconds)

        max_attempts = self._retry_policy.max_attempts
        attempt = 0
        while True:
            attempt += 1
            try:
                await self._dispatch(payload)
            except TaskRetryError as e:
                error, retryable = str(e), e.retryable
            except Exception as e:
                logger.error("任务处理器抛出未预期的异常", task_id=task_id, exc_info=True)
                error, retryable = f"{e.__class__.__name__}: {e}", True
            else:
                self.completed += 1
                return

            if not retryable or attempt >= max_attempts:
                logger.error(
                    "任务已放弃，移入死信列表",
                    task_id=task_id,
                    attempts=attempt,
                    retryable=retryable,
                    error=error,
                )
                self.dead_letters.append(DeadLetter(task_id, payload, attempt, error))
                return

            backoff = self.backoff_seconds(attempt)
            logger.warning(
                "任务失败，将在退避后重试",
                task_id=task_id,
                attempt=attempt,
                backoff_seconds=backoff,
                error=error,
            )
            await self._sleep(backoff)

    async def run_until_idle(self) -> None:
        """等待所有已入队的任务（包括处理过程中新入队的任务）完成。"""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def run_loop(self, shutdown_event: asyncio.Event) -> None:
        """持续服务，直到收到停机信号；停机时取消尚未完成的任务。"""

        def _signal_handler(*args: Any) -> None:
            logger.warning("收到停机信号，正在准备优雅关闭 (LocalTaskQueue)...")
            shutdown_event.set()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

        logger.info("本地任务队列已启动，等待任务...")
        try:
            await shutdown_event.wait()
        except asyncio.CancelledError:
            logger.info("本地任务队列循环被取消。")
        finally:
            for task in list(self._pending):
                task.cancel()
            await asyncio.gather(*list(self._pending), return_exceptions=True)
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            logger.info("本地任务队列已关闭。", dead_letters=len(self.dead_letters))
