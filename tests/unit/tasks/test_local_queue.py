# tests/unit/tasks/test_local_queue.py
"""
针对进程内任务队列 `LocalTaskQueue` 的单元测试。

`sleep` 被替换为 AsyncMock，因此错峰延迟与重试退避都不会真正等待，
但每一次等待的时长都可以被断言。
"""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, call

import pytest

from melaka.config import MelakaSettings, QueueConfig, RetryPolicyConfig
from melaka.core.exceptions import TaskRetryError
from melaka.tasks import LocalTaskQueue

POLICY = RetryPolicyConfig(max_attempts=3, min_backoff=60, max_backoff=300)


class ScriptedHandler:
    """按文档 ID 预设前 N 次调用抛出的异常。"""

    def __init__(self, failures: dict[str, list[Exception]] | None = None):
        self.failures = failures or {}
        self.calls: list[str] = []

    async def __call__(self, payload: dict[str, Any]) -> None:
        doc_id = payload["documentId"]
        self.calls.append(doc_id)
        pending = self.failures.get(doc_id)
        if pending:
            raise pending.pop(0)


def make_queue(handler, **kwargs: Any) -> tuple[LocalTaskQueue, AsyncMock]:
    sleep = AsyncMock()
    queue = LocalTaskQueue(handler, retry_policy=POLICY, sleep=sleep, **kwargs)
    return queue, sleep


@pytest.mark.parametrize("attempt, expected", [(1, 60), (2, 120), (3, 240), (4, 300), (10, 300)])
def test_backoff_seconds_is_exponential_and_capped(attempt: int, expected: float) -> None:
    queue, _ = make_queue(ScriptedHandler())
    assert queue.backoff_seconds(attempt) == expected


@pytest.mark.asyncio
async def test_successful_tasks_complete() -> None:
    handler = ScriptedHandler()
    queue, sleep = make_queue(handler)

    await queue.enqueue({"documentId": "a"})
    await queue.enqueue({"documentId": "b"}, delay_seconds=2)
    await queue.run_until_idle()

    assert sorted(handler.calls) == ["a", "b"]
    assert queue.completed == 2
    assert queue.dead_letters == []
    assert queue.pending_count == 0
    # 只有带延迟的任务会等待
    sleep.assert_awaited_once_with(2)


@pytest.mark.asyncio
async def test_retryable_failure_is_retried_with_backoff() -> None:
    handler = ScriptedHandler({"a": [TaskRetryError("503"), TaskRetryError("503")]})
    queue, sleep = make_queue(handler)

    await queue.enqueue({"documentId": "a"})
    await queue.run_until_idle()

    assert handler.calls == ["a", "a", "a"]
    assert queue.completed == 1
    assert sleep.await_args_list == [call(60), call(120)]


@pytest.mark.asyncio
async def test_exhausted_attempts_go_to_dead_letters() -> None:
    handler = ScriptedHandler({"a": [TaskRetryError("boom")] * 5})
    queue, _ = make_queue(handler)

    await queue.enqueue({"documentId": "a"})
    await queue.run_until_idle()

    assert handler.calls == ["a", "a", "a"]
    assert queue.completed == 0
    [letter] = queue.dead_letters
    assert letter.attempts == 3
    assert letter.error == "boom"
    assert letter.payload == {"documentId": "a"}


@pytest.mark.asyncio
async def test_non_retryable_failure_is_not_retried() -> None:
    handler = ScriptedHandler({"a": [TaskRetryError("not configured", retryable=False)]})
    queue, sleep = make_queue(handler)

    await queue.enqueue({"documentId": "a"})
    await queue.run_until_idle()

    assert handler.calls == ["a"]
    assert queue.dead_letters[0].attempts == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_unexpected_exception_is_retried() -> None:
    handler = ScriptedHandler({"a": [ValueError("bad")]})
    queue, _ = make_queue(handler)

    await queue.enqueue({"documentId": "a"})
    await queue.run_until_idle()

    assert handler.calls == ["a", "a"]
    assert queue.completed == 1


@pytest.mark.asyncio
async def test_one_failing_task_does_not_block_others() -> None:
    handler = ScriptedHandler({"bad": [TaskRetryError("x", retryable=False)]})
    queue, _ = make_queue(handler)

    for doc_id in ["a", "bad", "b"]:
        await queue.enqueue({"documentId": doc_id})
    await queue.run_until_idle()

    assert queue.completed == 2
    assert [letter.payload["documentId"] for letter in queue.dead_letters] == ["bad"]


@pytest.mark.asyncio
async def test_concurrency_is_bounded() -> None:
    """测试同一时刻分派的任务数不超过 max_concurrent_dispatches。"""
    release = asyncio.Event()
    started: list[str] = []

    async def slow_handler(payload: dict[str, Any]) -> None:
        started.append(payload["documentId"])
        await release.wait()

    queue, _ = make_queue(slow_handler, max_concurrent_dispatches=2)
    for i in range(5):
        await queue.enqueue({"documentId": str(i)})

    for _ in range(10):
        await asyncio.sleep(0)
    assert len(started) == 2

    release.set()
    await queue.run_until_idle()

    assert queue.completed == 5
    assert queue.peak_concurrency == 2


@pytest.mark.asyncio
async def test_tasks_enqueued_during_processing_are_drained() -> None:
    calls: list[str] = []
    queue: LocalTaskQueue

    async def handler(payload: dict[str, Any]) -> None:
        calls.append(payload["documentId"])
        if payload["documentId"] == "parent":
            await queue.enqueue({"documentId": "child"})

    queue, _ = make_queue(handler)
    await queue.enqueue({"documentId": "parent"})
    await queue.run_until_idle()

    assert calls == ["parent", "child"]
    assert queue.completed == 2


def test_from_settings_uses_queue_and_retry_policy() -> None:
    settings = MelakaSettings(
        _env_file=None,
        queue=QueueConfig(max_concurrent_dispatches=3),
        retry_policy=RetryPolicyConfig(max_attempts=5, min_backoff=1, max_backoff=4),
    )

    queue = LocalTaskQueue.from_settings(ScriptedHandler(), settings)

    assert queue.backoff_seconds(2) == 2
    assert queue.backoff_seconds(5) == 4


@pytest.mark.asyncio
@pytest.mark.parametrize("collection_limit, expected_peak", [(2, 2), (50, 3), (None, 3)])
async def test_from_settings_respects_collection_concurrency(
    collection_limit: int | None, expected_peak: int
) -> None:
    """集合配置的并发上限与运行时设置取较小值。"""
    release = asyncio.Event()

    async def slow_handler(payload: dict[str, Any]) -> None:
        await release.wait()

    settings = MelakaSettings(_env_file=None, queue=QueueConfig(max_concurrent_dispatches=3))
    queue = LocalTaskQueue.from_settings(
        slow_handler, settings, max_concurrency=collection_limit, sleep=AsyncMock()
    )
    for i in range(6):
        await queue.enqueue({"documentId": str(i)})
    for _ in range(10):
        await asyncio.sleep(0)

    release.set()
    await queue.run_until_idle()

    assert queue.completed == 6
    assert queue.peak_concurrency == expected_peak


@pytest.mark.asyncio
async def test_run_loop_stops_on_shutdown_and_cancels_pending() -> None:
    never = asyncio.Event()

    async def blocking_handler(payload: dict[str, Any]) -> None:
        await never.wait()

    queue, _ = make_queue(blocking_handler)
    await queue.enqueue({"documentId": "a"})
    shutdown = asyncio.Event()

    loop_task = asyncio.create_task(queue.run_loop(shutdown))
    await asyncio.sleep(0)
    shutdown.set()
    await asyncio.wait_for(loop_task, timeout=1)

    assert queue.pending_count == 0
    assert queue.completed == 0
