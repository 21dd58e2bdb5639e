"""Per-network bounded-concurrency task queue with retries.

Each ``"network:networkType"`` key gets its own FIFO queue and worker limit,
so a slow or failing upstream only backs up its own callers.
"""

import asyncio
import logging
import time
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_not_exception_type, stop_after_attempt

from chainrelay.clients.resilience import (
    PermanentAPIError,
    RetryPolicy,
    TaskFailedError,
    UnsupportedNetworkError,
    log_retry_attempt,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors caused by the request itself; another attempt cannot succeed.
NON_RETRYABLE = (PermanentAPIError, UnsupportedNetworkError)


@dataclass
class QueueTask:
    id: str
    network_key: str
    work: Callable[[], Awaitable[Any]]
    future: asyncio.Future
    max_retries: int
    attempt: int = 0


class NetworkQueueState:
    """Worker limit, FIFO backlog and counters for one network key."""

    def __init__(self, network_key: str, concurrency: int) -> None:
        self.network_key = network_key
        self.concurrency = concurrency
        self.running = 0
        self.pending: deque[QueueTask] = deque()
        self.workers: set[asyncio.Task] = set()
        self.submitted = 0
        self.completed = 0
        self.failed = 0
        self.retried = 0

    def stats(self) -> dict:
        return {
            "total": self.submitted,
            "running": self.running,
            "queued": len(self.pending),
            "completed": self.completed,
            "failed": self.failed,
            "retries": self.retried,
        }


class NetworkTaskQueue:
    """Schedules coroutine factories against per-network worker pools.

    Args:
        concurrency: Maximum tasks running at once for any single network key.
        retry_policy: Attempt limit and delay schedule for failing tasks.
    """

    def __init__(self, concurrency: int = 3, retry_policy: RetryPolicy | None = None) -> None:
        self.concurrency = max(1, concurrency)
        self.retry_policy = retry_policy or RetryPolicy()
        self._queues: dict[str, NetworkQueueState] = {}
        self._closed = False

    def _state(self, network_key: str) -> NetworkQueueState:
        state = self._queues.get(network_key)
        if state is None:
            state = NetworkQueueState(network_key, self.concurrency)
            self._queues[network_key] = state
            logger.info(
                "New request queue created for %s (concurrency %d)",
                network_key, self.concurrency,
            )
        return state

    def enqueue(self, network_key: str, work: Callable[[], Awaitable[T]]) -> "asyncio.Future[T]":
        """Schedule *work* on the queue for *network_key*.

        Args:
            network_key: ``"network:networkType"`` the work targets.
            work: Zero-argument callable returning a fresh awaitable per attempt.

        Returns:
            A future resolving to the work's result, or failing with
            ``TaskFailedError`` once the attempts are exhausted.
        """
        if self._closed:
            raise RuntimeError("Task queue is closed")

        state = self._state(network_key)
        task = QueueTask(
            id=f"task-{uuid.uuid4().hex[:12]}",
            network_key=network_key,
            work=work,
            future=asyncio.get_running_loop().create_future(),
            max_retries=self.retry_policy.max_retries,
        )
        state.pending.append(task)
        state.submitted += 1
        logger.debug(
            "%s queue status: %d queued, %d running",
            network_key, len(state.pending), state.running,
        )
        self._pump(state)
        return task.future

    def _pump(self, state: NetworkQueueState) -> None:
        while not self._closed and state.running < state.concurrency and state.pending:
            task = state.pending.popleft()
            if task.future.done():
                # Caller cancelled while the task was still queued
                continue
            state.running += 1
            worker = asyncio.create_task(self._run(state, task), name=task.id)
            state.workers.add(worker)
            worker.add_done_callback(state.workers.discard)

    async def _run(self, state: NetworkQueueState, task: QueueTask) -> None:
        started = time.monotonic()
        try:
            result = await self._attempt(state, task)
        except asyncio.CancelledError:
            task.future.cancel()
            raise
        except Exception as exc:
            state.failed += 1
            logger.error(
                "Task failed (%s): %s after %d attempt(s): %s",
                state.network_key, task.id, task.attempt, exc,
            )
            if not task.future.done():
                error = TaskFailedError(state.network_key, task.attempt, exc)
                error.__cause__ = exc
                task.future.set_exception(error)
        else:
            state.completed += 1
            logger.debug(
                "Task completed (%s): %s, duration: %.0fms",
                state.network_key, task.id, (time.monotonic() - started) * 1000,
            )
            if not task.future.done():
                task.future.set_result(result)
        finally:
            state.running -= 1
            self._pump(state)

    async def _attempt(self, state: NetworkQueueState, task: QueueTask) -> Any:
        def before_sleep(retry_state: RetryCallState) -> None:
            state.retried += 1
            log_retry_attempt(retry_state)

        result = None
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(task.max_retries),
            wait=self.retry_policy.wait(),
            retry=retry_if_not_exception_type(NON_RETRYABLE),
            before_sleep=before_sleep,
            reraise=True,
        ):
            with attempt:
                task.attempt = attempt.retry_state.attempt_number
                result = await task.work()
        return result

    def get_stats(self, network_key: str | None = None) -> dict:
        """Counters per network key, or for a single key when given."""
        if network_key is not None:
            state = self._queues.get(network_key)
            return state.stats() if state else NetworkQueueState(network_key, self.concurrency).stats()
        return {key: state.stats() for key, state in self._queues.items()}

    async def aclose(self) -> None:
        """Cancel running workers and drop queued tasks."""
        self._closed = True
        workers: list[asyncio.Task] = []
        for state in self._queues.values():
            while state.pending:
                state.pending.popleft().future.cancel()
            workers.extend(state.workers)
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
