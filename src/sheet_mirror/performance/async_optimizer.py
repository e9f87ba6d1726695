"""Async helpers for bounded concurrency, retries and pooled sessions."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, Generic, List, Sequence, Type, TypeVar, Union

from ..utils.logging import get_logger


T = TypeVar('T')


class ConcurrentExecutor:
    """Executor for running async operations under a concurrency limit."""

    def __init__(self, max_concurrent: int = 1):
        """Initialize concurrent executor.

        Args:
            max_concurrent: Maximum concurrent operations
        """
        self.max_concurrent = max_concurrent
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.logger = get_logger(self.__class__.__name__)

    async def execute_batch(
        self,
        tasks: List[Callable[[], Awaitable[T]]],
        return_exceptions: bool = False
    ) -> List[Union[T, BaseException]]:
        """Execute a batch of async tasks concurrently.

        Args:
            tasks: List of async callables
            return_exceptions: Whether to return exceptions instead of raising

        Returns:
            Results in the order of ``tasks``
        """
        async def execute_single(task_func):
            async with self.semaphore:
                return await task_func()

        results = await asyncio.gather(
            *(execute_single(task) for task in tasks),
            return_exceptions=return_exceptions
        )

        self.logger.debug(
            "Batch execution completed",
            total_tasks=len(tasks),
            successful=len([r for r in results if not isinstance(r, BaseException)])
        )

        return results


async def execute_with_retries(
    task_func: Callable[[], Awaitable[T]],
    max_retries: int = 0,
    backoff_factor: float = 1.0,
    exceptions_to_retry: Sequence[Type[BaseException]] = (Exception,)
) -> T:
    """Execute a task, retrying selected exceptions with exponential backoff.

    Args:
        task_func: Async callable to execute
        max_retries: Maximum number of retries, 0 disables retrying
        backoff_factor: Delay of the first retry in seconds, doubled each time
        exceptions_to_retry: Exception types worth another attempt

    Returns:
        Task result
    """
    logger = get_logger("execute_with_retries")
    attempt = 0

    while True:
        try:
            return await task_func()

        except tuple(exceptions_to_retry) as e:
            if attempt >= max_retries:
                if max_retries:
                    logger.error(
                        "Task failed after all retries",
                        attempts=attempt + 1,
                        error=str(e)
                    )
                raise

            delay = backoff_factor * (2 ** attempt)
            attempt += 1
            logger.warning(
                "Task failed, retrying",
                attempt=attempt,
                max_retries=max_retries,
                delay=delay,
                error=str(e)
            )
            await asyncio.sleep(delay)


class AsyncPool(Generic[T]):
    """Pool of reusable async resources created on demand."""

    def __init__(
        self,
        create_func: Callable[[], Awaitable[T]],
        close_func: Callable[[T], Awaitable[Any]],
        max_size: int = 1
    ):
        """Initialize async pool.

        Args:
            create_func: Creates a new resource
            close_func: Releases a resource for good
            max_size: Maximum pool size
        """
        self.create_func = create_func
        self.close_func = close_func
        self.max_size = max_size
        self.pool: asyncio.Queue = asyncio.Queue(maxsize=max_size)
        self._created: List[T] = []
        self._slots = asyncio.Semaphore(max_size)

        self.logger = get_logger(self.__class__.__name__)

    @property
    def created_count(self) -> int:
        return len(self._created)

    def _owns(self, resource: T) -> bool:
        return any(r is resource for r in self._created)

    async def acquire(self) -> T:
        """Acquire a resource, creating one if none is idle."""
        await self._slots.acquire()
        try:
            return self.pool.get_nowait()
        except asyncio.QueueEmpty:
            pass

        try:
            resource = await self.create_func()
        except BaseException:
            self._slots.release()
            raise

        self._created.append(resource)
        self.logger.debug(f"Created new resource (total: {len(self._created)})")
        return resource

    async def release(self, resource: T):
        """Return a resource to the pool."""
        self.pool.put_nowait(resource)
        self._slots.release()

    async def discard(self, resource: T):
        """Close a checked-out resource instead of returning it to the pool."""
        self._created = [r for r in self._created if r is not resource]
        self._slots.release()
        self.logger.debug(f"Discarded resource (total: {len(self._created)})")

        try:
            await self.close_func(resource)
        except Exception as e:
            self.logger.warning("Failed to close discarded resource", error=str(e))

    @asynccontextmanager
    async def get_resource(self):
        """Context manager for acquiring and releasing resources.

        A resource discarded inside the block is not released again.
        """
        resource = await self.acquire()
        try:
            yield resource
        finally:
            if self._owns(resource):
                await self.release(resource)

    async def close(self):
        """Close every resource this pool created."""
        resources, self._created = self._created, []
        while not self.pool.empty():
            self.pool.get_nowait()

        for resource in resources:
            try:
                await self.close_func(resource)
            except Exception as e:
                self.logger.warning("Failed to close pooled resource", error=str(e))

    def stats(self) -> Dict[str, Any]:
        """Get pool statistics."""
        return {
            "created_count": len(self._created),
            "max_size": self.max_size,
            "available_count": self.pool.qsize(),
            "in_use_count": len(self._created) - self.pool.qsize()
        }
