"""Concurrency helpers package."""

from .async_optimizer import (
    ConcurrentExecutor,
    AsyncPool,
    execute_with_retries
)

__all__ = [
    "ConcurrentExecutor",
    "AsyncPool",
    "execute_with_retries",
]
