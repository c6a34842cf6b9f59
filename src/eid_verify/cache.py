"""Single-flight cache for provider resources.

This module implements CachedResource, which wraps one remotely loaded value
(the provider's discovery document or its signing-key set) for the lifetime of
an engine instance.

Behavior:
- The first ``get()`` starts exactly one load; concurrent callers await that
  same load instead of starting their own.
- A successful load is kept for the engine's lifetime. There is no TTL: a
  caller that needs fresher data must dispose and recreate the engine.
- A failed load is never cached. The failure is raised to every caller that
  was waiting on it, and the next ``get()`` starts a fresh load.
- Cancelling a caller does not cancel the shared load; it may still complete
  for future callers.

The states are explicit (see ResourceState) so failure semantics can be
tested without relying on how a particular event loop memoizes futures.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Generic, TypeVar

from .errors import FetchFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResourceState(Enum):
    """Lifecycle state of a CachedResource."""

    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class CachedResource(Generic[T]):
    """Lazily loaded, single-flight, failure-invalidating async value.

    Concurrency:
        All state transitions happen on the event loop thread between
        suspension points, so no lock is needed. The only shared mutable
        state is the pending load task.

    Example:
        ```python
        metadata = CachedResource("provider metadata", load_metadata)

        doc = await metadata.get()  # loads once
        doc = await metadata.get()  # served from memory
        ```

    Attributes:
        name: Human-readable name used in logs and errors.
        load_count: Number of loads started so far.
    """

    def __init__(self, name: str, load: Callable[[], Awaitable[T]]) -> None:
        self.name = name
        self.load_count = 0
        self._load = load
        self._state = ResourceState.EMPTY
        self._value: T | None = None
        self._task: asyncio.Task[T] | None = None

    @property
    def state(self) -> ResourceState:
        return self._state

    async def get(self) -> T:
        """Return the cached value, loading it if needed.

        Returns:
            The loaded value.

        Raises:
            FetchFailure: If the load fails. The failure is not remembered.
        """
        if self._state is ResourceState.READY:
            return self._value  # type: ignore[return-value]

        if self._task is None:
            self._start()

        assert self._task is not None
        # Shield so a cancelled caller leaves the shared load running.
        return await asyncio.shield(self._task)

    def _start(self) -> None:
        self.load_count += 1
        self._state = ResourceState.LOADING
        logger.debug("Loading %s (attempt %d)", self.name, self.load_count)
        task = asyncio.get_running_loop().create_task(self._run())
        task.add_done_callback(_retrieve_exception)
        self._task = task

    async def _run(self) -> T:
        try:
            value = await self._load()
        except asyncio.CancelledError:
            if self._task is asyncio.current_task():
                self._task = None
                self._state = ResourceState.EMPTY
            raise
        except FetchFailure:
            self._fail()
            raise
        except Exception as e:
            self._fail()
            raise FetchFailure(f"Failed to load {self.name}: {e}") from e

        self._value = value
        self._state = ResourceState.READY
        self._task = None
        logger.debug("Loaded %s", self.name)
        return value

    def _fail(self) -> None:
        logger.warning("Failed to load %s", self.name)
        self._task = None
        self._state = ResourceState.FAILED

    def close(self) -> None:
        """Cancel an in-flight load and forget any cached value."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._value = None
        self._state = ResourceState.EMPTY


def _retrieve_exception(task: asyncio.Task[object]) -> None:
    # Marks the exception as retrieved when every waiter was cancelled.
    if not task.cancelled():
        task.exception()
