"""Named, cancellable background tasks owned by one session.

At most one task is alive per name: creating a task under a name that is
already running cancels the old one first.
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from blockfleet.engine.primitives import Seconds, resolve


@dataclass(slots=True)
class NamedTimers:
    # identity prefix for log lines
    owner: str = ""

    tasks: dict[str, asyncio.Task] = field(default_factory=dict)

    def create(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run 'coro' in the background as the only live task called 'name'."""
        self.cancel(name)

        task = asyncio.create_task(self._guarded(name, coro), name=f"{self.owner}:{name}")
        self.tasks[name] = task
        return task

    def schedule(
        self, name: str, delay: Seconds, callback: Callable[[], Any]
    ) -> asyncio.Task:
        """Run 'callback' once after 'delay' seconds (awaiting it if it returns an awaitable)."""

        async def later():
            await asyncio.sleep(delay)
            await resolve(callback())

        return self.create(name, later())

    async def _guarded(self, name: str, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception:
            # nothing awaits these tasks, so report failures here instead of losing them
            logger.exception("[{}] Background task '{}' failed", self.owner, name)
        finally:
            if self.tasks.get(name) is asyncio.current_task():
                del self.tasks[name]

    def cancel(self, name: str) -> bool:
        """Cancel the live task 'name'. Returns True if one was running.

        A task asking to cancel itself is only forgotten, so whatever it
        still has to do after the request (like arming a replacement) runs.
        """
        task = self.tasks.pop(name, None)
        if task is None or task.done():
            return False

        if task is not asyncio.current_task():
            task.cancel()

        return True

    def cancelAll(self) -> None:
        for name in list(self.tasks):
            self.cancel(name)

    def active(self, name: str) -> bool:
        task = self.tasks.get(name)
        return task is not None and not task.done()

    def names(self) -> list[str]:
        return sorted(name for name in self.tasks if self.active(name))
