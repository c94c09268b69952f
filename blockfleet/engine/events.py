"""Listener bookkeeping scoped to one connection handle.

Every listener a session attaches to a connection goes through a
Subscriptions scope, so replacing or shutting down the connection detaches
all of them at once (and temporary listeners detach on every exit path).
"""
from __future__ import annotations

import contextlib
from collections.abc import Callable, Iterator
from typing import Any

from eventkit import Event
from loguru import logger


class Subscriptions:
    """Listeners attached to eventkit events, released together.

    Usable as a context manager for short-lived listeners:

        with Subscriptions() as subs:
            subs.add(conn.windowOpenEvent, onOpen)
            ...
        # onOpen is detached here, even on timeout or cancellation
    """

    def __init__(self, owner: str = ""):
        self.owner = owner
        self._slots: list[tuple[Event, Callable[..., Any]]] = []

    def add(self, event: Event, callback: Callable[..., Any]) -> None:
        event += callback
        self._slots.append((event, callback))

    def remove(self, event: Event, callback: Callable[..., Any]) -> bool:
        """Detach one listener added here. Returns False if it was already released."""
        for i, (e, cb) in enumerate(self._slots):
            if e is event and cb is callback:
                del self._slots[i]
                event -= callback
                return True

        return False

    @contextlib.contextmanager
    def listening(self, event: Event, callback: Callable[..., Any]) -> Iterator[None]:
        """Attach 'callback' for the duration of the block.

        A release() from elsewhere while the block is still running detaches it early.
        """
        self.add(event, callback)
        try:
            yield
        finally:
            self.remove(event, callback)

    def release(self) -> int:
        """Detach every listener. Returns how many were still attached."""
        released = 0
        while self._slots:
            event, callback = self._slots.pop()
            attached = len(event)
            event -= callback
            released += attached - len(event)

        if released:
            logger.trace("[{}] Released {} listeners", self.owner, released)

        return released

    @property
    def count(self) -> int:
        return len(self._slots)

    def __enter__(self) -> Subscriptions:
        return self

    def __exit__(self, *exc) -> None:
        self.release()
