"""Narrow protocols for the external game client.

These protocols define the minimal interfaces the engine needs from a
connection handle and from the factory that opens one, so the engine stays
independent of any concrete protocol library.
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Any, Awaitable, Protocol, runtime_checkable

from eventkit import Event

from blockfleet.engine.session import Credentials, Target


@runtime_checkable
class GameConnection(Protocol):
    """One live connection handle (see blockfleet.engine.client for event arguments)."""

    loginEvent: Event
    spawnEvent: Event
    disconnectedEvent: Event
    kickedEvent: Event
    errorEvent: Event
    windowOpenEvent: Event
    chatEvent: Event
    messageEvent: Event

    @property
    def username(self) -> str: ...
    @property
    def position(self) -> Any: ...
    @property
    def heldItem(self) -> Any | None: ...

    def inventoryItems(self) -> list[Any]: ...
    def nearestEntity(self, predicate: Callable[[Any], bool]) -> Any | None: ...
    def chat(self, text: str) -> Any: ...
    def activateItem(self) -> Any: ...
    def clickWindow(
        self, window: Any, slot: int, mouseButton: int = 0, mode: int = 0
    ) -> Any: ...
    def equip(self, item: Any, destination: str = "hand") -> Any: ...
    def look(self, yaw: float, pitch: float, force: bool = True) -> Any: ...
    def attack(self, entity: Any) -> Any: ...
    def quit(self, reason: str = "") -> Any: ...


class ConnectionFactory(Protocol):
    """Opens a new connection; may be a plain callable or a coroutine function."""

    def __call__(
        self, credentials: Credentials, target: Target
    ) -> GameConnection | Awaitable[GameConnection]: ...
