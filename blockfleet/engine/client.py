"""Base class for game-client connection adapters.

The engine never speaks the game protocol itself. An adapter wraps a real
protocol client, emits the lifecycle events below, and implements the
actions. Actions may be plain methods or coroutines; the engine awaits
whatever comes back.

Events (emit arguments in parentheses):
    loginEvent()                 server accepted the login
    spawnEvent()                 player is in the world
    disconnectedEvent()          connection ended
    kickedEvent(reason)          server rejected or kicked the player
    errorEvent(error)            transport or protocol error
    windowOpenEvent(window)      a menu window opened
    chatEvent(username, message) player chat
    messageEvent(text)           any inbound chat/system text, already flattened to plain text
"""
from __future__ import annotations

import abc
from collections.abc import Callable
from typing import Any

from eventkit import Event

from blockfleet.engine.session import Credentials, Target

EVENT_NAMES = (
    "loginEvent",
    "spawnEvent",
    "disconnectedEvent",
    "kickedEvent",
    "errorEvent",
    "windowOpenEvent",
    "chatEvent",
    "messageEvent",
)


class GameClient(abc.ABC):
    """One live connection to the game server for one identity.

    Adapters must implement every world-state accessor and action below.
    """

    def __init__(self, credentials: Credentials, target: Target):
        self.credentials = credentials
        self.target = target

        self.loginEvent = Event("loginEvent")
        self.spawnEvent = Event("spawnEvent")
        self.disconnectedEvent = Event("disconnectedEvent")
        self.kickedEvent = Event("kickedEvent")
        self.errorEvent = Event("errorEvent")
        self.windowOpenEvent = Event("windowOpenEvent")
        self.chatEvent = Event("chatEvent")
        self.messageEvent = Event("messageEvent")

    @property
    def username(self) -> str:
        return self.credentials.username

    def events(self) -> list[Event]:
        return [getattr(self, name) for name in EVENT_NAMES]

    def listenerCount(self) -> int:
        return sum(len(event) for event in self.events())

    # ── World state ──

    @property
    @abc.abstractmethod
    def position(self) -> Any:
        """Own position (anything with x, y, z)."""
        raise NotImplementedError

    @property
    @abc.abstractmethod
    def heldItem(self) -> Any | None:
        raise NotImplementedError

    @abc.abstractmethod
    def inventoryItems(self) -> list[Any]:
        raise NotImplementedError

    @abc.abstractmethod
    def nearestEntity(self, predicate: Callable[[Any], bool]) -> Any | None:
        raise NotImplementedError

    # ── Actions ──

    @abc.abstractmethod
    def chat(self, text: str) -> Any:
        raise NotImplementedError

    @abc.abstractmethod
    def activateItem(self) -> Any:
        raise NotImplementedError

    @abc.abstractmethod
    def clickWindow(self, window: Any, slot: int, mouseButton: int = 0, mode: int = 0) -> Any:
        raise NotImplementedError

    @abc.abstractmethod
    def equip(self, item: Any, destination: str = "hand") -> Any:
        raise NotImplementedError

    @abc.abstractmethod
    def look(self, yaw: float, pitch: float, force: bool = True) -> Any:
        raise NotImplementedError

    @abc.abstractmethod
    def attack(self, entity: Any) -> Any:
        raise NotImplementedError

    @abc.abstractmethod
    def quit(self, reason: str = "") -> Any:
        raise NotImplementedError
