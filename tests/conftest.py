"""Shared test fixtures for blockfleet test suite.

FakeConnection provides a test double for a game-client adapter, allowing
headless testing of the session engine without a live game server.
"""

import asyncio
import math
from dataclasses import dataclass, field
from typing import Any

import pytest

from blockfleet.engine.client import GameClient
from blockfleet.engine.primitives import Role
from blockfleet.engine.session import Credentials, SessionConfig, Target, Timings


# ── Lightweight stubs for world objects used in tests ──


@dataclass
class Pos:
    x: float = 0.0
    y: float = 64.0
    z: float = 0.0


@dataclass
class FakeItem:
    name: str = "diamond_sword"


@dataclass
class FakeEntity:
    position: Pos = field(default_factory=Pos)
    type: str = "mob"
    name: str = "zombie"
    height: float = 1.95


@dataclass
class FakeWindow:
    title: str = "Server Selector"


def fastTimings(**overrides) -> Timings:
    """Production timing structure with every wait shrunk to milliseconds."""
    values = dict(
        reconnectDelay=0.01,
        connectTimeout=0.5,
        maxReconnectDelay=0.05,
        restartInterval=60.0,
        spawnGrace=0.0,
        menuTimeout=0.05,
        menuAttempts=3,
        menuRetryDelay=0.01,
        menuSettle=0.0,
        joinTimeout=0.1,
        joinSettle=0.0,
        combatIdle=0.005,
        combatPace=0.005,
        combatErrorPause=0.005,
        equipSettle=0.0,
    )
    values.update(overrides)
    return Timings(**values)


async def waitFor(predicate, timeout: float = 1.0, interval: float = 0.005) -> None:
    """Poll 'predicate' until it is true or fail the test after 'timeout' seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError(f"condition not reached within {timeout}s")

        await asyncio.sleep(interval)


class FakeConnection(GameClient):
    """Test double for a game-client adapter.

    Opening the menu and joining are scripted: the menu window opens on
    activation number 'openMenuOn' (0 = never) and clicking the menu
    broadcasts our own join message when 'joinOnClick' is set.
    """

    def __init__(self, credentials: Credentials, target: Target):
        super().__init__(credentials, target)

        self.sent: list[str] = []
        self.clicks: list[tuple] = []
        self.looks: list[tuple[float, float, bool]] = []
        self.attacks: list[Any] = []
        self.equipped: list[tuple[Any, str]] = []
        self.quitReasons: list[str] = []
        self.activations = 0

        self.items: list[FakeItem] = [FakeItem("bread"), FakeItem("diamond_sword")]
        self.held: FakeItem | None = None
        self.pos = Pos()
        self.entities: list[FakeEntity] = []

        self.window = FakeWindow()
        self.openMenuOn = 1
        self.joinOnClick = True
        self.joinText = f"[+] {credentials.username}"

    # ── World state ──

    @property
    def position(self) -> Pos:
        return self.pos

    @property
    def heldItem(self) -> FakeItem | None:
        return self.held

    def inventoryItems(self) -> list[FakeItem]:
        return list(self.items)

    def nearestEntity(self, predicate):
        candidates = [e for e in self.entities if predicate(e)]
        if not candidates:
            return None

        return min(
            candidates,
            key=lambda e: math.dist(
                (e.position.x, e.position.y, e.position.z), (self.pos.x, self.pos.y, self.pos.z)
            ),
        )

    # ── Actions ──

    def chat(self, text: str) -> None:
        self.sent.append(text)

    def activateItem(self) -> None:
        self.activations += 1
        if self.openMenuOn and self.activations >= self.openMenuOn:
            asyncio.get_running_loop().call_soon(self.windowOpenEvent.emit, self.window)

    def clickWindow(self, window, slot, mouseButton=0, mode=0) -> None:
        self.clicks.append((window, slot, mouseButton, mode))
        if self.joinOnClick:
            asyncio.get_running_loop().call_soon(self.messageEvent.emit, self.joinText)

    def equip(self, item, destination="hand") -> None:
        self.equipped.append((item, destination))
        self.held = item

    def look(self, yaw, pitch, force=True) -> None:
        self.looks.append((yaw, pitch, force))

    def attack(self, entity) -> None:
        self.attacks.append(entity)

    def quit(self, reason="") -> None:
        self.quitReasons.append(reason)

    # ── Test helpers ──

    def admit(self) -> None:
        """Server accepts the login and spawns the player."""
        self.loginEvent.emit()
        self.spawnEvent.emit()


class FakeFactory:
    """Connection factory recording every handle it creates.

    The first 'failures' calls raise ConnectionRefusedError.
    """

    def __init__(self, failures: int = 0, setup=None):
        self.failures = failures
        self.setup = setup
        self.calls = 0
        self.connections: list[FakeConnection] = []

    def __call__(self, credentials: Credentials, target: Target) -> FakeConnection:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionRefusedError(f"{target.host}:{target.port} refused")

        conn = FakeConnection(credentials, target)
        if self.setup:
            self.setup(conn)

        self.connections.append(conn)
        return conn

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


def makeConfig(
    username: str = "Bot",
    role: Role = Role.IDLE,
    commanders: tuple[str, ...] = (),
    **timings,
) -> SessionConfig:
    return SessionConfig(
        credentials=Credentials(username, "hunter2"),
        target=Target("play.example.net", 25565),
        role=role,
        label=role.value,
        commanders=commanders,
        timings=fastTimings(**timings),
    )


# ── Fixtures ──


@pytest.fixture
def timings() -> Timings:
    return fastTimings()


@pytest.fixture
def factory() -> FakeFactory:
    return FakeFactory()


@pytest.fixture
def conn() -> FakeConnection:
    """Connected FakeConnection for an IDLE-style identity."""
    return FakeConnection(Credentials("Bot", "hunter2"), Target("play.example.net"))


@pytest.fixture
def killerConfig() -> SessionConfig:
    return makeConfig("Slayer", Role.KILLER, commanders=("Boss",))


@pytest.fixture
def idleConfig() -> SessionConfig:
    return makeConfig("Idler", Role.IDLE)
