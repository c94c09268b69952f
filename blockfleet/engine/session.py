"""Write-once session configuration for engine modules."""
from __future__ import annotations

import dataclasses

from blockfleet.engine.primitives import Role, Seconds


@dataclasses.dataclass(slots=True, frozen=True)
class Credentials:
    username: str
    password: str = ""


@dataclasses.dataclass(slots=True, frozen=True)
class Target:
    host: str
    port: int = 25565

    # protocol version string handed to the client (None lets the client negotiate)
    version: str | None = None


@dataclasses.dataclass(slots=True, frozen=True)
class Timings:
    """Every delay and timeout the session engine waits on.

    Defaults are the production values. Tests shrink them to milliseconds.
    """

    # reconnect backoff: base * 1.5**attempt, capped
    reconnectDelay: Seconds = 10.0
    maxReconnectDelay: Seconds = 120.0

    # longest a connection factory may take to hand back a handle
    connectTimeout: Seconds = 30.0

    # planned refresh of a healthy session
    restartInterval: Seconds = 30 * 60.0

    # handshake
    spawnGrace: Seconds = 1.0
    menuTimeout: Seconds = 5.0
    menuAttempts: int = 3
    menuRetryDelay: Seconds = 2.0
    menuSettle: Seconds = 3.0
    joinTimeout: Seconds = 15.0
    joinSettle: Seconds = 5.0

    # combat loop pacing
    combatIdle: Seconds = 0.1
    combatPace: Seconds = 0.5
    combatErrorPause: Seconds = 0.5
    equipSettle: Seconds = 0.2


@dataclasses.dataclass(slots=True)
class SessionConfig:
    """Identity, target, and behavior settings for one managed session.

    These values are set once from the environment at startup and read
    by the supervisor on every (re)connect.
    """

    credentials: Credentials
    target: Target
    role: Role = Role.IDLE

    # label used in fleet reports ("killer", "idle1", ...)
    label: str = ""

    # chat commands are only accepted from these players (KILLER only)
    commanders: tuple[str, ...] = ()

    # fuzzy inventory name of the weapon the KILLER holds
    weapon: str = "sword"

    timings: Timings = dataclasses.field(default_factory=Timings)

    @property
    def name(self) -> str:
        return self.credentials.username

    @property
    def privileged(self) -> bool:
        return self.role is Role.KILLER
