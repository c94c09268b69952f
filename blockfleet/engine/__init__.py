"""blockfleet engine layer — session lifecycle logic with no process or client dependency.

This package contains the testable core of blockfleet.
All modules use ``from __future__ import annotations`` and modern
Python typing (``str | None``, ``@dataclass(slots=True)``, etc.).

Modules
-------
primitives
    Pure types, constants, and utility functions (stdlib-only).
    - ``SessionState``, ``Role``: lifecycle states and session roles
    - ``reconnectDelay``: capped exponential backoff (base * 1.5**attempt)
    - ``isJoinMessage``: recognizes our own "[+] name" join broadcast (with tier markers)
    - ``resolve``: await a client result only if it is awaitable

session
    Write-once configuration: ``Credentials``, ``Target``, ``Timings``, ``SessionConfig``

timers
    ``NamedTimers``: at most one live background task per name per session

events
    ``Subscriptions``: eventkit listeners scoped to one connection handle

client / protocols
    ``GameClient`` base class (eventkit events) for protocol adapters and the
    ``GameConnection`` / ``ConnectionFactory`` protocols the engine depends on

handshake
    ``HandshakeSequencer``: open menu -> select game mode -> confirm join, each step bounded

combat
    ``CombatEngine``: nearest-mob targeting loop; ``aimAngles`` instant look math

commands
    ``OperatorCommands``: chat tokens accepted from the authorized commander

supervisor
    ``SessionSupervisor``: reconnecting state machine for one session

fleet
    ``FleetSupervisor``: one killer plus idle sessions, isolated from each other
"""

from blockfleet.engine.client import GameClient
from blockfleet.engine.fleet import FleetSupervisor
from blockfleet.engine.primitives import Role, SessionState, reconnectDelay
from blockfleet.engine.session import Credentials, SessionConfig, Target, Timings
from blockfleet.engine.supervisor import SessionSupervisor

__all__ = [
    "Credentials",
    "FleetSupervisor",
    "GameClient",
    "Role",
    "SessionConfig",
    "SessionState",
    "SessionSupervisor",
    "Target",
    "Timings",
    "reconnectDelay",
]
