"""Pure types, constants, and utility functions — no external dependencies beyond stdlib."""

from __future__ import annotations

import enum
import functools
import inspect
import math
import re
from typing import Any, Final, Protocol, TypeAlias

# every session logs in with this chat command right after the login event
LOGIN_COMMAND: Final = "/login {}"

# "request teleport to me" is sent back to the commander with this
TELEPORT_COMMAND: Final = "/tpa {}"

# Server broadcast when a player lands in the game world.
# Ranked players get their tier marker between the join marker and their name.
JOIN_MARKER: Final = "[+]"
JOIN_TIER_MARKERS: Final = ("[VOTER]", "[PRO]", "[LEGEND]")

# growth factor for reconnect backoff
BACKOFF_MULTIPLIER: Final = 1.5

Seconds: TypeAlias = float
Radians: TypeAlias = float


class SessionState(enum.Enum):
    """Lifecycle states of one managed session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    ACTIVE = "active"
    RECONNECTING = "reconnecting"
    SHUTDOWN = "shutdown"


class Role(enum.Enum):
    """KILLER runs the combat loop and obeys the commander; IDLE only stays online."""

    KILLER = "killer"
    IDLE = "idle"


class Point(Protocol):
    x: float
    y: float
    z: float


def reconnectDelay(attempt: int, base: Seconds, cap: Seconds) -> Seconds:
    """Exponential backoff for reconnect attempt number 'attempt' (0-based), capped at 'cap'."""
    # float overflow is possible for very large attempt counts, but the cap wins long before that
    try:
        return min(base * BACKOFF_MULTIPLIER**attempt, cap)
    except OverflowError:
        return cap


@functools.lru_cache(maxsize=32)
def joinPattern(username: str) -> re.Pattern:
    """Regex matching a join broadcast for exactly 'username'.

    Matches "[+] name" and "[+] [TIER] name" for each known tier marker.
    The name must not continue into a longer name ("[+] Bobby" is not a join of "Bob").
    """
    tiers = "|".join(re.escape(t) for t in JOIN_TIER_MARKERS)
    return re.compile(
        rf"{re.escape(JOIN_MARKER)} (?:(?:{tiers}) )?{re.escape(username)}(?![A-Za-z0-9_])"
    )


def isJoinMessage(text: str, username: str) -> bool:
    """True if 'text' announces that 'username' joined."""
    if not username:
        return False

    return joinPattern(username).search(text) is not None


def distance(a: Point, b: Point) -> float:
    return math.sqrt((a.x - b.x) ** 2 + (a.y - b.y) ** 2 + (a.z - b.z) ** 2)


async def resolve(result: Any) -> Any:
    """Await 'result' if the client handed back an awaitable, else return it unchanged.

    Client adapters may implement actions as plain methods or as coroutines.
    """
    if inspect.isawaitable(result):
        return await result

    return result


def as_duration(seconds):
    """Converts the given seconds into a human-readable time format"""

    # Calculate days, hours, minutes and seconds
    days, remainder = divmod(seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)

    # Create a list to store the formatted time units
    time_units = []

    if days > 0:
        time_units.append(f"{days:.0f} d")

    if hours > 0:
        time_units.append(f"{hours:.0f} hr")

    if minutes > 0:
        time_units.append(f"{minutes:.0f} min")

    if seconds > 0 or not time_units:
        time_units.append(f"{seconds:.2f} s")

    return " ".join(time_units)
