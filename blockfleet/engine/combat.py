"""Combat loop for the KILLER session: face the nearest mob in reach and hit it.

Looking is instantaneous (no turning animation): angles are computed from
positions and sent with force=True.
"""
from __future__ import annotations

import asyncio
import math
from collections.abc import Callable, Iterable
from typing import Any, Final

from loguru import logger

from blockfleet.engine.primitives import Point, Radians, distance, resolve
from blockfleet.engine.protocols import GameConnection
from blockfleet.engine.session import Timings

# entity category we attack
HOSTILE_TYPE: Final = "mob"

# targets farther than this (blocks) are ignored
ENGAGE_RADIUS: Final = 6.0

# player eye height above feet position
EYE_HEIGHT: Final = 1.62


def aimAngles(viewer: Point, target: Point, targetHeight: float) -> tuple[Radians, Radians]:
    """Return (yaw, pitch) to look from 'viewer' eyes at the middle of 'target'.

    Yaw follows the client convention where yaw 0 faces -z, so yaw = atan2(-dx, -dz).
    Pitch is positive upward and clamped to straight up/down.
    """
    dx = target.x - viewer.x
    dy = (target.y + targetHeight / 2) - (viewer.y + EYE_HEIGHT)
    dz = target.z - viewer.z

    horizontal = math.sqrt(dx * dx + dz * dz)

    yaw = math.atan2(-dx, -dz)
    pitch = math.atan2(dy, horizontal)

    return yaw, max(-math.pi / 2, min(math.pi / 2, pitch))


def findItem(items: Iterable[Any], name: str) -> Any | None:
    """First item whose name contains 'name' (case-insensitive)."""
    needle = name.lower().strip()
    if not needle:
        return None

    for item in items:
        if needle in str(getattr(item, "name", "")).lower():
            return item

    return None


def isHostile(entity: Any) -> bool:
    return getattr(entity, "type", None) == HOSTILE_TYPE


class CombatEngine:
    """Attack loop run by the KILLER session while it is active.

    The loop is cooperative: 'running' is checked before every iteration
    along with the session's own 'shouldContinue' predicate, and the owning
    session also cancels the task when it leaves the active state.
    """

    def __init__(self, name: str, timings: Timings, weapon: str = "sword"):
        self.name = name
        self.timings = timings
        self.weapon = weapon

        self.running = False
        self.lastHeldItem: str | None = None

    def stop(self) -> None:
        if self.running:
            logger.info("[{}] Stopped attacking", self.name)

        self.running = False

    async def equipWeapon(self, conn: GameConnection) -> bool:
        """Hold the configured weapon. Not having one is not an error."""
        item = findItem(conn.inventoryItems(), self.weapon)
        if item is None:
            logger.warning("[{}] No '{}' found in inventory", self.name, self.weapon)
            return False

        try:
            await resolve(conn.equip(item, "hand"))
            await asyncio.sleep(self.timings.equipSettle)
        except Exception as e:
            logger.warning("[{}] Failed to equip {}: {}", self.name, item.name, e)
            return False

        held = conn.heldItem
        if held is None or held.name != item.name:
            return False

        self.lastHeldItem = held.name
        logger.info("[{}] Equipped {}", self.name, held.name)
        return True

    async def step(self, conn: GameConnection) -> bool:
        """One targeting pass. Returns True if we attacked something."""
        target = conn.nearestEntity(isHostile)
        if target is None or distance(conn.position, target.position) > ENGAGE_RADIUS:
            await asyncio.sleep(self.timings.combatIdle)
            return False

        yaw, pitch = aimAngles(conn.position, target.position, target.height)
        await resolve(conn.look(yaw, pitch, True))
        await resolve(conn.attack(target))

        await asyncio.sleep(self.timings.combatPace)
        return True

    async def run(self, conn: GameConnection, shouldContinue: Callable[[], bool]) -> None:
        if self.running:
            logger.info("[{}] Already attacking", self.name)
            return

        self.running = True
        try:
            try:
                equipped = await self.equipWeapon(conn)
            except Exception as e:
                logger.error("[{}] Inventory unavailable: {}", self.name, e)
                equipped = False

            if equipped:
                logger.info("[{}] Started attacking with {}", self.name, self.lastHeldItem)
            else:
                logger.warning("[{}] No weapon equipped, attacking anyway", self.name)

            while self.running and shouldContinue():
                try:
                    await self.step(conn)
                except Exception as e:
                    logger.error("[{}] Combat error: {}", self.name, e)
                    await asyncio.sleep(self.timings.combatErrorPause)
        finally:
            self.running = False
            logger.info("[{}] Combat loop ended", self.name)
