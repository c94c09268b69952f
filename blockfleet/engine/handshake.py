"""Post-spawn join handshake: open the server menu, pick the game mode, wait for the join broadcast.

Every step is bounded by a timeout. A failed step raises and the whole
sequence is abandoned; the session recovers by reconnecting, never by
retrying part of the sequence.
"""
from __future__ import annotations

import asyncio
from typing import Any, Final

from loguru import logger

from blockfleet.engine.events import Subscriptions
from blockfleet.engine.primitives import isJoinMessage, resolve
from blockfleet.engine.protocols import GameConnection
from blockfleet.engine.session import Timings

# menu slot holding the game mode we join
MENU_SLOT: Final = 14
MENU_MOUSE_BUTTON: Final = 0
MENU_CLICK_MODE: Final = 0


class HandshakeError(Exception):
    """The join handshake could not complete."""


class MenuOpenError(HandshakeError):
    pass


class JoinTimeoutError(HandshakeError):
    pass


class HandshakeSequencer:
    """Runs the join ritual for one session.

    One sequencer lives as long as its session; 'joining' is the
    join-confirmation-pending flag. reset() clears it and detaches any
    listener a step still has on the connection, so the session can drop
    its connection without waiting for the step to unwind.

    Parameters
    ----------
    name:
        Identity used to recognize our own join broadcast (and to tag log lines).
    timings:
        Delays and timeouts for each step.
    """

    def __init__(self, name: str, timings: Timings):
        self.name = name
        self.timings = timings
        self.joining = False

        # listeners of the step in progress
        self.scope = Subscriptions(name)

    def reset(self) -> None:
        self.joining = False
        self.scope.release()

    async def run(self, conn: GameConnection) -> None:
        """Run every step in order. Raises on the first failed step."""
        # let world state settle after spawning
        await asyncio.sleep(self.timings.spawnGrace)

        window = await self.openMenu(conn)
        await self.confirmJoin(conn, window)

        await asyncio.sleep(self.timings.joinSettle)
        logger.info("[{}] Handshake complete", self.name)

    async def openMenu(self, conn: GameConnection) -> Any:
        """Use the held item and wait for the menu window, retrying on timeout."""
        attempts = self.timings.menuAttempts
        for attempt in range(1, attempts + 1):
            logger.info("[{}] Opening menu (attempt {}/{})", self.name, attempt, attempts)

            opened: asyncio.Future = asyncio.get_running_loop().create_future()

            def onOpen(window):
                if not opened.done():
                    opened.set_result(window)

            with self.scope.listening(conn.windowOpenEvent, onOpen):
                await resolve(conn.activateItem())

                try:
                    window = await asyncio.wait_for(opened, self.timings.menuTimeout)
                except TimeoutError:
                    logger.warning(
                        "[{}] Menu did not open on attempt {} (waited {:.1f}s)",
                        self.name,
                        attempt,
                        self.timings.menuTimeout,
                    )
                else:
                    logger.info("[{}] Menu opened: {}", self.name, getattr(window, "title", window))
                    return window

            if attempt < attempts:
                await asyncio.sleep(self.timings.menuRetryDelay)

        raise MenuOpenError(f"menu did not open after {attempts} attempts")

    async def selectOption(self, conn: GameConnection, window: Any) -> None:
        """Click the game-mode slot once the server has finished populating the menu."""
        await asyncio.sleep(self.timings.menuSettle)
        await resolve(conn.clickWindow(window, MENU_SLOT, MENU_MOUSE_BUTTON, MENU_CLICK_MODE))
        logger.info("[{}] Clicked menu slot {}", self.name, MENU_SLOT)

    async def confirmJoin(self, conn: GameConnection, window: Any) -> bool:
        """Select the game mode and wait until the server announces our join.

        The message listener is attached before the click so an early
        broadcast is not missed.
        """
        if self.joining:
            logger.info("[{}] Join already pending, not joining twice", self.name)
            return True

        self.joining = True
        joined: asyncio.Future = asyncio.get_running_loop().create_future()

        def onMessage(text):
            if not joined.done() and isJoinMessage(str(text), self.name):
                joined.set_result(True)

        try:
            with self.scope.listening(conn.messageEvent, onMessage):
                logger.info("[{}] Joining...", self.name)

                await self.selectOption(conn, window)

                try:
                    await asyncio.wait_for(joined, self.timings.joinTimeout)
                except TimeoutError:
                    raise JoinTimeoutError(
                        f"no join broadcast within {self.timings.joinTimeout:.1f}s"
                    ) from None
        finally:
            self.joining = False

        logger.info("[{}] Joined!", self.name)
        return True
