"""Lifecycle state machine for one managed session.

idle -> connecting -> handshaking -> active -> reconnecting -> connecting -> ...
shutdown is terminal and reachable from every state.

Every failure (disconnect, kick, transport error, failed handshake, failing
to even open a connection) and every planned restart goes through
scheduleReconnect(): drop the connection, back off, connect again.
"""
from __future__ import annotations

import asyncio
import functools
import inspect
import itertools
from typing import Any, Final

from loguru import logger

from blockfleet.engine.combat import CombatEngine
from blockfleet.engine.commands import OperatorCommands
from blockfleet.engine.events import Subscriptions
from blockfleet.engine.handshake import HandshakeSequencer
from blockfleet.engine.primitives import (
    LOGIN_COMMAND,
    SessionState,
    as_duration,
    reconnectDelay,
    resolve,
)
from blockfleet.engine.protocols import ConnectionFactory, GameConnection
from blockfleet.engine.session import SessionConfig
from blockfleet.engine.timers import NamedTimers

# timers tied to one connection; all of them die with it
CONNECTION_TIMERS: Final = ("restart", "handshake", "combat")

# longest we wait for a graceful close before connecting again
CLOSE_TIMEOUT: Final = 5.0


class SessionSupervisor:
    """Keeps one identity connected, joined, and running its role behavior.

    Parameters
    ----------
    config:
        Identity, target, role, and timings for this session.
    factory:
        Opens a new connection handle for (credentials, target). Called again
        on every reconnect; a handle is never reused.
    """

    def __init__(self, config: SessionConfig, factory: ConnectionFactory):
        self.config = config
        self.factory = factory
        self.name = config.name
        self.timings = config.timings

        self.state = SessionState.IDLE
        self.reconnectAttempts = 0

        # set from the moment a connection attempt starts until login (or failure)
        self.reconnecting = False

        self.conn: GameConnection | None = None
        self.subs = Subscriptions(self.name)
        self.timers = NamedTimers(owner=self.name)
        self._closing: asyncio.Future | None = None
        self._connecting: asyncio.Future | None = None
        self._chatSeq = itertools.count()

        self.handshake = HandshakeSequencer(self.name, self.timings)

        self.combat: CombatEngine | None = None
        self.commands: OperatorCommands | None = None
        if config.privileged:
            self.combat = CombatEngine(self.name, self.timings, config.weapon)
            self.commands = OperatorCommands(self.name, config.commanders)

    @property
    def lastHeldItem(self) -> str | None:
        return self.combat.lastHeldItem if self.combat else None

    @property
    def joining(self) -> bool:
        return self.handshake.joining

    def transition(self, state: SessionState) -> None:
        if state is not self.state:
            logger.debug("[{}] {} -> {}", self.name, self.state.value, state.value)

        self.state = state

    def _current(self, conn: GameConnection) -> bool:
        """Events from a handle we already dropped are ignored."""
        return conn is self.conn and self.state is not SessionState.SHUTDOWN

    # ------------------------------------------------------------------
    # Connecting
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Open a new connection. Returns False if the request was dropped or failed."""
        if self.state is SessionState.SHUTDOWN:
            logger.debug("[{}] Shut down, not starting", self.name)
            return False

        if self.reconnecting or self.state not in (SessionState.IDLE, SessionState.RECONNECTING):
            logger.info("[{}] Already connecting ({}), skipping...", self.name, self.state.value)
            return False

        self.reconnecting = True
        self.timers.cancel("reconnect")

        # the previous handle must be fully torn down before a new one exists
        self.release()
        await self._finishClose()

        if self.state is SessionState.SHUTDOWN:
            self.reconnecting = False
            return False

        self.transition(SessionState.CONNECTING)
        target = self.config.target
        logger.info(
            "[{}] Connecting to {}:{}... (attempt #{})",
            self.name,
            target.host,
            target.port,
            self.reconnectAttempts + 1,
        )

        try:
            conn = await self._connect()
        except asyncio.CancelledError:
            # shutdown() abandons a connection still being opened
            if self.state is not SessionState.SHUTDOWN or asyncio.current_task().cancelling():
                raise

            logger.info("[{}] Connection attempt abandoned", self.name)
            return False
        except TimeoutError:
            logger.error(
                "[{}] No connection after {}", self.name, as_duration(self.timings.connectTimeout)
            )
            self.reconnecting = False
            self.scheduleReconnect("connection setup timed out")
            return False
        except Exception as e:
            logger.error("[{}] Failed to create connection: {}", self.name, e)
            self.reconnecting = False
            self.scheduleReconnect(f"connection setup failed ({e})")
            return False

        if self.state is not SessionState.CONNECTING:
            # shut down while the factory was still opening the connection
            self._closeHandle(conn, "Shutting down")
            await self._finishClose()
            return False

        self.conn = conn
        self.attach(conn)
        return True

    async def _connect(self) -> GameConnection:
        """Ask the factory for a new handle, waiting at most connectTimeout."""
        created = self.factory(self.config.credentials, self.config.target)
        opening = asyncio.ensure_future(resolve(created))
        self._connecting = opening
        try:
            return await asyncio.wait_for(opening, self.timings.connectTimeout)
        finally:
            if self._connecting is opening:
                self._connecting = None

    def attach(self, conn: GameConnection) -> None:
        """Subscribe to the lifecycle events of 'conn' for as long as it is our handle."""
        listen = self.subs.add

        listen(conn.loginEvent, functools.partial(self._onLogin, conn))
        listen(conn.spawnEvent, functools.partial(self._onSpawn, conn))
        listen(conn.disconnectedEvent, functools.partial(self._onDisconnected, conn))
        listen(conn.kickedEvent, functools.partial(self._onKicked, conn))
        listen(conn.errorEvent, functools.partial(self._onError, conn))

        if self.commands:
            listen(conn.chatEvent, functools.partial(self._onChat, conn))

    # ------------------------------------------------------------------
    # Connection events
    # ------------------------------------------------------------------

    def _onLogin(self, conn: GameConnection) -> None:
        if not self._current(conn) or self.state is not SessionState.CONNECTING:
            return

        logger.info("[{}] Logged into server", self.name)
        self.transition(SessionState.HANDSHAKING)
        self.say(LOGIN_COMMAND.format(self.config.credentials.password))

        self.reconnectAttempts = 0
        self.reconnecting = False
        self.timers.cancel("reconnect")

    def _onSpawn(self, conn: GameConnection) -> None:
        if not self._current(conn):
            return

        # only the first spawn after login starts the handshake (respawns are ignored)
        if self.state is not SessionState.HANDSHAKING or self.timers.active("handshake"):
            return

        logger.info("[{}] Spawned, starting join handshake", self.name)
        self.timers.create("handshake", self._handshake(conn))

    def _onDisconnected(self, conn: GameConnection) -> None:
        if self._current(conn):
            logger.warning("[{}] Disconnected", self.name)
            self.scheduleReconnect("disconnected")

    def _onKicked(self, conn: GameConnection, reason: Any = "") -> None:
        if self._current(conn):
            logger.warning("[{}] Kicked: {}", self.name, reason)
            self.scheduleReconnect("kicked")

    def _onError(self, conn: GameConnection, error: Any = None) -> None:
        if self._current(conn):
            logger.warning("[{}] Connection error: {}", self.name, error)
            self.scheduleReconnect("connection error")

    def _onChat(self, conn: GameConnection, username: str, message: str) -> None:
        if not self._current(conn) or not self.commands:
            return

        if reply := self.commands.handle(username, message):
            self.say(reply)
            logger.info("[{}] Sent {}", self.name, reply)

    def say(self, text: str) -> None:
        """Send a chat line on the current connection (fire and forget)."""
        if self.conn is None:
            return

        try:
            result = self.conn.chat(text)
        except Exception as e:
            logger.error("[{}] Chat failed: {}", self.name, e)
            return

        if inspect.isawaitable(result):
            self.timers.create(f"chat#{next(self._chatSeq)}", resolve(result))

    # ------------------------------------------------------------------
    # Handshake and role behavior
    # ------------------------------------------------------------------

    async def _handshake(self, conn: GameConnection) -> None:
        try:
            await self.handshake.run(conn)
        except Exception as e:
            logger.error("[{}] Join handshake failed: {}", self.name, e)
            if self._current(conn):
                self.scheduleReconnect("handshake failed")

            return

        if self._current(conn) and self.state is SessionState.HANDSHAKING:
            self.activate(conn)

    def activate(self, conn: GameConnection) -> None:
        self.transition(SessionState.ACTIVE)
        self.timers.schedule("restart", self.timings.restartInterval, self.plannedRestart)

        if self.combat:
            self.timers.create("combat", self.combat.run(conn, self.combatAllowed))

        logger.info("[{}] All systems online ({})", self.name, self.config.role.value)

    def combatAllowed(self) -> bool:
        return self.state is SessionState.ACTIVE and not self.reconnecting

    def plannedRestart(self) -> None:
        logger.info(
            "[{}] Scheduled restart ({} refresh)...",
            self.name,
            as_duration(self.timings.restartInterval),
        )
        self.scheduleReconnect("planned restart")

    # ------------------------------------------------------------------
    # Reconnecting and teardown
    # ------------------------------------------------------------------

    def scheduleReconnect(self, reason: str) -> None:
        """Drop the current connection and arm the single reconnect timer."""
        if self.state is SessionState.SHUTDOWN:
            return

        self.timers.cancel("reconnect")

        delay = reconnectDelay(
            self.reconnectAttempts, self.timings.reconnectDelay, self.timings.maxReconnectDelay
        )
        self.reconnectAttempts += 1

        logger.warning(
            "[{}] {}: reconnecting in {} (attempt #{})",
            self.name,
            reason,
            as_duration(delay),
            self.reconnectAttempts,
        )

        self.transition(SessionState.RECONNECTING)
        self.release()
        self.reconnecting = False

        self.timers.schedule("reconnect", delay, self._reconnectDue)

    async def _reconnectDue(self) -> None:
        if self.conn is None and not self.reconnecting:
            logger.info("[{}] Attempting to reconnect...", self.name)
            await self.start()

    def release(self, reason: str = "Restarting...") -> None:
        """Stop role behavior and drop the current connection handle (if any)."""
        if self.combat:
            self.combat.stop()

        self.handshake.reset()

        for name in CONNECTION_TIMERS:
            self.timers.cancel(name)

        conn, self.conn = self.conn, None
        if conn is None:
            return

        released = self.subs.release()
        logger.debug("[{}] Dropped connection ({} listeners detached)", self.name, released)

        self._closeHandle(conn, reason)

    def _closeHandle(self, conn: GameConnection, reason: str) -> None:
        try:
            result = conn.quit(reason)
        except Exception as e:
            logger.debug("[{}] Ignoring close error: {}", self.name, e)
            return

        if inspect.isawaitable(result):
            self._closing = asyncio.ensure_future(result)

    async def _finishClose(self) -> None:
        closing, self._closing = self._closing, None
        if closing is None:
            return

        try:
            await asyncio.wait_for(closing, CLOSE_TIMEOUT)
        except Exception as e:
            logger.debug("[{}] Ignoring close error: {}", self.name, e)

    async def shutdown(self) -> None:
        """Stop for good: cancel every timer and close the connection."""
        if self.state is SessionState.SHUTDOWN:
            return

        logger.info("[{}] Shutting down...", self.name)
        self.transition(SessionState.SHUTDOWN)

        self.timers.cancelAll()
        if self._connecting is not None:
            self._connecting.cancel()

        self.release("Shutting down")
        self.reconnecting = False

        await self._finishClose()

    def status(self) -> dict[str, Any]:
        return dict(
            name=self.name,
            role=self.config.role.value,
            state=self.state.value,
            attempts=self.reconnectAttempts,
            timers=self.timers.names(),
            weapon=self.lastHeldItem,
        )
