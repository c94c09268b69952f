"""The full set of managed sessions: one KILLER plus the IDLE sessions."""
from __future__ import annotations

import asyncio
from collections.abc import Iterable

from loguru import logger

from blockfleet.engine.primitives import Role, Seconds
from blockfleet.engine.protocols import ConnectionFactory
from blockfleet.engine.session import SessionConfig
from blockfleet.engine.supervisor import SessionSupervisor


class FleetSupervisor:
    """Owns every SessionSupervisor for the life of the process.

    Sessions are independent: a failure inside one is logged and never
    reaches the others or the fleet itself.
    """

    def __init__(self, configs: Iterable[SessionConfig], factory: ConnectionFactory):
        self.sessions: list[SessionSupervisor] = [
            SessionSupervisor(config, factory) for config in configs
        ]

    @property
    def killer(self) -> SessionSupervisor | None:
        for session in self.sessions:
            if session.config.role is Role.KILLER:
                return session

        return None

    @property
    def idlers(self) -> list[SessionSupervisor]:
        return [s for s in self.sessions if s.config.role is Role.IDLE]

    def _logFailures(self, what: str, results: list) -> None:
        for session, result in zip(self.sessions, results):
            if isinstance(result, BaseException):
                logger.opt(exception=result).error("[{}] {} failed", session.name, what)

    async def start(self) -> None:
        logger.info(
            "Starting fleet: {} killer, {} idle",
            1 if self.killer else 0,
            len(self.idlers),
        )

        results = await asyncio.gather(
            *[session.start() for session in self.sessions], return_exceptions=True
        )
        self._logFailures("Start", results)

    async def shutdown(self, grace: Seconds = 2.0) -> None:
        """Shut every session down, waiting at most 'grace' seconds for connections to close."""
        logger.info("Shutting down {} sessions...", len(self.sessions))

        pending = asyncio.gather(
            *[session.shutdown() for session in self.sessions], return_exceptions=True
        )

        try:
            results = await asyncio.wait_for(pending, grace)
        except TimeoutError:
            logger.warning("Sessions still closing after {:.1f}s, giving up on them", grace)
            return

        self._logFailures("Shutdown", results)

    def report(self) -> None:
        for session in self.sessions:
            status = session.status()
            logger.info(
                "[{name}] {role:<6} {state:<12} attempts={attempts} timers={timers} weapon={weapon}",
                **status,
            )
