#!/usr/bin/env python3

import asyncio
import logging
import os
import pathlib
import signal
import sys
from dataclasses import dataclass, field
from typing import Any

import whenever
from loguru import logger

from blockfleet.engine.fleet import FleetSupervisor
from blockfleet.engine.protocols import ConnectionFactory
from blockfleet.engine.session import SessionConfig
from blockfleet.helpers import (
    ConfigError,
    fleetConfigFromEnvironment,
    loadEnvironment,
    resolveFactory,
)


@dataclass(slots=True)
class FleetApp:
    configs: list[SessionConfig]
    factory: ConnectionFactory

    # seconds sessions get to close their connections before the process exits
    shutdownGrace: float = 2.0

    # seconds between fleet status reports in the log (0 disables)
    reportInterval: float = field(
        default_factory=lambda: float(os.getenv("FLEET_REPORT_SECONDS", 300))
    )

    logLevel: str = field(default_factory=lambda: os.getenv("FLEET_LOGLEVEL", "INFO"))
    logDir: str = field(default_factory=lambda: os.getenv("FLEET_LOGDIR", "runlogs"))
    timezone: str = field(default_factory=lambda: os.getenv("FLEET_TIMEZONE", "UTC"))

    fleet: FleetSupervisor = field(init=False)
    exiting: asyncio.Event = field(init=False)

    def __post_init__(self) -> None:
        self.fleet = FleetSupervisor(self.configs, self.factory)
        self.exiting = asyncio.Event()

    def setupLogging(self) -> None:
        now = whenever.ZonedDateTime.now(self.timezone)
        LOGDIR = pathlib.Path(self.logDir) / f"{now.year}" / f"{now.month:02}"
        LOGDIR.mkdir(exist_ok=True, parents=True)
        LOG_FILE_TEMPLATE = str(
            LOGDIR
            / f"blockfleet-{now.year}{now.month:02}{now.day:02}-{now.hour:02}{now.minute:02}{now.second:02}"
        )

        # eventkit reports errors from event listeners through stdlib logging
        logging.basicConfig(
            level=logging.INFO,
            filename=LOG_FILE_TEMPLATE + "-events.log",
            format="%(asctime)s %(message)s",
        )

        logger.remove()
        logger.add(
            sys.stderr,
            colorize=True,
            level=self.logLevel,
            format="<green>{time:HH:mm:ss}</green> <level>{level: <8}</level> {message}",
        )

        # everything (including DEBUG state transitions) also goes to a file for later lookback
        logger.add(sink=LOG_FILE_TEMPLATE + "-fleet.log", level="TRACE", colorize=False)

        logger.info("Logging session with prefix: {}", LOG_FILE_TEMPLATE)

    def asyncExceptionHandler(self, loop, context: dict[str, Any]) -> None:
        """Last stop for errors nothing awaited: log them and keep running."""
        exc = context.get("exception")
        message = context.get("message", "Unhandled error")
        if exc is not None:
            logger.opt(exception=exc).error("Uncaught async failure: {}", message)
        else:
            logger.error("Uncaught async failure: {}", message)

    def stop(self, reason: str = "stop requested") -> None:
        if not self.exiting.is_set():
            logger.warning("Received {}, shutting down all sessions...", reason)

        self.exiting.set()

    async def reporter(self) -> None:
        while True:
            await asyncio.sleep(self.reportInterval)
            self.fleet.report()

    async def runall(self) -> None:
        loop = asyncio.get_running_loop()
        loop.set_exception_handler(self.asyncExceptionHandler)

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop, sig.name)
            except NotImplementedError:
                # no loop signal support (Windows); Ctrl-C arrives as KeyboardInterrupt instead
                pass

        logger.info(
            "Starting multi-session fleet: {}",
            ", ".join(f"{c.label or c.role.value}={c.name}" for c in self.configs),
        )

        # sessions keep connecting while we wait for a stop request
        starting = asyncio.create_task(self.fleet.start(), name="fleet start")
        reporter = asyncio.create_task(self.reporter()) if self.reportInterval > 0 else None

        try:
            await self.exiting.wait()
        finally:
            if reporter:
                reporter.cancel()

            await self.fleet.shutdown(self.shutdownGrace)

            if not starting.done():
                starting.cancel()
                await asyncio.wait([starting], timeout=self.shutdownGrace)

            logger.info("Goodbye.")


def main() -> int:
    env = loadEnvironment(os.getenv("FLEET_ENV_FILE", ".env"))

    # settings from the .env file are visible to os.getenv() readers below
    for key, val in env.items():
        if val is not None:
            os.environ.setdefault(key, val)

    try:
        configs = fleetConfigFromEnvironment(env)
        factory = resolveFactory(env.get("FLEET_CLIENT"))
    except ConfigError as e:
        logger.error("Configuration error: {}", e)
        return 1

    app = FleetApp(configs, factory)
    app.setupLogging()

    try:
        asyncio.run(app.runall())
    except KeyboardInterrupt:
        logger.warning("Interrupted. Goodbye.")

    return 0


if __name__ == "__main__":
    sys.exit(main())
