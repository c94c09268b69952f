"""Environment configuration and process-level helpers shared by the cli and tests."""

from __future__ import annotations

import importlib
import os
from collections.abc import Mapping
from typing import Final

from dotenv import dotenv_values
from loguru import logger

from blockfleet.engine.primitives import Role
from blockfleet.engine.protocols import ConnectionFactory
from blockfleet.engine.session import Credentials, SessionConfig, Target, Timings

FLEET_DEFAULT: Final = dict(
    FLEET_IDLE_COUNT="4",
    FLEET_LOGLEVEL="INFO",
    FLEET_LOGDIR="runlogs",
    FLEET_TIMEZONE="UTC",
    KILLER_WEAPON="sword",
)

DEFAULT_PORT: Final = 25565


class ConfigError(ValueError):
    """The environment does not describe a runnable fleet."""


def loadEnvironment(path: str | os.PathLike = ".env") -> dict[str, str]:
    """Defaults, overridden by the .env file, overridden by the real environment."""
    return {**FLEET_DEFAULT, **dotenv_values(path), **os.environ}  # type: ignore


def _get(env: Mapping[str, str | None], key: str) -> str | None:
    val = env.get(key)
    if val is None:
        return None

    val = val.strip()
    return val or None


def _number(env: Mapping[str, str | None], key: str, cast=float):
    val = _get(env, key)
    if val is None:
        return None

    try:
        return cast(val)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {val!r}") from None


def timingsFromEnvironment(env: Mapping[str, str | None]) -> Timings:
    """Production timings with the operator-tunable ones overridden."""
    overrides = {}

    if (delay := _number(env, "FLEET_RECONNECT_DELAY")) is not None:
        overrides["reconnectDelay"] = delay

    if (cap := _number(env, "FLEET_RECONNECT_MAX")) is not None:
        overrides["maxReconnectDelay"] = cap

    if (minutes := _number(env, "FLEET_RESTART_MINUTES")) is not None:
        overrides["restartInterval"] = minutes * 60

    return Timings(**overrides)


def fleetConfigFromEnvironment(env: Mapping[str, str | None]) -> list[SessionConfig]:
    """Build the KILLER config followed by FLEET_IDLE_COUNT idle configs.

    Idle sessions fall back to the killer's host and port when their own are unset.
    """
    host = _get(env, "KILLER_IP")
    username = _get(env, "KILLER_USERNAME")
    if not host:
        raise ConfigError("KILLER_IP is required")

    if not username:
        raise ConfigError("KILLER_USERNAME is required")

    port = _number(env, "KILLER_PORT", int) or DEFAULT_PORT
    timings = timingsFromEnvironment(env)

    configs = [
        SessionConfig(
            credentials=Credentials(username, _get(env, "KILLER_PASSWORD") or ""),
            target=Target(host, port, _get(env, "KILLER_VERSION")),
            role=Role.KILLER,
            label="killer",
            commanders=tuple(filter(None, [_get(env, "KILLER_ALLOWED")])),
            weapon=_get(env, "KILLER_WEAPON") or "sword",
            timings=timings,
        )
    ]

    idleCount = _number(env, "FLEET_IDLE_COUNT", int)
    if idleCount is None:
        idleCount = int(FLEET_DEFAULT["FLEET_IDLE_COUNT"])

    for n in range(1, idleCount + 1):
        prefix = f"IDLE{n}_"
        configs.append(
            SessionConfig(
                credentials=Credentials(
                    _get(env, prefix + "USERNAME") or f"IdleBot{n}",
                    _get(env, prefix + "PASSWORD") or "",
                ),
                target=Target(
                    _get(env, prefix + "IP") or host,
                    _number(env, prefix + "PORT", int) or port,
                    _get(env, prefix + "VERSION"),
                ),
                role=Role.IDLE,
                label=f"idle{n}",
                timings=timings,
            )
        )

    names = [c.name for c in configs]
    if len(set(names)) != len(names):
        raise ConfigError(f"Session usernames must be unique: {names}")

    return configs


def resolveFactory(path: str | None) -> ConnectionFactory:
    """Import a connection factory from 'package.module:callable'."""
    if not path or ":" not in path:
        raise ConfigError("FLEET_CLIENT must look like 'package.module:callable'")

    modulePath, attr = path.split(":", 1)
    try:
        module = importlib.import_module(modulePath)
    except ImportError as e:
        raise ConfigError(f"Can't import client module {modulePath}: {e}") from e

    try:
        factory = getattr(module, attr)
    except AttributeError:
        raise ConfigError(f"{modulePath} has no attribute {attr}") from None

    if not callable(factory):
        raise ConfigError(f"{path} is not callable")

    logger.info("Using game client factory: {}", path)
    return factory
