"""In-game chat commands accepted by the KILLER session from its commander."""
from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Final

from loguru import logger

from blockfleet.engine.primitives import TELEPORT_COMMAND

# chat token asking the bot to send a teleport request to the commander
TELEPORT_TOKEN: Final = "3"


class OperatorCommands:
    """Map chat tokens from authorized commanders to the chat line we answer with.

    Parameters
    ----------
    name:
        Our own username (own chat lines are ignored; also the log tag).
    commanders:
        Player names allowed to command us, compared case-insensitively.
    """

    def __init__(self, name: str, commanders: Iterable[str]):
        self.name = name
        self.commanders = frozenset(c.strip().lower() for c in commanders if c and c.strip())

        self.dispatch: dict[str, Callable[[str], str]] = {
            TELEPORT_TOKEN: self.requestTeleport,
        }

    def authorized(self, username: str) -> bool:
        return username.strip().lower() in self.commanders

    def handle(self, username: str, message: str) -> str | None:
        """Return the chat line to send for 'message', or None to stay quiet."""
        if username == self.name or not self.authorized(username):
            return None

        logger.info("[{}] Command from {}: {}", self.name, username, message)

        action = self.dispatch.get(message.strip().lower())
        if action is None:
            return None

        return action(username)

    def requestTeleport(self, username: str) -> str:
        return TELEPORT_COMMAND.format(username)
