"""blockfleet: keep a fleet of game-client sessions connected, joined, and busy."""

__version__ = "0.1.0"
