"""TickTick command-line client: OAuth token lifecycle and credential broker."""

__version__ = "0.1.0"
