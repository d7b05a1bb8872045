"""OAuth broker service.

A stateless FastAPI app that injects the confidential TickTick client
credentials into code-exchange and refresh requests from CLI installs that
do not hold a client secret.
"""

from ticktick_cli import __version__

__all__ = ["__version__"]
