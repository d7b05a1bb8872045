"""Configuration management for the OAuth broker.

Secrets are supplied at deployment time through environment variables and
are never accepted from request payloads.
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class BrokerSettings(BaseSettings):
    """Broker configuration settings.

    Attributes:
        app_name: Application name
        debug: Debug mode flag
        client_id: TickTick app client ID injected upstream
        client_secret: TickTick app client secret injected upstream
        api_key: If set, callers must send it in the ``x-broker-key`` header
        token_url: TickTick OAuth token endpoint
        timeout_seconds: Timeout for the upstream token request
        host: Server host address
        port: Server port number
    """

    app_name: str = "TickTick OAuth Broker"
    debug: bool = False

    # Confidential credentials (deployment-time secrets)
    client_id: str = ""
    client_secret: str = ""
    api_key: Optional[str] = None

    # Upstream configuration
    token_url: str = "https://ticktick.com/oauth/token"
    timeout_seconds: float = 15.0

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8787

    class Config:
        """Pydantic configuration."""
        env_prefix = "BROKER_"
        case_sensitive = False

    @property
    def has_credentials(self) -> bool:
        """Whether both halves of the confidential client pair are configured."""
        return bool(self.client_id and self.client_secret)


@lru_cache
def get_settings() -> BrokerSettings:
    """Get the process-wide broker settings (FastAPI dependency)."""
    settings = BrokerSettings()
    if not settings.has_credentials:
        logger.warning("BROKER_CLIENT_ID / BROKER_CLIENT_SECRET are not set")
    return settings
