"""
Identity provider configuration.

Holds the deployment-time values the authentication flow consumes:
client id, OAuth base URL, redirect URI and the GraphQL gateway URL.
The core never reads the environment itself; it receives an AuthSettings
value at construction.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal, cast


logger = logging.getLogger(__name__)


# Values registered by the Polestar web client
DEFAULT_CLIENT_ID = "l3oopkc_10"
DEFAULT_OAUTH_BASE_URL = "https://polestarid.eu.polestar.com"
DEFAULT_REDIRECT_URI = "https://www.polestar.com/sign-in-callback"
DEFAULT_GATEWAY_URL = "https://pc-api.polestar.com/eu-north-1/auth"
DEFAULT_REQUEST_TIMEOUT = 15.0

TokenExchangeStrategy = Literal["direct", "gateway"]
SUPPORTED_STRATEGIES: tuple[str, ...] = ("direct", "gateway")


@dataclass(frozen=True)
class AuthSettings:
    """
    Configuration for the identity provider handshake.

    Loaded from environment variables in production; constructed directly in
    tests to point the flow at stub endpoints.
    """

    client_id: str = DEFAULT_CLIENT_ID
    oauth_base_url: str = DEFAULT_OAUTH_BASE_URL
    redirect_uri: str = DEFAULT_REDIRECT_URI
    gateway_url: str = DEFAULT_GATEWAY_URL
    token_exchange: TokenExchangeStrategy = "direct"
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    def __post_init__(self) -> None:
        # frozen: normalise through object.__setattr__
        object.__setattr__(self, "oauth_base_url", self.oauth_base_url.rstrip("/"))
        object.__setattr__(self, "gateway_url", self.gateway_url.rstrip("/"))

    @classmethod
    def from_env(cls) -> "AuthSettings":
        """Load configuration from environment variables."""
        strategy = os.getenv("POLESTAR_TOKEN_EXCHANGE", "direct").strip().lower()
        return cls(
            client_id=os.getenv("POLESTAR_CLIENT_ID", DEFAULT_CLIENT_ID),
            oauth_base_url=os.getenv("POLESTAR_OAUTH_URL", DEFAULT_OAUTH_BASE_URL),
            redirect_uri=os.getenv("POLESTAR_REDIRECT_URI", DEFAULT_REDIRECT_URI),
            gateway_url=os.getenv("POLESTAR_GATEWAY_URL", DEFAULT_GATEWAY_URL),
            token_exchange=cast(TokenExchangeStrategy, strategy),
            request_timeout=float(
                os.getenv("POLESTAR_REQUEST_TIMEOUT", str(DEFAULT_REQUEST_TIMEOUT))
            ),
        )

    @property
    def authorization_endpoint(self) -> str:
        """URL that starts the authorization code flow."""
        return f"{self.oauth_base_url}/as/authorization.oauth2"

    @property
    def token_endpoint(self) -> str:
        """URL of the provider's token endpoint (direct exchange)."""
        return f"{self.oauth_base_url}/as/token.oauth2"

    def resume_endpoint(self, resume_path: str) -> str:
        """URL addressing the step identified by an opaque resume path."""
        return f"{self.oauth_base_url}/as/{resume_path}/resume/as/authorization.ping"

    def validate(self) -> None:
        """Validate required configuration. Call at startup to fail fast."""
        for name in ("client_id", "oauth_base_url", "redirect_uri"):
            if not getattr(self, name):
                raise ValueError(f"{name} must be configured")
        if not self.oauth_base_url.startswith(("http://", "https://")):
            raise ValueError("oauth_base_url must be an http(s) URL")
        if self.token_exchange not in SUPPORTED_STRATEGIES:
            raise ValueError(
                f"Unknown token exchange strategy: {self.token_exchange}. "
                f"Supported: {list(SUPPORTED_STRATEGIES)}"
            )
        if self.token_exchange == "gateway" and not self.gateway_url:
            raise ValueError("gateway_url must be configured for the gateway strategy")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")


@lru_cache()
def get_auth_settings() -> AuthSettings:
    """Get identity provider settings singleton."""
    settings = AuthSettings.from_env()
    logger.info(
        "Loaded identity provider settings",
        extra={
            "oauth_base_url": settings.oauth_base_url,
            "token_exchange": settings.token_exchange,
        },
    )
    return settings
