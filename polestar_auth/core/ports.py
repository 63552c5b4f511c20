"""
Port definitions (interfaces) for the authentication core.

Ports define the contracts between the flow orchestrator and the outside
world. Infrastructure adapters implement these ports.
"""

from typing import Any, Callable, Optional, Protocol

import httpx

from polestar_auth.core.domain import AuthStep, PkceContext, TokenBundle


class SessionClient(Protocol):
    """
    Port (interface) for the cookie-bearing HTTP session of one attempt.

    Implemented by ProviderSession. One instance belongs to exactly one
    attempt and is closed when the attempt ends, whatever the outcome.
    """

    @property
    def landed_url(self) -> Optional[str]:
        """Final URI (after redirects) of the most recent request."""
        ...

    async def get(self, url: str, *, step: AuthStep) -> httpx.Response:
        """
        GET ``url`` following redirects; non-2xx raises TransportFailure.
        """
        ...

    async def post_form(
        self, url: str, data: dict[str, str], *, step: AuthStep
    ) -> httpx.Response:
        """
        POST a form following redirects; non-2xx raises TransportFailure.
        """
        ...

    async def post(
        self,
        url: str,
        *,
        step: AuthStep,
        data: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        """
        POST without status validation; the caller interprets the status.

        Network errors still raise TransportFailure.
        """
        ...

    async def __aenter__(self) -> "SessionClient": ...

    async def __aexit__(self, *exc_info: Any) -> None: ...


SessionFactory = Callable[[], SessionClient]


class TokenExchanger(Protocol):
    """
    Port (interface) for converting an authorization code into tokens.

    Implemented by DirectTokenExchanger and GatewayTokenExchanger; one is
    selected at configuration time.
    """

    name: str

    async def exchange(
        self, session: SessionClient, code: str, pkce: PkceContext
    ) -> TokenBundle:
        """
        Exchange ``code`` for a TokenBundle.

        Raises:
            ExchangeFailure: If the exchange is rejected or the payload is unusable
            TransportFailure: On network-level errors
        """
        ...
