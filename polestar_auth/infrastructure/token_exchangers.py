"""
Token exchange strategies.

Two interchangeable ways of turning an authorization code into a TokenBundle:
- DirectTokenExchanger: form POST to the provider's token endpoint (PKCE)
- GatewayTokenExchanger: ``getAuthToken`` query against the GraphQL gateway

One is selected at configuration time by create_token_exchanger().
"""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from polestar_auth.config import AuthSettings
from polestar_auth.core.domain import AuthStep, PkceContext, TokenBundle
from polestar_auth.core.exceptions import ExchangeFailure
from polestar_auth.core.ports import SessionClient, TokenExchanger


logger = logging.getLogger(__name__)

STEP = AuthStep.TOKEN_EXCHANGE

GET_AUTH_TOKEN_QUERY = """
query getAuthToken($code: String!) {
    getAuthToken(code: $code) {
        id_token
        access_token
        refresh_token
        expires_in
    }
}
""".strip()


def _parse_json(response: httpx.Response, endpoint: str) -> Any:
    """Decode a JSON body or raise ExchangeFailure."""
    try:
        return response.json()
    except ValueError as e:
        raise ExchangeFailure(
            "Token response is not valid JSON",
            step=STEP,
            context={"endpoint": endpoint},
            status_code=response.status_code,
            response_body=response.text,
        ) from e


def _ensure_exchange_success(response: httpx.Response, endpoint: str) -> None:
    if response.is_success:
        return
    raise ExchangeFailure(
        f"Token exchange failed: {response.status_code}",
        step=STEP,
        context={"endpoint": endpoint},
        status_code=response.status_code,
        response_body=response.text or None,
    )


def _build_bundle(payload: Any, endpoint: str) -> TokenBundle:
    """Validate a token object; partial payloads are rejected."""
    if not isinstance(payload, dict):
        raise ExchangeFailure(
            "Token payload is missing",
            step=STEP,
            context={"endpoint": endpoint},
        )
    try:
        return TokenBundle.from_payload(payload)
    except ValidationError as e:
        # Only field names go to the error, never the token values
        missing = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ExchangeFailure(
            f"Token payload is incomplete or invalid: {missing}",
            step=STEP,
            context={"endpoint": endpoint},
        ) from e


class DirectTokenExchanger:
    """Exchange the code at the provider's token endpoint with the PKCE verifier."""

    name = "direct"

    def __init__(self, settings: AuthSettings):
        self.settings = settings

    async def exchange(
        self, session: SessionClient, code: str, pkce: PkceContext
    ) -> TokenBundle:
        """
        POST the authorization_code grant to the token endpoint.

        Fails fast without a round trip when the verifier is missing.
        """
        endpoint = self.settings.token_endpoint
        if not pkce.code_verifier:
            raise ExchangeFailure(
                "PKCE code verifier is missing; refusing to call the token endpoint",
                step=STEP,
                context={"endpoint": endpoint},
            )

        response = await session.post(
            endpoint,
            step=STEP,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": pkce.code_verifier,
                "client_id": self.settings.client_id,
                "redirect_uri": self.settings.redirect_uri,
            },
        )
        _ensure_exchange_success(response, endpoint)
        bundle = _build_bundle(_parse_json(response, endpoint), endpoint)

        logger.info(
            "Exchanged authorization code at token endpoint",
            extra={"strategy": self.name, "expires_in": bundle.expires_in},
        )
        return bundle


class GatewayTokenExchanger:
    """Exchange the code through the GraphQL gateway's ``getAuthToken`` query."""

    name = "gateway"

    def __init__(self, settings: AuthSettings):
        self.settings = settings

    async def exchange(
        self, session: SessionClient, code: str, pkce: PkceContext
    ) -> TokenBundle:
        """Run ``getAuthToken(code)`` and unwrap ``data.getAuthToken``."""
        endpoint = self.settings.gateway_url
        response = await session.post(
            endpoint,
            step=STEP,
            json={
                "query": GET_AUTH_TOKEN_QUERY,
                "variables": {"code": code},
                "operationName": "getAuthToken",
            },
        )
        _ensure_exchange_success(response, endpoint)
        body = _parse_json(response, endpoint)

        if not isinstance(body, dict):
            raise ExchangeFailure(
                "Gateway response is not a JSON object",
                step=STEP,
                context={"endpoint": endpoint},
            )

        errors = body.get("errors")
        if errors and not isinstance(errors, list):
            raise ExchangeFailure(
                "Gateway returned errors",
                step=STEP,
                context={"endpoint": endpoint},
                status_code=response.status_code,
            )
        if errors:
            messages = [
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in errors
            ]
            raise ExchangeFailure(
                f"Gateway returned errors: {messages}",
                step=STEP,
                context={"endpoint": endpoint},
                status_code=response.status_code,
            )

        data = _lower_keys(body.get("data"))
        bundle = _build_bundle(data.get("getauthtoken"), endpoint)

        logger.info(
            "Exchanged authorization code through gateway",
            extra={"strategy": self.name, "expires_in": bundle.expires_in},
        )
        return bundle


def _lower_keys(value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        return {}
    return {str(key).lower(): item for key, item in value.items()}


def create_token_exchanger(settings: AuthSettings) -> TokenExchanger:
    """
    Select the token exchange strategy named by ``settings.token_exchange``.

    Raises:
        ValueError: If the strategy is unknown
    """
    if settings.token_exchange == "direct":
        return DirectTokenExchanger(settings)
    if settings.token_exchange == "gateway":
        return GatewayTokenExchanger(settings)
    raise ValueError(f"Unknown token exchange strategy: {settings.token_exchange}")
