"""
Core application service for the identity provider handshake.

Drives one Authorization-Code + PKCE attempt end to end, the way a browser
would: authorization request, login form, optional consent form, token
exchange. This module contains the business logic, independent of the web
layer and of the concrete HTTP client.
"""

import logging
from urllib.parse import urlencode

from polestar_auth.config import AuthSettings
from polestar_auth.core.domain import (
    AuthAttempt,
    AuthFailure,
    AuthResult,
    AuthStep,
    AuthSuccess,
    Credentials,
    LoginOutcome,
    PkceContext,
    TokenBundle,
)
from polestar_auth.core.exceptions import (
    AuthFlowError,
    CredentialRejected,
    ProtocolViolation,
)
from polestar_auth.core.pkce import create_pkce_context
from polestar_auth.core.ports import SessionClient, SessionFactory, TokenExchanger
from polestar_auth.core.query import extract_query_param, redact_query


logger = logging.getLogger(__name__)

SCOPES = "openid profile email customer:attributes"

# Provider-specific form fields
USERNAME_FIELD = "pf.username"
PASSWORD_FIELD = "pf.pass"
CONSENT_SUBMIT_FIELD = "pf.submit"
CONSENT_SUBMIT_FLAG = "false"

RESUME_PATH_PARAM = "resumePath"
AUTH_CODE_PARAM = "code"
USER_ID_PARAM = "uid"

FAILURE_MESSAGES = {
    "transport_failure": "The identity provider could not be reached or returned an error",
    "transport_timeout": "The identity provider did not respond in time",
    "protocol_violation": "The identity provider response did not follow the expected flow",
    "credential_rejected": "The credentials were rejected",
    "exchange_failure": "The authorization code could not be exchanged for tokens",
}


class AuthenticationService:
    """
    Application service authenticating a user against the identity provider.

    The service itself holds no per-user state and can be shared; every call
    to authenticate() opens its own session (cookie jar, connections) and
    closes it before returning.
    """

    def __init__(
        self,
        settings: AuthSettings,
        session_factory: SessionFactory,
        token_exchanger: TokenExchanger,
    ):
        """
        Initialize the authentication service.

        Args:
            settings: Provider endpoints and client registration
            session_factory: Creates a fresh SessionClient per attempt
            token_exchanger: Strategy converting the auth code into tokens
        """
        self.settings = settings
        self.session_factory = session_factory
        self.token_exchanger = token_exchanger

    async def authenticate(self, email: str, password: str) -> AuthResult:
        """
        Authenticate a user and return their tokens.

        Single pass, no retries: any failing step ends the attempt.

        Args:
            email: Account email (validated)
            password: Account password

        Returns:
            AuthSuccess carrying the TokenBundle, or AuthFailure naming the
            failure kind and the step that failed

        Raises:
            pydantic.ValidationError: If the credentials are malformed
        """
        credentials = Credentials(email=email, password=password)
        pkce = create_pkce_context()
        attempt = AuthAttempt()

        logger.info(
            "Starting authentication attempt",
            extra={
                "attempt_id": attempt.attempt_id,
                "token_exchange": self.token_exchanger.name,
            },
        )

        try:
            async with self.session_factory() as session:
                tokens = await self._run(session, credentials, pkce, attempt)
        except AuthFlowError as e:
            failed_step = attempt.fail()
            logger.error(
                f"Authentication attempt failed at {failed_step.value}: {e}",
                extra={"attempt_id": attempt.attempt_id, **e.log_fields()},
            )
            return AuthFailure(
                kind=e.kind,
                step=failed_step,
                message=FAILURE_MESSAGES[e.kind.value],
            )

        attempt.advance(AuthStep.SUCCESS)
        logger.info(
            "Authentication attempt succeeded",
            extra={
                "attempt_id": attempt.attempt_id,
                "steps": [step.value for step in attempt.history],
            },
        )
        return AuthSuccess(tokens=tokens)

    async def _run(
        self,
        session: SessionClient,
        credentials: Credentials,
        pkce: PkceContext,
        attempt: AuthAttempt,
    ) -> TokenBundle:
        attempt.advance(AuthStep.AUTHORIZING)
        resume_path = await self.fetch_resume_path(session, pkce)

        attempt.advance(AuthStep.LOGGING_IN)
        outcome = await self.submit_credentials(session, resume_path, credentials)

        auth_code = outcome.auth_code
        if outcome.needs_consent:
            attempt.advance(AuthStep.CONFIRMING_CONSENT)
            auth_code = await self.confirm_consent(
                session, resume_path, outcome.user_id or ""
            )

        attempt.advance(AuthStep.TOKEN_EXCHANGE)
        return await self.token_exchanger.exchange(session, auth_code or "", pkce)

    # ------------------------------------------------------------------ #
    # Steps                                                              #
    # ------------------------------------------------------------------ #

    def build_authorization_url(self, pkce: PkceContext) -> str:
        """Construct the authorization URL with state and S256 challenge."""
        params = {
            "client_id": self.settings.client_id,
            "redirect_uri": self.settings.redirect_uri,
            "response_type": "code",
            "state": pkce.state,
            "scope": SCOPES,
            "code_challenge": pkce.code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self.settings.authorization_endpoint}?{urlencode(params)}"

    def build_login_url(self, resume_path: str) -> str:
        """Construct the credential submission URL for a resume path."""
        query = urlencode({"client_id": self.settings.client_id})
        return f"{self.settings.resume_endpoint(resume_path)}?{query}"

    async def fetch_resume_path(
        self, session: SessionClient, pkce: PkceContext
    ) -> str:
        """
        Start the authorization request and read ``resumePath`` from the landed URI.

        Raises:
            TransportFailure: On a non-2xx status or network error
            ProtocolViolation: If the landed URI carries no resume path
        """
        auth_url = self.build_authorization_url(pkce)
        await session.get(auth_url, step=AuthStep.AUTHORIZING)
        landed = session.landed_url or ""

        resume_path = extract_query_param(landed, RESUME_PATH_PARAM)
        if not resume_path:
            raise ProtocolViolation(
                "Unable to fetch authorization resume path",
                step=AuthStep.AUTHORIZING,
                context={
                    "authorization_url": redact_query(auth_url),
                    "landed_url": redact_query(landed),
                },
            )
        return resume_path

    async def submit_credentials(
        self,
        session: SessionClient,
        resume_path: str,
        credentials: Credentials,
    ) -> LoginOutcome:
        """
        POST the login form and read ``code`` / ``uid`` from the landed URI.

        Raises:
            TransportFailure: On a non-2xx status or network error
            CredentialRejected: If neither value is present
        """
        login_url = self.build_login_url(resume_path)
        await session.post_form(
            login_url,
            {
                USERNAME_FIELD: credentials.email,
                PASSWORD_FIELD: credentials.password.get_secret_value(),
            },
            step=AuthStep.LOGGING_IN,
        )
        landed = session.landed_url or ""

        outcome = LoginOutcome(
            auth_code=extract_query_param(landed, AUTH_CODE_PARAM) or None,
            user_id=extract_query_param(landed, USER_ID_PARAM) or None,
        )
        if outcome.is_rejected:
            raise CredentialRejected(
                "Login request failed: both 'authCode' and 'userId' are missing "
                "in the response",
                step=AuthStep.LOGGING_IN,
                context={"login_url": login_url, "email": credentials.email},
            )
        return outcome

    async def confirm_consent(
        self, session: SessionClient, resume_path: str, user_id: str
    ) -> str:
        """
        Confirm the consent form for ``user_id`` and read ``code`` from the landed URI.

        Raises:
            TransportFailure: On a non-2xx status or network error
            ProtocolViolation: If no authorization code is returned
        """
        confirm_url = self.settings.resume_endpoint(resume_path)
        await session.post_form(
            confirm_url,
            {CONSENT_SUBMIT_FIELD: CONSENT_SUBMIT_FLAG, "subject": user_id},
            step=AuthStep.CONFIRMING_CONSENT,
        )
        landed = session.landed_url or ""

        auth_code = extract_query_param(landed, AUTH_CODE_PARAM)
        if not auth_code:
            raise ProtocolViolation(
                "Failed to extract authorization code from the consent response",
                step=AuthStep.CONFIRMING_CONSENT,
                context={
                    "confirm_url": confirm_url,
                    "user_id": user_id,
                    "landed_url": redact_query(landed),
                },
            )
        return auth_code
