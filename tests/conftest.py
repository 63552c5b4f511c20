"""
Shared test configuration and fixtures.

Provides a scripted identity provider served through respx. It reproduces
the redirect chain, session cookie and query-parameter hand-offs of the
real provider so the flow can be exercised end to end without a network.
"""

import itertools
import json
from typing import Any
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from polestar_auth.config import AuthSettings
from polestar_auth.core.pkce import generate_code_challenge
from polestar_auth.core.services import AuthenticationService
from polestar_auth.infrastructure.session_client import ProviderSession
from polestar_auth.infrastructure.token_exchangers import (
    DirectTokenExchanger,
    GatewayTokenExchanger,
)
from polestar_auth.main import app


OAUTH_BASE = "https://idp.example.com"
OAUTH_HOST = "idp.example.com"
REDIRECT_URI = "https://app.example.com/sign-in-callback"
GATEWAY_URL = "https://api.example.com/eu-north-1/auth"
CLIENT_ID = "test-client"

AUTHORIZE_URL = f"{OAUTH_BASE}/as/authorization.oauth2"
TOKEN_URL = f"{OAUTH_BASE}/as/token.oauth2"
RESUME_PATH_REGEX = r"^/as/(?P<resume>[^/]+)/resume/as/authorization\.ping$"


def make_token_payload(suffix: str = "1") -> dict[str, Any]:
    """Token endpoint JSON for a given attempt suffix."""
    return {
        "id_token": f"id-{suffix}",
        "access_token": f"access-{suffix}",
        "refresh_token": f"refresh-{suffix}",
        "expires_in": 3600,
        "token_type": "Bearer",
    }


def form_of(request: httpx.Request) -> dict[str, str]:
    """Decode a form-encoded request body into single values."""
    parsed = parse_qs(request.content.decode(), keep_blank_values=True)
    return {key: values[0] for key, values in parsed.items()}


def query_of(url: str | httpx.URL) -> dict[str, str]:
    parsed = parse_qs(urlsplit(str(url)).query, keep_blank_values=True)
    return {key: values[0] for key, values in parsed.items()}


class StubProvider:
    """
    Scripted identity provider.

    ``login_mode`` selects what the login step lands on:
    - "code": redirect URI carrying an authorization code
    - "uid": consent page carrying the user id
    - "none": error page carrying neither
    """

    def __init__(self, router: respx.MockRouter):
        self.router = router
        self.login_mode = "code"
        self.consent_returns_code = True
        self.attempts: dict[str, dict[str, Any]] = {}
        self.codes: dict[str, str] = {}
        self._counter = itertools.count(1)
        self._install()

    def _install(self) -> None:
        r = self.router
        self.authorize = r.get(AUTHORIZE_URL).mock(side_effect=self._authorize)
        r.get(f"{OAUTH_BASE}/as/login").mock(
            return_value=httpx.Response(200, text="<form>login</form>")
        )
        r.get(f"{OAUTH_BASE}/as/consent").mock(
            return_value=httpx.Response(200, text="<form>consent</form>")
        )
        r.get(f"{OAUTH_BASE}/as/error").mock(
            return_value=httpx.Response(200, text="<p>Invalid credentials</p>")
        )
        r.get(REDIRECT_URI).mock(return_value=httpx.Response(200, text="signed in"))
        # Login carries client_id in the query; consent does not. Order matters.
        self.login = r.post(
            host=OAUTH_HOST, path__regex=RESUME_PATH_REGEX, params={"client_id": CLIENT_ID}
        ).mock(side_effect=self._login)
        self.consent = r.post(host=OAUTH_HOST, path__regex=RESUME_PATH_REGEX).mock(
            side_effect=self._consent
        )
        self.token = r.post(TOKEN_URL).mock(side_effect=self._token)
        self.gateway = r.post(GATEWAY_URL).mock(side_effect=self._gateway)

    # -- provider behaviour ------------------------------------------------

    def _authorize(self, request: httpx.Request) -> httpx.Response:
        query = query_of(request.url)
        n = next(self._counter)
        resume = f"res{n}"
        self.attempts[resume] = {
            "cookie": f"pf-session-{n}",
            "state": query.get("state"),
            "challenge": query.get("code_challenge"),
            "challenge_method": query.get("code_challenge_method"),
            "authorize_query": query,
        }
        return httpx.Response(
            302,
            headers={
                "Location": f"{OAUTH_BASE}/as/login?resumePath={resume}",
                "Set-Cookie": f"PF=pf-session-{n}; Path=/",
            },
        )

    def _owns_session(self, request: httpx.Request, resume: str) -> bool:
        expected = self.attempts.get(resume, {}).get("cookie")
        return bool(expected) and f"PF={expected}" in request.headers.get("cookie", "")

    def _login(self, request: httpx.Request, resume: str) -> httpx.Response:
        form = form_of(request)
        if not self._owns_session(request, resume):
            return httpx.Response(302, headers={"Location": f"{OAUTH_BASE}/as/error"})

        attempt = self.attempts[resume]
        attempt["email"] = form.get("pf.username")
        attempt["password"] = form.get("pf.pass")

        if self.login_mode == "code":
            return self._issue_code(resume)
        if self.login_mode == "uid":
            return httpx.Response(
                302, headers={"Location": f"{OAUTH_BASE}/as/consent?uid=user-{resume}"}
            )
        return httpx.Response(
            302, headers={"Location": f"{OAUTH_BASE}/as/error?message=bad+credentials"}
        )

    def _consent(self, request: httpx.Request, resume: str) -> httpx.Response:
        form = form_of(request)
        attempt = self.attempts.setdefault(resume, {})
        attempt.setdefault("consents", []).append(form)
        if not self._owns_session(request, resume) or not self.consent_returns_code:
            return httpx.Response(302, headers={"Location": f"{OAUTH_BASE}/as/error"})
        return self._issue_code(resume)

    def _issue_code(self, resume: str) -> httpx.Response:
        code = f"code-{resume}"
        self.codes[code] = resume
        state = self.attempts[resume].get("state") or ""
        return httpx.Response(
            302, headers={"Location": f"{REDIRECT_URI}?code={code}&state={state}"}
        )

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = form_of(request)
        resume = self.codes.get(form.get("code", ""))
        if resume is None:
            return httpx.Response(400, json={"error": "invalid_grant"})
        self.attempts[resume]["token_form"] = form
        expected = self.attempts[resume]["challenge"]
        if generate_code_challenge(form.get("code_verifier", "")) != expected:
            return httpx.Response(
                400, json={"error": "invalid_grant", "error_description": "PKCE mismatch"}
            )
        return httpx.Response(200, json=make_token_payload(resume))

    def _gateway(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        resume = self.codes.get(body.get("variables", {}).get("code", ""))
        if resume is None:
            return httpx.Response(
                200, json={"data": None, "errors": [{"message": "Invalid code"}]}
            )
        payload = make_token_payload(resume)
        payload.pop("token_type")
        return httpx.Response(200, json={"data": {"getAuthToken": payload}})


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def settings() -> AuthSettings:
    """Settings pointing at the stub provider."""
    return AuthSettings(
        client_id=CLIENT_ID,
        oauth_base_url=OAUTH_BASE,
        redirect_uri=REDIRECT_URI,
        gateway_url=GATEWAY_URL,
        token_exchange="direct",
        request_timeout=5.0,
    )


@pytest.fixture
def idp_router():
    """respx router; unmatched requests fail the test."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
def stub_provider(idp_router) -> StubProvider:
    return StubProvider(idp_router)


@pytest.fixture
def session_factory(settings):
    def factory() -> ProviderSession:
        return ProviderSession(timeout=settings.request_timeout)

    return factory


@pytest.fixture
def direct_service(settings, session_factory) -> AuthenticationService:
    return AuthenticationService(
        settings=settings,
        session_factory=session_factory,
        token_exchanger=DirectTokenExchanger(settings),
    )


@pytest.fixture
def gateway_service(settings, session_factory) -> AuthenticationService:
    return AuthenticationService(
        settings=settings,
        session_factory=session_factory,
        token_exchanger=GatewayTokenExchanger(settings),
    )


@pytest.fixture
def client():
    """Basic test client."""
    return TestClient(app)
