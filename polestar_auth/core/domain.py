"""
Core domain models for the identity provider handshake.

These models represent one authentication attempt and its outcome. They are
independent of HTTP clients and of the web layer. Every value here is scoped
to a single attempt and never outlives it.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    SecretStr,
    field_validator,
)


class AuthStep(str, Enum):
    """States of a single authentication attempt."""

    START = "start"
    AUTHORIZING = "authorizing"
    LOGGING_IN = "logging_in"
    CONFIRMING_CONSENT = "confirming_consent"
    TOKEN_EXCHANGE = "token_exchange"
    SUCCESS = "success"
    FAILED = "failed"


class FailureKind(str, Enum):
    """Failure causes surfaced to callers of the orchestrator."""

    TRANSPORT = "transport_failure"
    TIMEOUT = "transport_timeout"
    PROTOCOL = "protocol_violation"
    CREDENTIALS = "credential_rejected"
    EXCHANGE = "exchange_failure"


# Single pass: no backward transitions, FAILED reachable from every live step
ALLOWED_TRANSITIONS: dict[AuthStep, frozenset[AuthStep]] = {
    AuthStep.START: frozenset({AuthStep.AUTHORIZING, AuthStep.FAILED}),
    AuthStep.AUTHORIZING: frozenset({AuthStep.LOGGING_IN, AuthStep.FAILED}),
    AuthStep.LOGGING_IN: frozenset(
        {AuthStep.CONFIRMING_CONSENT, AuthStep.TOKEN_EXCHANGE, AuthStep.FAILED}
    ),
    AuthStep.CONFIRMING_CONSENT: frozenset({AuthStep.TOKEN_EXCHANGE, AuthStep.FAILED}),
    AuthStep.TOKEN_EXCHANGE: frozenset({AuthStep.SUCCESS, AuthStep.FAILED}),
    AuthStep.SUCCESS: frozenset(),
    AuthStep.FAILED: frozenset(),
}


class Credentials(BaseModel):
    """
    User credentials for one authentication attempt.

    The password is held as a SecretStr so it never appears in reprs or logs.
    """

    email: EmailStr = Field(description="Account email address")
    password: SecretStr = Field(description="Account password")

    model_config = ConfigDict(frozen=True)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: SecretStr) -> SecretStr:
        """Ensure a password was supplied."""
        if not v.get_secret_value():
            raise ValueError("password must not be empty")
        return v


@dataclass(frozen=True)
class PkceContext:
    """
    Correlators generated once per attempt.

    The verifier stays in memory until the token exchange and is excluded
    from the repr.
    """

    state: str
    code_verifier: str = field(repr=False)
    code_challenge: str


@dataclass(frozen=True)
class LoginOutcome:
    """Values extracted from the URI landed on after credential submission."""

    auth_code: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def is_rejected(self) -> bool:
        """Neither an auth code nor a user id: the provider refused the login."""
        return not self.auth_code and not self.user_id

    @property
    def needs_consent(self) -> bool:
        """A user id without an auth code means the consent form must be confirmed."""
        return not self.auth_code and bool(self.user_id)


class TokenBundle(BaseModel):
    """
    Token set returned by a successful attempt.

    Produced exactly once and returned verbatim; a payload missing any of the
    required fields never produces a bundle.
    """

    id_token: str = Field(min_length=1, description="OpenID Connect ID token")
    access_token: str = Field(min_length=1, description="OAuth2 access token")
    refresh_token: str = Field(min_length=1, description="OAuth2 refresh token")
    expires_in: int = Field(description="Access token lifetime in seconds")
    token_type: Optional[str] = Field(default=None, description="Token type")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "TokenBundle":
        """
        Create a TokenBundle from a provider JSON object.

        Keys are matched case-insensitively (``Access_Token`` and
        ``access_token`` are the same field).

        Raises:
            pydantic.ValidationError: If a required field is missing or invalid
        """
        normalized = {str(key).lower(): value for key, value in payload.items()}
        return cls.model_validate(normalized)


@dataclass(frozen=True)
class AuthSuccess:
    """Successful outcome of an authentication attempt."""

    tokens: TokenBundle
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class AuthFailure:
    """
    Failed outcome of an authentication attempt.

    ``message`` is a non-secret summary safe to return to API clients;
    the detailed context only goes to logs.
    """

    kind: FailureKind
    step: AuthStep
    message: str
    ok: bool = field(default=False, init=False)

    def to_payload(self) -> dict[str, str]:
        """Return a JSON-serialisable payload without secrets."""
        return {
            "status": "error",
            "error": self.kind.value,
            "step": self.step.value,
            "message": self.message,
        }


AuthResult = AuthSuccess | AuthFailure


@dataclass
class AuthAttempt:
    """
    State machine for one authentication call.

    Tracks the current step and the ordered history of steps taken.
    The attempt id correlates log lines of concurrent attempts.
    """

    attempt_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    step: AuthStep = AuthStep.START
    history: list[AuthStep] = field(default_factory=lambda: [AuthStep.START])

    def advance(self, next_step: AuthStep) -> None:
        """Move to ``next_step``; raises RuntimeError on an illegal transition."""
        if next_step not in ALLOWED_TRANSITIONS[self.step]:
            raise RuntimeError(
                f"Illegal transition {self.step.value} -> {next_step.value}"
            )
        self.step = next_step
        self.history.append(next_step)

    def fail(self) -> AuthStep:
        """Transition to FAILED and return the step that failed."""
        failed_step = self.step
        self.advance(AuthStep.FAILED)
        return failed_step

    @property
    def finished(self) -> bool:
        return self.step in (AuthStep.SUCCESS, AuthStep.FAILED)
