"""
Domain exceptions for the authentication flow.

These exceptions are raised inside a single authentication attempt and are
converted by the orchestrator into an explicit AuthFailure result.
They carry only non-secret diagnostic context (step, URIs, email);
passwords, verifiers and tokens are never attached.
"""

from typing import Any

from polestar_auth.core.domain import AuthStep, FailureKind


class AuthFlowError(Exception):
    """
    Base exception for all failures of an authentication attempt.

    Every subclass sets a class-level ``kind`` which is what callers of the
    orchestrator see in the returned AuthFailure.
    """

    kind: FailureKind = FailureKind.TRANSPORT

    def __init__(
        self,
        message: str,
        *,
        step: AuthStep,
        context: dict[str, Any] | None = None,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.step = step
        self.context: dict[str, Any] = dict(context or {})
        self.status_code = status_code
        self.response_body = response_body

    def log_fields(self) -> dict[str, Any]:
        """Fields suitable for structured, operator-facing logs."""
        fields: dict[str, Any] = {
            "error": self.kind.value,
            "step": self.step.value,
            **self.context,
        }
        if self.status_code is not None:
            fields["status_code"] = self.status_code
        if self.response_body:
            fields["response_body"] = self.response_body[:500]
        return fields


class TransportFailure(AuthFlowError):
    """
    Raised for a non-2xx status or a network-level error at any step.

    Carries the response body when one was received.
    """

    kind = FailureKind.TRANSPORT


class ProviderTimeout(TransportFailure):
    """Raised when a request exceeds the configured per-request timeout."""

    kind = FailureKind.TIMEOUT


class ProtocolViolation(AuthFlowError):
    """Raised when a parameter the protocol requires is absent from a landed URI."""

    kind = FailureKind.PROTOCOL


class CredentialRejected(AuthFlowError):
    """Raised when login lands on a URI carrying neither an auth code nor a user id."""

    kind = FailureKind.CREDENTIALS


class ExchangeFailure(AuthFlowError):
    """Raised when the token exchange is rejected or returns an unusable payload."""

    kind = FailureKind.EXCHANGE
