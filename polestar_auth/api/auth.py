"""
Authentication API endpoint.

Exposes the identity provider handshake as a single operation:
- POST /api/v1/auth: exchange email + password for a token bundle
"""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from polestar_auth.api.dependencies import AuthService
from polestar_auth.core.domain import AuthFailure, Credentials, FailureKind, TokenBundle


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["authentication"])


# ============================================================================
# Request/Response Models
# ============================================================================


class AuthRequest(Credentials):
    """Request body for the authenticate endpoint."""


class AuthErrorResponse(BaseModel):
    """Response body for a failed authentication."""

    status: str
    error: str
    step: str
    message: str


FAILURE_STATUS_CODES = {
    FailureKind.TRANSPORT: status.HTTP_502_BAD_GATEWAY,
    FailureKind.TIMEOUT: status.HTTP_502_BAD_GATEWAY,
    FailureKind.PROTOCOL: status.HTTP_401_UNAUTHORIZED,
    FailureKind.CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    FailureKind.EXCHANGE: status.HTTP_401_UNAUTHORIZED,
}


def failure_response(failure: AuthFailure) -> JSONResponse:
    """Convert an AuthFailure into an HTTP error response."""
    return JSONResponse(
        status_code=FAILURE_STATUS_CODES[failure.kind],
        content=failure.to_payload(),
    )


# ============================================================================
# API Endpoints
# ============================================================================


@router.post(
    "",
    response_model=TokenBundle,
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": AuthErrorResponse},
        status.HTTP_502_BAD_GATEWAY: {"model": AuthErrorResponse},
    },
)
async def authenticate(request: AuthRequest, service: AuthService):
    """
    Authenticate against the identity provider.

    Runs the full authorization-code flow for the given credentials and
    returns the resulting tokens.

    Args:
        request: Contains the user's email and password
        service: Authentication service

    Returns:
        TokenBundle on success, an error payload with 401 or 502 otherwise
    """
    result = await service.authenticate(
        request.email, request.password.get_secret_value()
    )

    if isinstance(result, AuthFailure):
        logger.warning(
            f"Authentication rejected: {result.kind.value}",
            extra={"error": result.kind.value, "step": result.step.value},
        )
        return failure_response(result)

    return result.tokens
