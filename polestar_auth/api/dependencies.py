"""
FastAPI dependencies for the authentication endpoint.

Wires the core AuthenticationService with its infrastructure adapters.
"""

from typing import Annotated

from fastapi import Depends

from polestar_auth.config import AuthSettings, get_auth_settings
from polestar_auth.core.ports import SessionFactory
from polestar_auth.core.services import AuthenticationService
from polestar_auth.infrastructure.session_client import ProviderSession
from polestar_auth.infrastructure.token_exchangers import create_token_exchanger


def get_session_factory(
    settings: Annotated[AuthSettings, Depends(get_auth_settings)],
) -> SessionFactory:
    """
    Provide a factory creating one ProviderSession per attempt.

    Sessions are never shared between requests.
    """

    def factory() -> ProviderSession:
        return ProviderSession(timeout=settings.request_timeout)

    return factory


def get_authentication_service(
    settings: Annotated[AuthSettings, Depends(get_auth_settings)],
    session_factory: Annotated[SessionFactory, Depends(get_session_factory)],
) -> AuthenticationService:
    """Provide the authentication service with the configured exchange strategy."""
    return AuthenticationService(
        settings=settings,
        session_factory=session_factory,
        token_exchanger=create_token_exchanger(settings),
    )


# Type aliases for cleaner dependency injection
AuthService = Annotated[AuthenticationService, Depends(get_authentication_service)]
