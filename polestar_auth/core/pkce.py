"""
PKCE and state correlators (RFC 7636).

Generates the anti-CSRF ``state`` value and the S256 verifier/challenge pair
for one authentication attempt. All randomness comes from a cryptographically
secure source. Nothing in this module logs its values.
"""

import base64
import secrets

from authlib.common.security import generate_token
from authlib.oauth2.rfc7636 import create_s256_code_challenge

from polestar_auth.core.domain import PkceContext


STATE_LENGTH = 16
VERIFIER_BYTES = 32


def generate_state(length: int = STATE_LENGTH) -> str:
    """
    Generate a random alphanumeric state value.

    Args:
        length: Number of characters (default 16)

    Returns:
        Random string drawn from [A-Za-z0-9] using SystemRandom
    """
    return generate_token(length)


def generate_code_verifier() -> str:
    """
    Generate a PKCE code verifier.

    Returns:
        32 random bytes, base64url-encoded without padding (43 characters)
    """
    return (
        base64.urlsafe_b64encode(secrets.token_bytes(VERIFIER_BYTES))
        .rstrip(b"=")
        .decode("ascii")
    )


def generate_code_challenge(verifier: str) -> str:
    """
    Compute the S256 challenge for a verifier.

    Returns:
        base64url(SHA-256(verifier)) without padding
    """
    return create_s256_code_challenge(verifier)


def create_pkce_context() -> PkceContext:
    """Generate the correlators for a new attempt."""
    verifier = generate_code_verifier()
    return PkceContext(
        state=generate_state(),
        code_verifier=verifier,
        code_challenge=generate_code_challenge(verifier),
    )
