"""
Tests for PKCE and state generation.
"""

import base64
import hashlib
import re

from polestar_auth.core.pkce import (
    create_pkce_context,
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
)


def _s256(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class TestState:
    def test_state_is_16_alphanumeric_characters(self):
        state = generate_state()

        assert len(state) == 16
        assert re.fullmatch(r"[A-Za-z0-9]{16}", state)

    def test_state_length_is_configurable(self):
        assert len(generate_state(32)) == 32

    def test_states_differ_between_calls(self):
        assert len({generate_state() for _ in range(50)}) == 50


class TestCodeVerifier:
    def test_verifier_is_base64url_of_32_bytes_without_padding(self):
        verifier = generate_code_verifier()

        assert len(verifier) == 43
        assert "=" not in verifier
        assert re.fullmatch(r"[A-Za-z0-9_-]{43}", verifier)
        padded = verifier + "=" * (-len(verifier) % 4)
        assert len(base64.urlsafe_b64decode(padded)) == 32

    def test_verifiers_differ_between_calls(self):
        assert generate_code_verifier() != generate_code_verifier()


class TestCodeChallenge:
    def test_challenge_is_s256_of_verifier(self):
        verifier = generate_code_verifier()

        assert generate_code_challenge(verifier) == _s256(verifier)

    def test_known_vector(self):
        """RFC 7636 appendix B example."""
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"

        assert (
            generate_code_challenge(verifier)
            == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
        )


class TestPkceContext:
    def test_context_challenge_matches_its_verifier(self):
        context = create_pkce_context()

        assert context.code_challenge == _s256(context.code_verifier)
        assert len(context.state) == 16

    def test_repr_hides_verifier(self):
        context = create_pkce_context()

        assert context.code_verifier not in repr(context)
        assert context.code_challenge in repr(context)
