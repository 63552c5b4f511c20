"""
Query-string helpers for landed redirect URIs.

The provider reports progress only through query parameters of the URI the
client lands on after following redirects, so extraction must never throw
on a missing parameter.
"""

from typing import Iterable, Optional
from urllib.parse import parse_qs, parse_qsl, urlencode, urlsplit, urlunsplit


# Parameters whose values must not reach the logs
REDACTED_PARAMS = frozenset({"code", "state", "code_challenge", "code_verifier"})


def extract_query_param(uri: str, name: str) -> Optional[str]:
    """
    Extract a query parameter value from a URI.

    Args:
        uri: Absolute or relative URI
        name: Parameter name (case-sensitive)

    Returns:
        The percent-decoded value of the first occurrence, or None when the
        parameter is absent. A parameter present with an empty value returns "".
    """
    query = urlsplit(str(uri)).query
    values = parse_qs(query, keep_blank_values=True).get(name)
    if not values:
        return None
    return values[0]


def redact_query(uri: str, names: Iterable[str] = REDACTED_PARAMS) -> str:
    """Return ``uri`` with the values of sensitive query parameters masked."""
    hidden = set(names)
    parts = urlsplit(str(uri))
    if not parts.query:
        return str(uri)
    pairs = [
        (key, "***" if key in hidden else value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(pairs, safe="*")))
