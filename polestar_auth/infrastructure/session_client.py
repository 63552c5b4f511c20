"""
Redirect-following, cookie-retaining HTTP session for one authentication attempt.

Wraps an httpx.AsyncClient with its own cookie jar. The provider tracks the
login through cookies set during the redirect chain, so each attempt must
own a fresh instance; sharing one across attempts leaks sessions between users.
"""

import logging
from types import TracebackType
from typing import Any, Optional

import httpx

from polestar_auth.core.domain import AuthStep
from polestar_auth.core.exceptions import ProviderTimeout, TransportFailure
from polestar_auth.core.query import redact_query


logger = logging.getLogger(__name__)

# Mirrors a browser; some provider pages refuse unknown clients
DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; polestar-auth)",
    "Accept": "text/html,application/json;q=0.9,*/*;q=0.8",
}


def ensure_success(response: httpx.Response, step: AuthStep, message: str) -> None:
    """
    Raise TransportFailure unless ``response`` has a 2xx status.

    The response body is attached when available for diagnostics.
    """
    if response.is_success:
        return

    body = response.text if response.content else None
    detail = f"{message}. Response content: {body}" if body else message
    raise TransportFailure(
        detail,
        step=step,
        context={"url": redact_query(str(response.url))},
        status_code=response.status_code,
        response_body=body,
    )


class ProviderSession:
    """
    HTTP session scoped to a single authentication attempt.

    Use as an async context manager; the underlying client (cookie jar and
    pooled connections) is released on every exit path, including
    cancellation.
    """

    def __init__(
        self,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the session.

        Args:
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests, proxies)
        """
        self._client = httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(timeout),
            headers=DEFAULT_HEADERS,
            transport=transport,
        )
        self._landed_url: Optional[str] = None

    async def __aenter__(self) -> "ProviderSession":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the client and discard its cookies."""
        self._client.cookies.clear()
        await self._client.aclose()

    @property
    def landed_url(self) -> Optional[str]:
        """Final URI (after redirects) of the most recent request."""
        return self._landed_url

    @property
    def cookies(self) -> httpx.Cookies:
        """The attempt's cookie jar."""
        return self._client.cookies

    async def get(self, url: str, *, step: AuthStep) -> httpx.Response:
        """GET ``url`` following redirects and validate the final status."""
        response = await self._send("GET", url, step=step)
        ensure_success(response, step, f"GET request failed during {step.value}")
        return response

    async def post_form(
        self, url: str, data: dict[str, str], *, step: AuthStep
    ) -> httpx.Response:
        """POST form-encoded ``data`` following redirects and validate the final status."""
        response = await self._send("POST", url, step=step, data=data)
        ensure_success(response, step, f"POST request failed during {step.value}")
        return response

    async def post(
        self,
        url: str,
        *,
        step: AuthStep,
        data: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        """POST without status validation."""
        return await self._send("POST", url, step=step, data=data, json=json)

    async def _send(
        self, method: str, url: str, *, step: AuthStep, **kwargs: Any
    ) -> httpx.Response:
        safe_url = redact_query(url)
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(
                f"Request timed out during {step.value}",
                extra={"step": step.value, "url": safe_url},
            )
            raise ProviderTimeout(
                f"Request to identity provider timed out: {type(e).__name__}",
                step=step,
                context={"url": safe_url},
            ) from e
        except httpx.RequestError as e:
            logger.error(
                f"Network error during {step.value}: {type(e).__name__}",
                extra={"step": step.value, "url": safe_url},
            )
            raise TransportFailure(
                f"Network error: {e}",
                step=step,
                context={"url": safe_url},
            ) from e

        self._landed_url = str(response.url)
        logger.debug(
            f"{method} {safe_url} -> {response.status_code}",
            extra={
                "step": step.value,
                "landed_url": redact_query(self._landed_url),
                "redirects": len(response.history),
            },
        )
        return response
