"""HTTP client for the backend's edge functions.

Every collaborator the dashboard talks to (LinkedIn linking and sending,
the automation gateway, account deletion) is exposed as an edge function
taking a JSON body over POST. This client maps transport failures to a
small exception hierarchy so callers can tell "not reachable" apart from
"reachable but refused".

Usage:
    client = get_edge_function_client()
    try:
        result = await client.invoke("linkedin-send-message", payload)
    finally:
        await client.close()
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class EdgeFunctionError(Exception):
    """Base exception for edge function calls."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class EdgeFunctionNotConfiguredError(EdgeFunctionError):
    """Raised when no edge function base URL is configured."""
    pass


class EdgeFunctionConnectionError(EdgeFunctionError):
    """Raised when the edge function host cannot be reached."""
    pass


class EdgeFunctionTimeoutError(EdgeFunctionError):
    """Raised when an edge function call times out."""
    pass


class EdgeFunctionResponseError(EdgeFunctionError):
    """Raised on a non-2xx response or a body that is not a JSON object."""
    pass


UNAVAILABLE_ERRORS = (
    EdgeFunctionNotConfiguredError,
    EdgeFunctionConnectionError,
    EdgeFunctionTimeoutError,
)


# =============================================================================
# CLIENT
# =============================================================================


@dataclass
class EdgeFunctionConfig:
    base_url: str
    api_key: Optional[str] = None
    timeout: float = 30.0


class EdgeFunctionClient:
    """Async client for POSTing JSON to named edge functions."""

    def __init__(
        self,
        config: EdgeFunctionConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            config: Base URL, key and timeout.
            transport: Optional transport (tests pass httpx.MockTransport).
        """
        self.config = config
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            headers = {"Content-Type": "application/json"}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
                headers["apikey"] = self.config.api_key
            self._http_client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def invoke(self, name: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST a JSON payload to an edge function and return its JSON body.

        Raises:
            EdgeFunctionConnectionError: Host unreachable.
            EdgeFunctionTimeoutError: Request timed out.
            EdgeFunctionResponseError: Non-2xx status or non-object body.
        """
        client = await self._get_http_client()

        try:
            response = await client.post(f"/{name}", json=payload)
        except httpx.TimeoutException as e:
            raise EdgeFunctionTimeoutError(f"Timeout calling {name}: {e}") from e
        except httpx.TransportError as e:
            raise EdgeFunctionConnectionError(f"Connection error calling {name}: {e}") from e

        body = _decode(response)
        if not response.is_success:
            message = _error_text(body) or f"HTTP {response.status_code}"
            raise EdgeFunctionResponseError(
                f"{name} failed: {message}",
                status_code=response.status_code,
                body=body,
            )
        if not isinstance(body, dict):
            raise EdgeFunctionResponseError(
                f"{name} returned an invalid response format",
                status_code=response.status_code,
                body=body,
            )
        return body

    async def probe(self, name: str) -> bool:
        """Check with an OPTIONS request whether an edge function is deployed."""
        client = await self._get_http_client()
        try:
            response = await client.options(f"/{name}")
        except httpx.HTTPError as e:
            logger.warning(f"Edge function {name} is unreachable: {e}")
            return False
        return response.is_success


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def _error_text(body: Any) -> Optional[str]:
    if isinstance(body, dict):
        return body.get("error") or body.get("message")
    if isinstance(body, str):
        return body[:200]
    return None


# =============================================================================
# FACTORY FUNCTION
# =============================================================================


def get_edge_function_client(
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> EdgeFunctionClient:
    """Create an EdgeFunctionClient from settings.

    Raises:
        EdgeFunctionNotConfiguredError: If FUNCTIONS_BASE_URL is not set.
    """
    from coldai_core.config import get_settings

    settings = get_settings()
    if not settings.functions_base_url:
        raise EdgeFunctionNotConfiguredError("FUNCTIONS_BASE_URL not configured")

    return EdgeFunctionClient(
        EdgeFunctionConfig(
            base_url=settings.functions_base_url,
            api_key=settings.functions_api_key,
            timeout=settings.functions_timeout_seconds,
        ),
        transport=transport,
    )
