"""REST client for the live-chat service API."""

import logging
from collections.abc import Callable
from typing import Any

import httpx

from chatbridge.core.config.models import BridgeConfig
from chatbridge.core.errors import NetworkError, ValidationError

logger = logging.getLogger(__name__)


class ChatApiClient:
    """Thin async client for the live-chat service's REST endpoints.

    Used for user registration, agent availability and survey lookups.
    Every failure surfaces as ``NetworkError``.
    """

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        base_url: str,
        app_id: str,
        token_provider: Callable[[], str | None] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Root URL of the service API.
            app_id: Application id sent with every request.
            token_provider: Returns the current auth token, if any.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.base_url = base_url.rstrip("/")
        self.app_id = app_id
        self._token_provider = token_provider
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: BridgeConfig,
        token_provider: Callable[[], str | None] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ChatApiClient":
        """Build a client pointed at the configured server.

        Raises:
            ValidationError: If no server URL is configured.
        """
        if not config.server:
            raise ValidationError("A 'server' URL is required to build the REST client")
        return cls(config.server, config.app_id, token_provider=token_provider, transport=transport)

    def _headers(self) -> dict[str, str]:
        headers = {"X-Application-Id": self.app_id}
        token = self._token_provider() if self._token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        path: str,
        method: str = "GET",
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Call an API endpoint and return the decoded JSON body.

        GET parameters are sent in the query string, other methods send them
        as a JSON body.

        Raises:
            NetworkError: On transport failures, error statuses or non-JSON bodies.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        method = method.upper()
        kwargs: dict[str, Any] = {"headers": self._headers()}
        if params:
            if method == "GET":
                kwargs["params"] = params
            else:
                kwargs["json"] = params

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                raise NetworkError(
                    f"Chat API HTTP error on {method} {path}: {e.response.status_code}"
                ) from e
            except httpx.RequestError as e:
                raise NetworkError(f"Chat API request failed on {method} {path}: {e}") from e
            except ValueError as e:
                raise NetworkError(f"Chat API returned invalid JSON on {method} {path}") from e

        logger.debug(f"Chat API {method} {path} -> {response.status_code}")
        return data if isinstance(data, dict) else {"data": data}
