"""Cloudflare API client using httpx."""

from typing import Any

import httpx

from edgeship.config import PlatformConfig
from edgeship.core.exceptions import AuthenticationError, HTTPClientError
from edgeship.core.logging import get_logger

logger = get_logger(__name__)


class CloudflareClient:
    """Async client for the Cloudflare v4 REST API."""

    def __init__(
        self,
        config: PlatformConfig,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config
        self._token = token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            token = self._token or self._config.get_api_token()

            if not token:
                raise AuthenticationError("Cloudflare API token not configured")

            headers = {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            }

            self._client = httpx.AsyncClient(
                base_url=self._config.api_base_url.rstrip("/"),
                headers=headers,
                timeout=self._config.timeout,
                transport=self._transport,
            )

            logger.debug("Created Cloudflare client")

        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Make an API request.

        Cloudflare wraps every response in an envelope with a ``success``
        flag, which can be false even on a 200.
        """
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            try:
                errors = e.response.json().get("errors") or []
                message = "; ".join(err.get("message", "") for err in errors) or str(e)
            except ValueError:
                message = e.response.text or str(e)
            raise HTTPClientError(f"HTTP {status_code}: {message}", status_code=status_code)
        except httpx.RequestError as e:
            raise HTTPClientError(f"Request failed: {e}")
        except ValueError as e:
            raise HTTPClientError(f"Invalid JSON response: {e}")

        if not isinstance(data, dict) or not data.get("success", False):
            errors = data.get("errors") if isinstance(data, dict) else None
            raise HTTPClientError("Cloudflare API error", status_code=response.status_code, details={"errors": errors})

        return data

    async def verify_token(self) -> dict[str, Any]:
        """Verify the API token against the identity endpoint.

        Raises:
            AuthenticationError: If the token is rejected or cannot be checked
        """
        try:
            data = await self._request("GET", "/user/tokens/verify")
        except HTTPClientError as e:
            raise AuthenticationError(
                f"Cloudflare credential validation failed: {e.message}",
                status_code=e.status_code,
            )
        return data.get("result") or {}

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "CloudflareClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
