"""GitHub API client using httpx."""

from typing import Any

import httpx

from edgeship.config import NotificationsConfig
from edgeship.core.exceptions import AuthenticationError, HTTPClientError
from edgeship.core.logging import get_logger

logger = get_logger(__name__)


class GitHubClient:
    """Async client for the parts of the GitHub REST API used for deploy status."""

    def __init__(
        self,
        config: NotificationsConfig,
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
            token = self._token or self._config.get_github_token()

            if not token:
                raise AuthenticationError("GitHub token not configured")

            headers = {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }

            self._client = httpx.AsyncClient(
                base_url=self._config.github_api_url.rstrip("/"),
                headers=headers,
                timeout=self._config.timeout,
                follow_redirects=True,
                transport=self._transport,
            )

            logger.debug("Created GitHub client")

        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Make an API request."""
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()

            if response.content:
                return response.json()
            return None

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            try:
                message = e.response.json().get("message", str(e))
            except ValueError:
                message = e.response.text or str(e)

            raise HTTPClientError(message, status_code=status_code)

        except httpx.RequestError as e:
            raise HTTPClientError(f"Request failed: {e}")

    async def create_commit_comment(self, repository: str, sha: str, body: str) -> dict[str, Any]:
        """Comment on a commit.

        Args:
            repository: ``owner/name``
            sha: Commit SHA
            body: Markdown comment body
        """
        return await self._request("POST", f"/repos/{repository}/commits/{sha}/comments", json={"body": body})

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
