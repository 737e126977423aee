"""HTTP API clients."""

from edgeship.clients.cloudflare import CloudflareClient
from edgeship.clients.github import GitHubClient

__all__ = ["CloudflareClient", "GitHubClient"]
