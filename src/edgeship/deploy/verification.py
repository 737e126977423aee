"""Post-deployment verification."""

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import httpx

from edgeship.core.logging import StructuredLogger

if TYPE_CHECKING:
    from edgeship.deploy.models import DeploymentOptions

logger = StructuredLogger(__name__)

HEALTH_CHECK_TIMEOUT = 5.0
ACCEPTED_STATUS = (200, 404)


@dataclass(frozen=True)
class HealthStatus:
    """Result of a single reachability probe."""

    healthy: bool
    status_code: int | None = None
    elapsed: float = 0.0
    error: str | None = None


async def quick_health_check(
    url: str,
    method: str = "HEAD",
    timeout: float = HEALTH_CHECK_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HealthStatus:
    """Probe a URL once.

    Any 2xx or 3xx response counts as healthy. Network errors are returned
    in the status, never raised.
    """
    start = time.monotonic()
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.request(method, url)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        return HealthStatus(healthy=False, elapsed=time.monotonic() - start, error=str(e) or type(e).__name__)

    return HealthStatus(
        healthy=200 <= response.status_code < 400,
        status_code=response.status_code,
        elapsed=time.monotonic() - start,
    )


class PostDeployTester(Protocol):
    """Smoke test run against a live deployment."""

    async def run(self, url: str, options: "DeploymentOptions") -> bool: ...


class HealthEndpointTester:
    """GETs each health path; a missing endpoint (404) is not a failure."""

    def __init__(
        self,
        paths: list[str] | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._paths = paths if paths is not None else ["/health", "/api/status"]
        self._timeout = timeout
        self._transport = transport

    async def run(self, url: str, options: "DeploymentOptions") -> bool:
        base = url.rstrip("/")
        passed = True

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            for path in self._paths:
                try:
                    response = await client.get(f"{base}{path}")
                except (httpx.HTTPError, httpx.InvalidURL) as e:
                    logger.warning("Post-deploy test request failed", path=path, error=str(e))
                    passed = False
                    continue

                if response.status_code not in ACCEPTED_STATUS:
                    logger.warning(
                        "Post-deploy test failed",
                        path=path,
                        status=response.status_code,
                        environment=options.environment,
                    )
                    passed = False

        return passed
