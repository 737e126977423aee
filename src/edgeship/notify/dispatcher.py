"""Best-effort deployment notifications."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from edgeship.ci.resolver import CIContext
from edgeship.clients.github import GitHubClient
from edgeship.config import NotificationsConfig
from edgeship.core.async_utils import settle_all
from edgeship.core.exceptions import HTTPClientError
from edgeship.core.logging import StructuredLogger
from edgeship.core.process import ProcessContext
from edgeship.deploy.models import DeploymentResult, utc_now

logger = StructuredLogger(__name__)

EVENT_COMPLETED = "deployment.completed"
EVENT_FAILED = "deployment.failed"


@dataclass(frozen=True)
class DeploymentOutcome:
    """What happened, for notification channels."""

    success: bool
    environment: str
    context: CIContext
    deployment_id: str | None = None
    result: DeploymentResult | None = None
    error: str | None = None

    @property
    def status(self) -> str:
        return "success" if self.success else "failure"

    @property
    def url(self) -> str | None:
        return self.result.url if self.result else None

    @property
    def duration(self) -> float | None:
        return self.result.duration if self.result else None

    @classmethod
    def succeeded(cls, result: DeploymentResult, context: CIContext) -> "DeploymentOutcome":
        return cls(
            success=True,
            environment=result.environment,
            context=context,
            deployment_id=result.deployment_id,
            result=result,
        )

    @classmethod
    def failed(
        cls,
        error: BaseException,
        context: CIContext,
        deployment_id: str | None = None,
    ) -> "DeploymentOutcome":
        return cls(
            success=False,
            environment=context.environment,
            context=context,
            deployment_id=deployment_id,
            error=str(error),
        )


def build_slack_payload(outcome: DeploymentOutcome) -> dict[str, Any]:
    """Slack incoming-webhook message."""
    context = outcome.context
    if outcome.success:
        duration = outcome.duration or 0.0
        return {
            "text": f"🚀 Deployment to {outcome.environment} completed successfully",
            "attachments": [
                {
                    "color": "good",
                    "fields": [
                        {"title": "Environment", "value": outcome.environment, "short": True},
                        {"title": "URL", "value": outcome.url or "n/a", "short": True},
                        {"title": "Duration", "value": f"{duration:.2f}s", "short": True},
                        {"title": "Branch", "value": context.branch, "short": True},
                    ],
                }
            ],
        }

    return {
        "text": f"❌ Deployment to {outcome.environment} failed",
        "attachments": [
            {
                "color": "danger",
                "fields": [
                    {"title": "Error", "value": outcome.error or "unknown error", "short": False},
                    {"title": "Branch", "value": context.branch, "short": True},
                    {"title": "CI", "value": context.provider.value, "short": True},
                ],
            }
        ],
    }


def build_webhook_payload(outcome: DeploymentOutcome) -> dict[str, Any]:
    """Generic outcome webhook body."""
    payload: dict[str, Any] = {
        "event": EVENT_COMPLETED if outcome.success else EVENT_FAILED,
        "deployment": {
            "id": outcome.deployment_id,
            "environment": outcome.environment,
            "url": outcome.url,
            "duration": outcome.duration,
            "timestamp": outcome.result.timestamp if outcome.result else utc_now().isoformat(),
        },
        "repository": {
            "branch": outcome.context.branch,
            "commit": outcome.context.commit,
        },
        "ci": outcome.context.provider.value,
    }
    if outcome.error is not None:
        payload["error"] = outcome.error
    return payload


def build_commit_comment(outcome: DeploymentOutcome) -> str:
    """Markdown body for the GitHub commit comment."""
    if outcome.success:
        lines = [f"✅ **Deployed to {outcome.environment}**", ""]
        if outcome.url:
            lines.append(f"- URL: {outcome.url}")
        lines.append(f"- Deployment: `{outcome.deployment_id}`")
        if outcome.duration is not None:
            lines.append(f"- Duration: {outcome.duration:.2f}s")
    else:
        lines = [f"❌ **Deployment to {outcome.environment} failed**", ""]
        if outcome.deployment_id:
            lines.append(f"- Deployment: `{outcome.deployment_id}`")
        lines.append(f"- Error: {outcome.error}")
    return "\n".join(lines)


async def post_json(
    url: str,
    payload: dict[str, Any],
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """POST a JSON payload; any non-2xx status is an error."""
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise HTTPClientError(f"HTTP {e.response.status_code}", status_code=e.response.status_code)
    except httpx.RequestError as e:
        raise HTTPClientError(f"Request failed: {e}")


class NotificationChannel(ABC):
    """One notification target."""

    name: str = "channel"

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """Whether the channel's target is configured."""
        pass

    def accepts(self, outcome: DeploymentOutcome) -> bool:
        """Whether this outcome can be delivered at all."""
        return True

    @abstractmethod
    async def send(self, outcome: DeploymentOutcome) -> None:
        """Deliver the outcome; raise on failure."""
        pass


class SlackWebhookChannel(NotificationChannel):
    name = "slack"

    def __init__(self, url: str | None, timeout: float = 10, transport: httpx.AsyncBaseTransport | None = None):
        self._url = url
        self._timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._url)

    async def send(self, outcome: DeploymentOutcome) -> None:
        assert self._url
        await post_json(self._url, build_slack_payload(outcome), self._timeout, self._transport)


class WebhookChannel(NotificationChannel):
    name = "webhook"

    def __init__(self, url: str | None, timeout: float = 10, transport: httpx.AsyncBaseTransport | None = None):
        self._url = url
        self._timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._url)

    async def send(self, outcome: DeploymentOutcome) -> None:
        assert self._url
        await post_json(self._url, build_webhook_payload(outcome), self._timeout, self._transport)


class GitHubCommentChannel(NotificationChannel):
    """Comments on the deployed commit."""

    name = "github"

    def __init__(
        self,
        config: NotificationsConfig,
        token: str | None,
        repository: str | None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config
        self._token = token
        self._repository = repository
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._token and self._repository)

    def accepts(self, outcome: DeploymentOutcome) -> bool:
        return outcome.context.commit not in ("", "unknown")

    async def send(self, outcome: DeploymentOutcome) -> None:
        commit = outcome.context.commit
        async with GitHubClient(self._config, token=self._token, transport=self._transport) as client:
            await client.create_commit_comment(self._repository or "", commit, build_commit_comment(outcome))


class NotificationDispatcher:
    """Sends an outcome to every enabled channel concurrently.

    A failing channel is logged and reported as undelivered; it never
    affects the other channels or the caller.
    """

    def __init__(self, channels: list[NotificationChannel]):
        self._channels = channels

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    @classmethod
    def from_config(
        cls,
        config: NotificationsConfig,
        process: ProcessContext,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "NotificationDispatcher":
        env = process.environ
        return cls(
            [
                GitHubCommentChannel(
                    config,
                    token=config.get_github_token(env),
                    repository=process.get("GITHUB_REPOSITORY"),
                    transport=transport,
                ),
                SlackWebhookChannel(config.get_slack_webhook_url(env), config.timeout, transport),
                WebhookChannel(config.get_webhook_url(env), config.timeout, transport),
            ]
        )

    async def notify(self, outcome: DeploymentOutcome) -> dict[str, bool]:
        """Deliver to all enabled channels.

        Returns:
            Map of channel name to whether delivery succeeded
        """
        enabled = [channel for channel in self._channels if channel.enabled and channel.accepts(outcome)]
        if not enabled:
            logger.debug("No notification channels configured")
            return {}

        results = await settle_all(*(channel.send(outcome) for channel in enabled))

        delivered: dict[str, bool] = {}
        for channel, result in zip(enabled, results):
            if isinstance(result, BaseException):
                logger.warning(f"Failed to send {channel.name} notification", error=str(result))
                delivered[channel.name] = False
            else:
                logger.debug(f"Sent {channel.name} notification", status=outcome.status)
                delivered[channel.name] = True
        return delivered
