"""CI provider detection, environment inference and option assembly."""

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from edgeship.clients.cloudflare import CloudflareClient
from edgeship.config import ProfileConfig
from edgeship.core.exceptions import AuthenticationError, MissingSecretsError
from edgeship.core.logging import StructuredLogger
from edgeship.core.process import ProcessContext
from edgeship.deploy.models import DEVELOPMENT, PREVIEW, PRODUCTION, STAGING, DeploymentOptions

logger = StructuredLogger(__name__)

UNKNOWN = "unknown"


class CIProvider(str, Enum):
    """Supported CI providers."""

    GITHUB = "github"
    GITLAB = "gitlab"
    JENKINS = "jenkins"
    AZURE = "azure"
    CIRCLECI = "circleci"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ProviderVars:
    """Where a provider exposes its build metadata."""

    provider: CIProvider
    sentinels: tuple[str, ...]
    branch: tuple[str, ...] = ()
    commit: tuple[str, ...] = ()
    ref: str | None = None
    event: str | None = None


# Probed in order; the first provider with a sentinel set wins
PROVIDERS: tuple[ProviderVars, ...] = (
    ProviderVars(
        CIProvider.GITHUB,
        sentinels=("GITHUB_ACTIONS",),
        branch=("GITHUB_HEAD_REF", "GITHUB_REF_NAME"),
        commit=("GITHUB_SHA",),
        ref="GITHUB_REF",
        event="GITHUB_EVENT_NAME",
    ),
    ProviderVars(
        CIProvider.GITLAB,
        sentinels=("GITLAB_CI",),
        branch=("CI_COMMIT_REF_NAME",),
        commit=("CI_COMMIT_SHA",),
        ref="CI_COMMIT_REF_NAME",
        event="CI_PIPELINE_SOURCE",
    ),
    ProviderVars(
        CIProvider.JENKINS,
        sentinels=("JENKINS_URL",),
        branch=("BRANCH_NAME", "GIT_BRANCH"),
        commit=("GIT_COMMIT",),
    ),
    ProviderVars(
        CIProvider.AZURE,
        sentinels=("AZURE_PIPELINES_BUILD_ID", "TF_BUILD"),
        branch=("BUILD_SOURCEBRANCHNAME",),
        commit=("BUILD_SOURCEVERSION",),
        ref="BUILD_SOURCEBRANCH",
        event="BUILD_REASON",
    ),
    ProviderVars(
        CIProvider.CIRCLECI,
        sentinels=("CIRCLECI",),
        branch=("CIRCLE_BRANCH",),
        commit=("CIRCLE_SHA1",),
    ),
)

GENERIC_BRANCH_VAR = "BRANCH_NAME"
GENERIC_COMMIT_VAR = "GIT_COMMIT"


# (predicate(ref, event), environment); first match wins
ProviderRule = tuple[Callable[[str | None, str | None], bool], str]

PROVIDER_RULES: dict[CIProvider, list[ProviderRule]] = {
    CIProvider.GITHUB: [
        (lambda ref, event: ref == "refs/heads/main" and event == "push", PRODUCTION),
        (lambda ref, event: ref == "refs/heads/staging" and event == "push", STAGING),
        (lambda ref, event: event == "pull_request", PREVIEW),
    ],
    CIProvider.GITLAB: [
        (lambda ref, event: ref in ("main", "master"), PRODUCTION),
        (lambda ref, event: ref == "staging", STAGING),
        (lambda ref, event: event == "merge_request_event", PREVIEW),
    ],
}

BRANCH_RULES: dict[str, str] = {
    "main": PRODUCTION,
    "master": PRODUCTION,
    "staging": STAGING,
}


def infer_environment(
    provider: CIProvider,
    ref: str | None,
    event: str | None,
    branch: str | None,
) -> str:
    """Map CI metadata to a target environment.

    Provider rules are tried first, then the branch name; anything else
    deploys to development.
    """
    for predicate, environment in PROVIDER_RULES.get(provider, []):
        if predicate(ref, event):
            return environment
    return BRANCH_RULES.get(branch or "", DEVELOPMENT)


@dataclass(frozen=True)
class CIContext:
    """Snapshot of the CI run being deployed."""

    provider: CIProvider
    branch: str
    commit: str
    ref: str | None
    event: str | None
    environment: str
    repository: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "provider": self.provider.value,
            "branch": self.branch,
            "commit": self.commit,
            "ref": self.ref,
            "event": self.event,
            "environment": self.environment,
            "repository": self.repository,
        }


class NameResolver:
    """Maps environment variable names to destination names.

    Rules are ``(pattern, transform)`` pairs tried in order against each
    variable name; the first full match decides the destination name. When
    two variables resolve to the same destination, the earlier rule wins.
    """

    def __init__(self, rules: Sequence[tuple[str, Callable[[re.Match[str]], str]]]):
        self._rules = [(re.compile(pattern), transform) for pattern, transform in rules]

    def resolve_name(self, name: str) -> tuple[int, str] | None:
        """Rule index and destination name for a variable, or None."""
        for index, (pattern, transform) in enumerate(self._rules):
            match = pattern.fullmatch(name)
            if match:
                return index, transform(match)
        return None

    def collect(self, environ: Mapping[str, str]) -> dict[str, str]:
        """Collect every non-empty variable some rule matches."""
        chosen: dict[str, tuple[int, str]] = {}
        for name in sorted(environ):
            value = environ[name]
            if not value:
                continue
            resolved = self.resolve_name(name)
            if resolved is None:
                continue
            priority, destination = resolved
            if destination not in chosen or priority < chosen[destination][0]:
                chosen[destination] = (priority, value)
        return {name: value for name, (_, value) in sorted(chosen.items())}


def _keep(match: re.Match[str]) -> str:
    return match.group(0)


def _captured(match: re.Match[str]) -> str:
    return match.group(1)


def variable_resolver(environment: str, prefixes: Sequence[str] = ("VITE_",)) -> NameResolver:
    """``NODE_ENV``, ``<ENV>_*`` and the configured prefixes, names unchanged."""
    rules: list[tuple[str, Callable[[re.Match[str]], str]]] = [
        ("NODE_ENV", _keep),
        (rf"{re.escape(environment.upper())}_\w+", _keep),
    ]
    rules += [(rf"{re.escape(prefix)}\w*", _keep) for prefix in prefixes]
    return NameResolver(rules)


def secret_resolver(environment: str, keys: Sequence[str]) -> NameResolver:
    """``<ENV>_<KEY>`` first, then bare ``<KEY>``, both stored as ``<KEY>``."""
    if not keys:
        return NameResolver([])
    alternatives = "|".join(re.escape(key) for key in keys)
    return NameResolver(
        [
            (rf"{re.escape(environment.upper())}_({alternatives})", _captured),
            (rf"({alternatives})", _captured),
        ]
    )


class CIEnvironmentResolver:
    """Turns the CI process environment into a CIContext and DeploymentOptions."""

    def __init__(
        self,
        process: ProcessContext | None = None,
        config: ProfileConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._process = process or ProcessContext.from_os()
        self._config = config or ProfileConfig()
        self._transport = transport
        self._context: CIContext | None = None

    def detect_provider(self) -> ProviderVars | None:
        for provider in PROVIDERS:
            if any(self._process.has(name) for name in provider.sentinels):
                return provider
        return None

    def resolve(self, environment: str | None = None) -> CIContext:
        """Compute the CI context.

        Args:
            environment: Explicit target, overriding inference
        """
        if self._context is not None and environment in (None, self._context.environment):
            return self._context

        vars_ = self.detect_provider()
        provider = vars_.provider if vars_ else CIProvider.UNKNOWN
        branch_vars = (vars_.branch if vars_ else ()) + (GENERIC_BRANCH_VAR,)
        commit_vars = (vars_.commit if vars_ else ()) + (GENERIC_COMMIT_VAR,)

        branch = self._process.first(*branch_vars, default=UNKNOWN) or UNKNOWN
        if branch.startswith("origin/"):
            branch = branch[len("origin/"):]
        commit = self._process.first(*commit_vars, default=UNKNOWN) or UNKNOWN
        ref = self._process.get(vars_.ref) if vars_ and vars_.ref else None
        event = self._process.get(vars_.event) if vars_ and vars_.event else None

        context = CIContext(
            provider=provider,
            branch=branch,
            commit=commit,
            ref=ref,
            event=event,
            environment=environment or infer_environment(provider, ref, event, branch),
            repository=self._process.first("GITHUB_REPOSITORY", "CI_PROJECT_PATH"),
        )
        self._context = context
        logger.debug("Resolved CI context", **context.to_dict())
        return context

    def validate_secrets(self) -> None:
        """Fail fast when required secrets are absent.

        Raises:
            MissingSecretsError: Listing exactly the missing names
        """
        missing = [name for name in self._config.deploy.required_secrets if not self._process.has(name)]
        if missing:
            raise MissingSecretsError(missing)

    async def verify_credentials(self) -> dict[str, Any]:
        """Check the platform token against the identity endpoint.

        Raises:
            AuthenticationError: If the token is rejected
        """
        token = self._config.platform.get_api_token(self._process.environ)
        if not token:
            raise AuthenticationError("Cloudflare API token not configured")

        async with CloudflareClient(self._config.platform, token=token, transport=self._transport) as client:
            result = await client.verify_token()
        logger.debug("Cloudflare credentials verified", status=result.get("status"))
        return result

    def collect_environment_variables(self, environment: str) -> dict[str, str]:
        resolver = variable_resolver(environment, self._config.deploy.variable_prefixes)
        return resolver.collect(self._process.environ)

    def collect_secrets(self, environment: str) -> dict[str, str]:
        resolver = secret_resolver(environment, self._config.deploy.secret_keys)
        return resolver.collect(self._process.environ)

    def build_options(self, environment: str, **overrides: Any) -> DeploymentOptions:
        """Environment defaults, then caller overrides.

        Variables and secrets collected from the process are merged under any
        maps the caller passes, so caller entries win per name.
        """
        variables = self.collect_environment_variables(environment)
        variables.update(overrides.pop("environment_variables", None) or {})
        secrets = self.collect_secrets(environment)
        secrets.update(overrides.pop("secrets", None) or {})
        return DeploymentOptions.for_environment(
            environment,
            environment_variables=variables,
            secrets=secrets,
            **overrides,
        )
