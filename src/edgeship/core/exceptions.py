"""Custom exceptions for edgeship."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from edgeship.deploy.models import PipelineStep


class EdgeshipError(Exception):
    """Base exception for all edgeship errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ConfigError(EdgeshipError):
    """Configuration-related errors."""

    pass


class AuthenticationError(EdgeshipError):
    """Platform credentials were rejected."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code


class MissingSecretsError(EdgeshipError):
    """Required CI secrets are not present in the environment."""

    def __init__(self, missing: list[str]):
        super().__init__(f"Missing required secrets: {', '.join(missing)}")
        self.missing = list(missing)


class HTTPClientError(EdgeshipError):
    """HTTP API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code


class DeploymentError(EdgeshipError):
    """Deployment pipeline errors.

    Carries the pipeline stage that failed and the raw output captured from
    the external command, if any.
    """

    def __init__(
        self,
        message: str,
        stage: "PipelineStep | None" = None,
        output: str = "",
        stderr: str = "",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.stage = stage
        self.output = output
        self.stderr = stderr

    def __str__(self) -> str:
        text = self.message
        if self.stage is not None:
            text = f"[{self.stage.label}] {text}"
        if self.details:
            text = f"{text} - {self.details}"
        return text


class ProjectValidationError(DeploymentError):
    """Project structure or configuration is invalid."""

    pass


class PrerequisiteError(DeploymentError):
    """Platform CLI missing or not authenticated."""

    pass


class EnvironmentSetupError(DeploymentError):
    """Dependency install or variable/secret push failed."""

    pass


class BuildError(DeploymentError):
    """Project build script failed."""

    pass


class TestFailureError(DeploymentError):
    """Project test script failed."""

    __test__ = False


class PlatformConfigError(DeploymentError):
    """Platform manifest rejected by the CLI."""

    pass


class DeployError(DeploymentError):
    """The platform deploy command failed."""

    pass


class VerificationError(DeploymentError):
    """Post-deployment verification failed. Recorded, never raised to callers."""

    pass
