"""Deployment data models."""

import itertools
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from edgeship.core.exceptions import VerificationError

DEVELOPMENT = "development"
PRODUCTION = "production"
STAGING = "staging"
PREVIEW = "preview"


class PipelineStep(str, Enum):
    """Pipeline stages, in execution order."""

    VALIDATE = "validate"
    SETUP_ENVIRONMENT = "setup_environment"
    BUILD_AND_TEST = "build_and_test"
    CONFIGURE_PLATFORM = "configure_platform"
    DEPLOY = "deploy"
    VERIFY_POST_DEPLOY = "verify_post_deploy"
    REPORT = "report"

    @property
    def label(self) -> str:
        """Human-readable stage name."""
        return STEP_LABELS[self]

    @property
    def index(self) -> int:
        """Position of the step in the pipeline."""
        return PIPELINE_STEPS.index(self)


STEP_LABELS = {
    PipelineStep.VALIDATE: "Pre-deployment validation",
    PipelineStep.SETUP_ENVIRONMENT: "Environment setup",
    PipelineStep.BUILD_AND_TEST: "Code build and test",
    PipelineStep.CONFIGURE_PLATFORM: "Wrangler configuration",
    PipelineStep.DEPLOY: "Deployment execution",
    PipelineStep.VERIFY_POST_DEPLOY: "Post-deployment verification",
    PipelineStep.REPORT: "Status reporting",
}

PIPELINE_STEPS: tuple[PipelineStep, ...] = tuple(PipelineStep)


class SessionStatus(str, Enum):
    """Deployment session status."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StepStatus(str, Enum):
    """Status of one pipeline step."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


_id_lock = threading.Lock()
_last_id_ms = 0


def new_deployment_id() -> str:
    """Timestamp-derived id, strictly increasing within the process."""
    global _last_id_ms
    with _id_lock:
        now_ms = int(time.time() * 1000)
        _last_id_ms = max(now_ms, _last_id_ms + 1)
        return f"deploy_{_last_id_ms}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DeploymentOptions(BaseModel):
    """Immutable deployment options."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    environment: str = DEVELOPMENT
    install_dependencies: bool = True
    run_tests: bool = True
    build: bool = True
    enable_rollback: bool | None = None
    dry_run: bool = False
    run_post_deploy_tests: bool = False
    environment_variables: dict[str, str] = Field(default_factory=dict)
    secrets: dict[str, str] = Field(default_factory=dict)

    @property
    def rollback_enabled(self) -> bool:
        """Rollback defaults to on for production only."""
        if self.enable_rollback is None:
            return self.environment == PRODUCTION
        return self.enable_rollback

    @property
    def is_development(self) -> bool:
        return self.environment == DEVELOPMENT

    @classmethod
    def for_environment(cls, environment: str, **overrides: Any) -> "DeploymentOptions":
        """Merge environment defaults with caller overrides."""
        defaults: dict[str, Any] = dict(ENVIRONMENT_DEFAULTS.get(environment, {}))
        defaults.update({k: v for k, v in overrides.items() if v is not None})
        defaults["environment"] = environment
        return cls(**defaults)


ENVIRONMENT_DEFAULTS: dict[str, dict[str, Any]] = {
    PRODUCTION: {"enable_rollback": True, "run_post_deploy_tests": True},
    STAGING: {"enable_rollback": False, "run_post_deploy_tests": True},
    PREVIEW: {"enable_rollback": False},
    DEVELOPMENT: {"enable_rollback": False},
}


@dataclass(frozen=True)
class RollbackPoint:
    """Reference to the deployment that was live before this session."""

    can_rollback: bool
    last_deployment_id: str | None = None
    captured_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "can_rollback": self.can_rollback,
            "last_deployment_id": self.last_deployment_id,
            "captured_at": self.captured_at.isoformat(),
        }


@dataclass(frozen=True)
class DeploymentResult:
    """Terminal record of one deployment session."""

    success: bool
    deployment_id: str
    environment: str
    url: str | None = None
    duration: float = 0.0
    timestamp: str = field(default_factory=lambda: utc_now().isoformat())
    dry_run: bool = False
    verification_passed: bool | None = None
    error: str | None = None
    failed_step: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data: dict[str, Any] = {
            "success": self.success,
            "deploymentId": self.deployment_id,
            "url": self.url,
            "duration": round(self.duration, 3),
            "timestamp": self.timestamp,
            "environment": self.environment,
            "dryRun": self.dry_run,
            "verificationPassed": self.verification_passed,
        }
        if self.error is not None:
            data["error"] = self.error
            data["failedStep"] = self.failed_step
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeploymentResult":
        """Create from dictionary."""
        return cls(
            success=bool(data.get("success", False)),
            deployment_id=data["deploymentId"],
            environment=data.get("environment", DEVELOPMENT),
            url=data.get("url"),
            duration=float(data.get("duration", 0.0)),
            timestamp=data.get("timestamp", ""),
            dry_run=bool(data.get("dryRun", False)),
            verification_passed=data.get("verificationPassed"),
            error=data.get("error"),
            failed_step=data.get("failedStep"),
        )


@dataclass
class DeploymentSession:
    """Mutable state of one in-flight deployment."""

    deployment_id: str = field(default_factory=new_deployment_id)
    steps: tuple[PipelineStep, ...] = PIPELINE_STEPS
    rollback_point: RollbackPoint | None = None
    started_at: datetime = field(default_factory=utc_now)
    status: SessionStatus = SessionStatus.PENDING
    current_step: PipelineStep | None = None
    step_status: dict[PipelineStep, StepStatus] = field(
        default_factory=lambda: {step: StepStatus.PENDING for step in PIPELINE_STEPS}
    )
    url: str | None = None
    verification_errors: list[VerificationError] = field(default_factory=list)
    result: DeploymentResult | None = None

    def start_step(self, step: PipelineStep) -> None:
        self.current_step = step
        self.step_status[step] = StepStatus.RUNNING

    def finish_step(self, step: PipelineStep, status: StepStatus = StepStatus.SUCCEEDED) -> None:
        self.step_status[step] = status

    @property
    def failed_step(self) -> PipelineStep | None:
        for step, status in self.step_status.items():
            if status == StepStatus.FAILED:
                return step
        return None

    @property
    def elapsed(self) -> float:
        return (utc_now() - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "deployment_id": self.deployment_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "current_step": self.current_step.value if self.current_step else None,
            "steps": {step.value: status.value for step, status in self.step_status.items()},
            "rollback_point": self.rollback_point.to_dict() if self.rollback_point else None,
            "url": self.url,
            "verification_errors": [error.message for error in self.verification_errors],
        }
