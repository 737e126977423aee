"""Deployment pipeline."""

from edgeship.deploy.models import (
    DeploymentOptions,
    DeploymentResult,
    DeploymentSession,
    PipelineStep,
    RollbackPoint,
)
from edgeship.deploy.state import DeploymentRecordStore

__all__ = [
    "DeploymentOptions",
    "DeploymentRecordStore",
    "DeploymentResult",
    "DeploymentSession",
    "PipelineStep",
    "RollbackPoint",
]
