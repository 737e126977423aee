"""Deployment notifications."""

from edgeship.notify.dispatcher import DeploymentOutcome, NotificationDispatcher

__all__ = ["DeploymentOutcome", "NotificationDispatcher"]
