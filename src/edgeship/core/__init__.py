"""Core utilities and shared components for edgeship."""

# Note: Import context lazily to avoid circular imports
# Use: from edgeship.core.context import EdgeshipContext, pass_context
from edgeship.core.exceptions import ConfigError, DeploymentError, EdgeshipError
from edgeship.core.output import OutputFormatter, console

__all__ = [
    "EdgeshipError",
    "ConfigError",
    "DeploymentError",
    "OutputFormatter",
    "console",
]
