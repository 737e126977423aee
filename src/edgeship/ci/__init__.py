"""CI environment detection and the CI deployment wrapper.

Use: from edgeship.ci.pipeline import run_ci_deployment
"""

from edgeship.ci.resolver import CIContext, CIEnvironmentResolver, CIProvider, infer_environment

__all__ = ["CIContext", "CIEnvironmentResolver", "CIProvider", "infer_environment"]
