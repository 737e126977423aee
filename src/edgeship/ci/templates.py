"""CI workflow generation from Jinja2 templates."""

from typing import Any

from jinja2 import Environment, PackageLoader, StrictUndefined

from edgeship.config import ProfileConfig
from edgeship.deploy.project import PackageManager

GITHUB_TEMPLATE = "github-workflow.yml.j2"
GITLAB_TEMPLATE = "gitlab-ci.yml.j2"

DEFAULT_NODE_VERSION = "20"
DEFAULT_PYTHON_VERSION = "3.12"

_env = Environment(
    loader=PackageLoader("edgeship", "templates"),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


def _template_vars(
    config: ProfileConfig | None,
    package_manager: PackageManager,
    node_version: str,
    python_version: str,
    project_path: str,
    branches: list[str] | None,
) -> dict[str, Any]:
    config = config or ProfileConfig()
    secrets = [*config.deploy.required_secrets, *config.deploy.secret_keys, "SLACK_WEBHOOK_URL", "DEPLOYMENT_WEBHOOK_URL"]
    branches = branches or ["main", "staging"]
    return {
        "branches": branches,
        "production_branch": branches[0],
        "node_version": node_version,
        "python_version": python_version,
        "package_manager": package_manager.value,
        "node_cache": None if package_manager is PackageManager.BUN else package_manager.value,
        "install_command": " ".join([package_manager.value, *package_manager.install_args()]),
        "test_command": " ".join([package_manager.value, *package_manager.script_args("test")]),
        "project_path": project_path,
        "secrets": list(dict.fromkeys(secrets)),
    }


def generate_github_workflow(
    config: ProfileConfig | None = None,
    package_manager: PackageManager = PackageManager.NPM,
    node_version: str = DEFAULT_NODE_VERSION,
    python_version: str = DEFAULT_PYTHON_VERSION,
    project_path: str = ".",
    branches: list[str] | None = None,
) -> str:
    """Render a GitHub Actions workflow that runs ``edgeship deploy ci``.

    The first branch is treated as the production branch.
    """
    template = _env.get_template(GITHUB_TEMPLATE)
    return template.render(
        **_template_vars(config, package_manager, node_version, python_version, project_path, branches)
    )


def generate_gitlab_ci(
    config: ProfileConfig | None = None,
    package_manager: PackageManager = PackageManager.NPM,
    node_version: str = DEFAULT_NODE_VERSION,
    python_version: str = DEFAULT_PYTHON_VERSION,
    project_path: str = ".",
    branches: list[str] | None = None,
) -> str:
    """Render a .gitlab-ci.yml with a test stage and an ``edgeship deploy ci`` stage."""
    template = _env.get_template(GITLAB_TEMPLATE)
    return template.render(
        **_template_vars(config, package_manager, node_version, python_version, project_path, branches)
    )
