"""Tests for CI workflow generation."""

import yaml

from edgeship.ci.templates import generate_github_workflow, generate_gitlab_ci
from edgeship.config import DeployConfig, ProfileConfig
from edgeship.deploy.project import PackageManager


def load(content: str) -> dict:
    return yaml.safe_load(content)


class TestGitHubWorkflow:
    """Tests for the GitHub Actions workflow."""

    def test_defaults(self):
        content = generate_github_workflow()
        workflow = load(content)

        # PyYAML reads the bare "on" key as a boolean
        triggers = workflow.get("on", workflow.get(True))
        assert triggers["push"]["branches"] == ["main", "staging"]
        assert triggers["pull_request"]["branches"] == ["main"]

        steps = workflow["jobs"]["deploy"]["steps"]
        deploy = next(step for step in steps if step.get("id") == "deploy")
        assert deploy["run"] == "edgeship deploy ci ."
        assert deploy["env"]["CLOUDFLARE_API_TOKEN"] == "${{ secrets.CLOUDFLARE_API_TOKEN }}"
        assert deploy["env"]["GITHUB_TOKEN"] == "${{ secrets.GITHUB_TOKEN }}"
        assert "SLACK_WEBHOOK_URL" in deploy["env"]

        setup_node = next(step for step in steps if step["name"] == "Setup Node.js")
        assert setup_node["with"] == {"node-version": "20", "cache": "npm"}

    def test_custom_branches_and_secrets(self):
        config = ProfileConfig(deploy=DeployConfig(required_secrets=["CLOUDFLARE_API_TOKEN"], secret_keys=["STRIPE_KEY"]))

        workflow = load(
            generate_github_workflow(
                config,
                package_manager=PackageManager.PNPM,
                node_version="22",
                project_path="apps/site",
                branches=["release", "develop"],
            )
        )

        triggers = workflow.get("on", workflow.get(True))
        assert triggers["push"]["branches"] == ["release", "develop"]
        assert triggers["pull_request"]["branches"] == ["release"]

        deploy = next(step for step in workflow["jobs"]["deploy"]["steps"] if step.get("id") == "deploy")
        assert deploy["run"] == "edgeship deploy ci apps/site"
        assert set(deploy["env"]) == {
            "CLOUDFLARE_API_TOKEN",
            "STRIPE_KEY",
            "SLACK_WEBHOOK_URL",
            "DEPLOYMENT_WEBHOOK_URL",
            "GITHUB_TOKEN",
        }

    def test_bun_has_no_node_cache(self):
        workflow = load(generate_github_workflow(package_manager=PackageManager.BUN))
        setup_node = next(step for step in workflow["jobs"]["deploy"]["steps"] if step["name"] == "Setup Node.js")
        assert "cache" not in setup_node["with"]


class TestGitLabCI:
    """Tests for the GitLab CI pipeline."""

    def test_defaults(self):
        pipeline = load(generate_gitlab_ci())

        assert pipeline["stages"] == ["test", "deploy"]
        assert pipeline["test"]["before_script"] == ["npm ci"]
        assert pipeline["test"]["script"] == ["npm run test"]
        assert pipeline["deploy"]["script"] == ["edgeship deploy ci ."]
        assert pipeline["deploy"]["rules"] == [
            {"if": '$CI_COMMIT_BRANCH == "main"'},
            {"if": '$CI_COMMIT_BRANCH == "staging"'},
        ]

    def test_yarn(self):
        pipeline = load(generate_gitlab_ci(package_manager=PackageManager.YARN, node_version="18"))

        assert pipeline["test"]["before_script"] == ["yarn install --frozen-lockfile"]
        assert pipeline["variables"]["NODE_VERSION"] == "18"
        assert "nodejs18" in pipeline["deploy"]["image"]
