"""Tests for CLI commands and help output.

Smoke tests for command registration plus end-to-end runs of the deploy
and ci groups against a fake command runner.
"""

import json

import pytest
import yaml
from click.testing import CliRunner

from edgeship.cli import cli
from edgeship.deploy.models import DeploymentResult
from edgeship.deploy.state import DeploymentRecordStore
from edgeship.deploy.verification import HealthStatus
from tests.fakes import FakeRunner


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Run commands from tmp_path."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def patched_runner(monkeypatch) -> FakeRunner:
    """Make the CLI context hand out a FakeRunner."""
    runner = FakeRunner()
    monkeypatch.setattr("edgeship.core.context.CommandRunner", lambda **kwargs: runner)
    return runner


# =============================================================================
# CLI Entry Point
# =============================================================================


class TestCLIEntryPoint:
    """Tests for main CLI entry point, flags, and options."""

    def test_help(self, cli_runner: CliRunner):
        """Test CLI help output."""
        result = cli_runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Edgeship" in result.output
        assert "deploy" in result.output
        assert "ci" in result.output
        assert "config" in result.output

    def test_version(self, cli_runner: CliRunner):
        """Test CLI version output."""
        result = cli_runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "edgeship version" in result.output

    def test_dry_run_flag(self, cli_runner: CliRunner, workspace):
        """Test dry-run flag is announced."""
        result = cli_runner.invoke(cli, ["--dry-run", "config"])
        assert result.exit_code == 0
        assert "dry-run" in result.output.lower()

    def test_config_json(self, cli_runner: CliRunner, workspace):
        """Test JSON output of the config command."""
        result = cli_runner.invoke(cli, ["--no-color", "-o", "json", "config"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["profile"] == "default"
        assert data["platform"]["cli"] == "wrangler"
        assert data["notifications"]["slack"] is False

    def test_invalid_output_format(self, cli_runner: CliRunner):
        """Test unknown formats are rejected."""
        result = cli_runner.invoke(cli, ["-o", "xml", "config"])
        assert result.exit_code != 0
        assert "Invalid format" in result.output

    def test_unknown_profile(self, cli_runner: CliRunner, workspace):
        """Test a missing profile is a configuration error."""
        result = cli_runner.invoke(cli, ["-p", "nope", "config"])
        assert result.exit_code == 1
        assert "Configuration error" in result.output


# =============================================================================
# Deploy Commands
# =============================================================================


class TestDeployCommands:
    """Tests for the deploy command group."""

    def test_deploy_help(self, cli_runner: CliRunner):
        result = cli_runner.invoke(cli, ["deploy", "--help"])
        assert result.exit_code == 0
        for command in ("run", "ci", "history", "show"):
            assert command in result.output

    def test_run_dry_run(self, cli_runner: CliRunner, workspace, patched_runner, make_project):
        """Test a dry-run deployment end to end."""
        project = make_project()

        result = cli_runner.invoke(
            cli,
            ["--no-color", "-o", "json", "deploy", "run", str(project), "-e", "staging", "--dry-run"],
        )

        assert result.exit_code == 0, result.output
        assert '"dryRun": true' in result.output
        assert patched_runner.calls_to("wrangler", "deploy")[-1].args == ["deploy", "--env", "staging", "--dry-run"]
        records = DeploymentRecordStore(workspace / ".deployment-reports").list()
        assert len(records) == 1

    def test_run_passes_vars_and_secrets(self, cli_runner: CliRunner, workspace, patched_runner, make_project, monkeypatch):
        """Test --var and --secret reach the secret pushes."""
        monkeypatch.setattr("edgeship.deploy.orchestrator.quick_health_check", _always_healthy)
        project = make_project()

        result = cli_runner.invoke(
            cli,
            [
                "deploy",
                "run",
                str(project),
                "-e",
                "staging",
                "--no-post-deploy-tests",
                "--var",
                "VITE_MODE=staging",
                "--secret",
                "DATABASE_URL=postgres://x",
            ],
        )

        assert result.exit_code == 0, result.output
        puts = patched_runner.calls_to("wrangler", "secret", "put")
        assert [call.args[2] for call in puts] == ["VITE_MODE", "DATABASE_URL"]
        assert puts[1].input_text == "postgres://x"

    def test_run_bad_assignment(self, cli_runner: CliRunner, workspace, make_project):
        project = make_project()
        result = cli_runner.invoke(cli, ["deploy", "run", str(project), "--var", "NOEQUALS"])
        assert result.exit_code == 2
        assert "Expected KEY=VALUE" in result.output

    def test_run_failure_aborts(self, cli_runner: CliRunner, workspace, patched_runner, make_project):
        """Test a failed deploy exits non-zero with the stage in the message."""
        project = make_project()
        patched_runner.fail("wrangler", "deploy", "--env", "staging", error="upload rejected")

        result = cli_runner.invoke(cli, ["deploy", "run", str(project), "-e", "staging", "--skip-install"])

        assert result.exit_code == 1
        assert "[Deployment execution] Deployment failed" in result.output
        assert "upload rejected" in result.output

    def test_ci_missing_secrets(self, cli_runner: CliRunner, workspace, patched_runner, make_project):
        """Test CI deploys fail fast without credentials."""
        project = make_project()

        result = cli_runner.invoke(cli, ["deploy", "ci", str(project)])

        assert result.exit_code == 1
        assert "Missing required secrets" in result.output
        assert "CLOUDFLARE_ACCOUNT_ID" in result.output
        assert patched_runner.calls == []

    def test_history(self, cli_runner: CliRunner, workspace):
        store = DeploymentRecordStore(workspace / ".deployment-reports")
        store.save(DeploymentResult(True, "deploy_100", "staging", url="https://a.example", timestamp="2024-06-01T00:00:00"))
        store.save(DeploymentResult(False, "deploy_200", "production", timestamp="2024-06-02T00:00:00", error="x"))

        result = cli_runner.invoke(cli, ["--no-color", "-o", "json", "deploy", "history"])

        assert result.exit_code == 0
        rows = json.loads(result.output)
        assert [row["deploymentId"] for row in rows] == ["deploy_200", "deploy_100"]

    def test_history_empty(self, cli_runner: CliRunner, workspace):
        result = cli_runner.invoke(cli, ["deploy", "history", "--ci"])
        assert result.exit_code == 0
        assert "No deployments recorded" in result.output

    def test_show(self, cli_runner: CliRunner, workspace):
        store = DeploymentRecordStore(workspace / ".deployment-reports")
        store.save(DeploymentResult(True, "deploy_300", "staging"))

        result = cli_runner.invoke(cli, ["--no-color", "-o", "json", "deploy", "show", "deploy_300"])

        assert result.exit_code == 0
        assert json.loads(result.output)["deploymentId"] == "deploy_300"

    def test_show_missing(self, cli_runner: CliRunner, workspace):
        result = cli_runner.invoke(cli, ["deploy", "show", "deploy_404"])
        assert result.exit_code == 1
        assert "not found" in result.output


# =============================================================================
# CI Commands
# =============================================================================


class TestCICommands:
    """Tests for the ci command group."""

    def test_ci_help(self, cli_runner: CliRunner):
        result = cli_runner.invoke(cli, ["ci", "--help"])
        assert result.exit_code == 0
        assert "detect" in result.output
        assert "generate" in result.output

    def test_detect(self, cli_runner: CliRunner, workspace, monkeypatch):
        """Test detection from a GitHub push to main."""
        monkeypatch.setenv("GITHUB_ACTIONS", "true")
        monkeypatch.setenv("GITHUB_REF", "refs/heads/main")
        monkeypatch.setenv("GITHUB_REF_NAME", "main")
        monkeypatch.setenv("GITHUB_EVENT_NAME", "push")
        monkeypatch.setenv("GITHUB_SHA", "abc123")
        monkeypatch.setenv("CLOUDFLARE_API_TOKEN", "tok")
        monkeypatch.setenv("CLOUDFLARE_ACCOUNT_ID", "acc")
        monkeypatch.setenv("DATABASE_URL", "postgres://secret-value")

        result = cli_runner.invoke(cli, ["--no-color", "-o", "json", "ci", "detect"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["provider"] == "github"
        assert data["environment"] == "production"
        assert data["rollback"] is True
        assert data["secrets"] == "DATABASE_URL"
        assert data["missing_required"] == "-"
        assert "secret-value" not in result.output

    def test_detect_warns_on_missing_secrets(self, cli_runner: CliRunner, workspace):
        result = cli_runner.invoke(cli, ["--no-color", "ci", "detect"])
        assert result.exit_code == 0
        assert "Missing required secrets" in result.output

    def test_generate_github_to_stdout(self, cli_runner: CliRunner, workspace):
        result = cli_runner.invoke(cli, ["ci", "generate", "github", "--branch", "main"])

        assert result.exit_code == 0
        workflow = yaml.safe_load(result.output)
        assert workflow["name"] == "Deploy to Cloudflare"

    def test_generate_gitlab_to_file(self, cli_runner: CliRunner, workspace):
        result = cli_runner.invoke(cli, ["ci", "generate", "gitlab", "--output", "ci/.gitlab-ci.yml"])

        assert result.exit_code == 0
        assert "Wrote gitlab workflow" in result.output
        assert "edgeship deploy ci" in (workspace / "ci" / ".gitlab-ci.yml").read_text()

    def test_generate_dry_run_writes_nothing(self, cli_runner: CliRunner, workspace):
        result = cli_runner.invoke(cli, ["--dry-run", "ci", "generate", "github", "--output", "deploy.yml"])

        assert result.exit_code == 0
        assert not (workspace / "deploy.yml").exists()

    def test_generate_unknown_provider(self, cli_runner: CliRunner):
        result = cli_runner.invoke(cli, ["ci", "generate", "jenkins"])
        assert result.exit_code == 2


async def _always_healthy(url, **kwargs):
    return HealthStatus(healthy=True, status_code=200)
