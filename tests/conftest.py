"""Pytest fixtures for edgeship tests."""

import json
import os
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Generator

import httpx
import pytest
from click.testing import CliRunner

from edgeship.config import DeployConfig, EdgeshipConfig, NotificationsConfig, PlatformConfig, ProfileConfig
from edgeship.core.context import EdgeshipContext
from edgeship.core.output import OutputFormat, OutputFormatter
from edgeship.core.process import ProcessContext
from tests.fakes import FakeRunner


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Command runner that never spawns processes."""
    return FakeRunner()


@pytest.fixture
def make_project(tmp_path: Path) -> Callable[..., Path]:
    """Factory for minimal deployable project directories."""

    def _make(
        name: str = "my-worker",
        scripts: dict[str, str] | None = None,
        environments: Sequence[str] = ("staging", "production"),
        lockfile: str | None = "package-lock.json",
        directory: str = "app",
    ) -> Path:
        root = tmp_path / directory
        (root / "src").mkdir(parents=True)
        (root / "src" / "index.js").write_text("export default { fetch() { return new Response('ok') } }\n")

        manifest = [f'name = "{name}"', 'main = "src/index.js"', 'compatibility_date = "2024-06-01"', ""]
        for env in environments:
            manifest += [f"[env.{env}]", f'name = "{name}-{env}"', ""]
        (root / "wrangler.toml").write_text("\n".join(manifest))

        package = {"name": name, "version": "1.0.0", "scripts": scripts if scripts is not None else {}}
        (root / "package.json").write_text(json.dumps(package, indent=2))

        if lockfile:
            (root / lockfile).write_text("")
        return root

    return _make


@pytest.fixture
def make_process(tmp_path: Path) -> Callable[..., ProcessContext]:
    """Factory for process snapshots rooted at tmp_path."""

    def _make(**environ: str) -> ProcessContext:
        return ProcessContext(environ=environ, cwd=tmp_path)

    return _make


@pytest.fixture
def quiet_output() -> OutputFormatter:
    """Formatter that prints nothing."""
    return OutputFormatter(color=False, quiet=True)


@pytest.fixture
def healthy_transport() -> httpx.MockTransport:
    """Every request gets a 200."""
    return httpx.MockTransport(lambda request: httpx.Response(200, json={}))


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI runner."""
    return CliRunner()


@pytest.fixture
def mock_config() -> EdgeshipConfig:
    """Create a mock configuration."""
    return EdgeshipConfig(
        profiles={
            "default": ProfileConfig(
                platform=PlatformConfig(account_id="acc-123"),
                deploy=DeployConfig(),
                notifications=NotificationsConfig(),
            )
        }
    )


@pytest.fixture
def mock_context(mock_config: EdgeshipConfig, tmp_path: Path) -> EdgeshipContext:
    """Create a mock edgeship context."""
    return EdgeshipContext(
        config=mock_config,
        profile="default",
        output_format=OutputFormat.TABLE,
        verbose=0,
        quiet=False,
        dry_run=False,
        color=False,
        process=ProcessContext(environ={}, cwd=tmp_path),
    )


ENV_PREFIXES = ("EDGESHIP_", "CLOUDFLARE_", "GITHUB_", "GITLAB_", "CI_", "CIRCLE")
ENV_VARS = (
    "GH_TOKEN",
    "SLACK_WEBHOOK_URL",
    "DEPLOYMENT_WEBHOOK_URL",
    "JENKINS_URL",
    "AZURE_PIPELINES_BUILD_ID",
    "TF_BUILD",
    "BRANCH_NAME",
    "GIT_COMMIT",
    "NODE_ENV",
)


@pytest.fixture(autouse=True)
def clean_env() -> Generator[None, None, None]:
    """Clean environment variables before each test."""
    env_vars = [k for k in os.environ if k.startswith(ENV_PREFIXES) or k in ENV_VARS]

    original = {k: os.environ.get(k) for k in env_vars}

    # Remove vars for clean test
    for k in env_vars:
        os.environ.pop(k, None)

    yield

    # Restore original values
    for k, v in original.items():
        if v is not None:
            os.environ[k] = v
        else:
            os.environ.pop(k, None)


@pytest.fixture
def temp_config_file(tmp_path: Path) -> str:
    """Create a temporary config file."""
    config_content = """
version: "1"
global:
  output_format: table
profiles:
  default:
    platform:
      account_id: acc-from-file
    deploy:
      reports_dir: reports
"""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(config_content)
    return str(config_file)
