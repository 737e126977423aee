"""Click context object for sharing state across commands."""

from __future__ import annotations

from typing import Any

import click

from edgeship.config import EdgeshipConfig, ProfileConfig, get_default_config
from edgeship.core.logging import LogLevel, setup_logging
from edgeship.core.output import OutputFormat, OutputFormatter
from edgeship.core.process import ProcessContext
from edgeship.core.runner import CommandRunner
from edgeship.deploy.state import DeploymentRecordStore


class EdgeshipContext:
    """Shared context object for edgeship commands.

    This object is passed through Click's context mechanism and provides
    access to configuration, the process snapshot and the command runner.
    """

    def __init__(
        self,
        config: EdgeshipConfig | None = None,
        profile: str | None = None,
        output_format: OutputFormat | None = None,
        verbose: int = 0,
        quiet: bool = False,
        dry_run: bool = False,
        color: bool = True,
        process: ProcessContext | None = None,
    ):
        # Load or use provided config
        self._config = config or get_default_config()
        self._profile_name = profile or "default"

        # Output settings (CLI overrides config)
        self._output_format = output_format or self._config.global_settings.output_format
        self._verbose = verbose
        self._quiet = quiet
        self._dry_run = dry_run or self._config.global_settings.dry_run
        self._color = color

        log_level = LogLevel.from_flags(verbose, quiet, self._config.global_settings.verbosity)
        setup_logging(log_level, rich_output=color)

        self._output = OutputFormatter(
            format=self._output_format,
            color=color,
            quiet=quiet,
        )

        self._process = process
        self._runner: CommandRunner | None = None

    @property
    def config(self) -> EdgeshipConfig:
        """Get the loaded configuration."""
        return self._config

    @property
    def profile(self) -> ProfileConfig:
        """Get the current profile configuration."""
        return self._config.get_profile(self._profile_name)

    @property
    def profile_name(self) -> str:
        return self._profile_name

    @property
    def output(self) -> OutputFormatter:
        """Get the output formatter."""
        return self._output

    @property
    def output_format(self) -> OutputFormat:
        return self._output_format

    @property
    def dry_run(self) -> bool:
        """Check if dry-run mode is enabled."""
        return self._dry_run

    @property
    def verbose(self) -> int:
        return self._verbose

    @property
    def quiet(self) -> bool:
        return self._quiet

    @property
    def color(self) -> bool:
        return self._color

    @property
    def process(self) -> ProcessContext:
        """Snapshot of the environment, taken on first use."""
        if self._process is None:
            self._process = ProcessContext.from_os()
        return self._process

    @property
    def runner(self) -> CommandRunner:
        """Get or create the command runner. Echoes tool output at -vv."""
        if self._runner is None:
            self._runner = CommandRunner(
                env=self.process.environ,
                echo=self._verbose >= 2,
                output=self._output,
            )
        return self._runner

    def record_store(self, ci: bool = False) -> DeploymentRecordStore:
        """Store for deployment reports, or for CI records when ``ci``."""
        deploy = self.profile.deploy
        env = self.process.environ
        directory = deploy.get_ci_records_dir(env) if ci else deploy.get_reports_dir(env)
        return DeploymentRecordStore(self.process.cwd / directory)

    def log_dry_run(self, action: str, details: dict[str, Any] | None = None) -> None:
        """Log a dry-run action."""
        if self._dry_run:
            msg = f"[dry-run] {action}"
            if details:
                detail_str = ", ".join(f"{k}={v}" for k, v in details.items())
                msg = f"{msg} ({detail_str})"
            self._output.print(f"[dim]{msg}[/dim]")


# Click decorator for passing context
pass_context = click.make_pass_decorator(EdgeshipContext, ensure=True)
