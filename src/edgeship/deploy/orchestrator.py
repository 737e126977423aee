"""Seven-step deployment pipeline with rollback support."""

import json
import re
from collections.abc import Awaitable, Callable
from contextlib import nullcontext
from pathlib import Path
from typing import Any, ContextManager

import httpx

from edgeship.config import ProfileConfig
from edgeship.core.exceptions import (
    BuildError,
    DeployError,
    DeploymentError,
    EnvironmentSetupError,
    PlatformConfigError,
    PrerequisiteError,
    ProjectValidationError,
    TestFailureError,
    VerificationError,
)
from edgeship.core.logging import StructuredLogger
from edgeship.core.output import OutputFormatter, format_duration
from edgeship.core.process import ProcessContext
from edgeship.core.progress import StepProgress, spinner
from edgeship.core.runner import CommandRunner, Runner
from edgeship.deploy.models import (
    PRODUCTION,
    DeploymentOptions,
    DeploymentResult,
    DeploymentSession,
    PipelineStep,
    RollbackPoint,
    SessionStatus,
    StepStatus,
)
from edgeship.deploy.project import (
    BasicConfigValidator,
    ConfigValidator,
    ProjectConfig,
    load_project,
    validate_project_structure,
)
from edgeship.deploy.state import DeploymentRecordStore
from edgeship.deploy.verification import HealthEndpointTester, PostDeployTester, quick_health_check

logger = StructuredLogger(__name__)

URL_PATTERN = re.compile(r"https://[^\s\x00-\x1f\x7f]+")
UUID_PATTERN = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)


def extract_url(output: str) -> str | None:
    """First https URL in command output."""
    match = URL_PATTERN.search(output)
    return match.group(0) if match else None


def parse_last_deployment_id(output: str) -> str | None:
    """Find the currently live deployment in ``wrangler deployments list`` output.

    JSON output is preferred; the newest entry wins. Plain text falls back to
    the first UUID in the output.
    """
    try:
        data = json.loads(output)
    except ValueError:
        data = None

    if isinstance(data, list):
        entries = [entry for entry in data if isinstance(entry, dict) and entry.get("id")]
        if not entries:
            return None
        if all("created_on" in entry for entry in entries):
            entries.sort(key=lambda entry: str(entry["created_on"]))
        return str(entries[-1]["id"])

    match = UUID_PATTERN.search(output)
    return match.group(0) if match else None


def should_rollback(session: DeploymentSession, options: DeploymentOptions) -> bool:
    """Rollback only after the pipeline reached Deploy with a usable rollback point."""
    failed = session.failed_step
    point = session.rollback_point
    return (
        options.rollback_enabled
        and point is not None
        and point.can_rollback
        and failed is not None
        and failed.index >= PipelineStep.DEPLOY.index
    )


class DeploymentOrchestrator:
    """Runs the fixed deployment pipeline for one project, once.

    Each orchestrator owns a single DeploymentSession. A retry needs a new
    orchestrator, and therefore gets a new deployment id.
    """

    def __init__(
        self,
        runner: Runner | None = None,
        process: ProcessContext | None = None,
        config: ProfileConfig | None = None,
        validator: ConfigValidator | None = None,
        tester: PostDeployTester | None = None,
        record_store: DeploymentRecordStore | None = None,
        output: OutputFormatter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            runner: Runs external commands (defaults to CommandRunner)
            process: Environment snapshot (defaults to the current process)
            config: Profile configuration
            validator: Semantic project validator
            tester: Post-deploy tester, used when ``run_post_deploy_tests``
            record_store: Where deployment records are persisted
            output: Output formatter for progress and summaries
            transport: httpx transport for the health probe
        """
        self._process = process or ProcessContext.from_os()
        self._config = config or ProfileConfig()
        self._runner = runner or CommandRunner(env=self._process.environ)
        self._validator = validator or BasicConfigValidator()
        self._tester = tester or HealthEndpointTester(
            paths=self._config.deploy.health_paths,
            timeout=self._config.deploy.probe_timeout,
            transport=transport,
        )
        self._record_store = record_store or DeploymentRecordStore(
            self._process.cwd / self._config.deploy.get_reports_dir(self._process.environ)
        )
        self._output = output or OutputFormatter()
        self._transport = transport

        self.session = DeploymentSession()
        self._log = logger.bind(deployment_id=self.session.deployment_id)
        self._path = self._process.cwd
        self._options = DeploymentOptions()
        self._project: ProjectConfig | None = None

    @property
    def cli(self) -> str:
        return self._config.platform.cli

    @property
    def deployment_id(self) -> str:
        return self.session.deployment_id

    async def deploy(
        self,
        project_path: str | Path,
        options: DeploymentOptions | None = None,
    ) -> DeploymentResult:
        """Run the pipeline.

        Args:
            project_path: Project root (relative paths resolve against the
                process working directory)
            options: Deployment options

        Returns:
            DeploymentResult of a successful run

        Raises:
            DeploymentError: Subclass naming the failed stage
        """
        session = self.session
        if session.status != SessionStatus.PENDING:
            raise DeploymentError("session already used")

        self._options = options or DeploymentOptions()
        self._path = self._process.cwd / Path(project_path)
        self._log = self._log.bind(environment=self._options.environment)
        session.status = SessionStatus.RUNNING

        handlers: dict[PipelineStep, Callable[[], Awaitable[StepStatus]]] = {
            PipelineStep.VALIDATE: self._validate,
            PipelineStep.SETUP_ENVIRONMENT: self._setup_environment,
            PipelineStep.BUILD_AND_TEST: self._build_and_test,
            PipelineStep.CONFIGURE_PLATFORM: self._configure_platform,
            PipelineStep.DEPLOY: self._deploy,
            PipelineStep.VERIFY_POST_DEPLOY: self._verify,
            PipelineStep.REPORT: self._report,
        }
        progress = StepProgress(
            [step.label for step in session.steps],
            title=f"Deploying {self._path.name} ({self._options.environment})",
            console=self._output.console,
            enabled=not self._output.quiet,
        )

        self._log.info("Starting deployment", project=str(self._path), dry_run=self._options.dry_run)

        try:
            for step in session.steps:
                session.start_step(step)
                progress.start(step.label)
                try:
                    status = await handlers[step]()
                except Exception as e:
                    session.finish_step(step, StepStatus.FAILED)
                    progress.complete(step.label, success=False)
                    if isinstance(e, DeploymentError) and e.stage is None:
                        e.stage = step
                    raise
                session.finish_step(step, status)
                if status == StepStatus.SKIPPED:
                    progress.skip(step.label)
                else:
                    progress.complete(step.label)
        except Exception as e:
            session.status = SessionStatus.FAILED
            failed = session.failed_step
            self._log.error("Deployment failed", step=failed.value if failed else None, error=str(e))

            if should_rollback(session, self._options):
                await self._rollback()

            self._save_failure(e)
            raise

        session.status = SessionStatus.SUCCEEDED
        assert session.result is not None
        return session.result

    # Steps

    async def _validate(self) -> StepStatus:
        validate_project_structure(self._path)
        project = load_project(self._path)

        report = self._validator.validate(project)
        for warning in report.warnings:
            self._log.warning("Configuration warning", warning=warning)
        if not report.valid:
            raise ProjectValidationError(
                "Configuration validation failed",
                details={"errors": report.errors},
            )
        self._project = project

        await self._check_prerequisites(project)
        self.session.rollback_point = await self._capture_rollback_point()
        return StepStatus.SUCCEEDED

    async def _check_prerequisites(self, project: ProjectConfig) -> None:
        if not await self._runner.which(self.cli, timeout=self._config.platform.probe_timeout):
            raise PrerequisiteError(f"{self.cli} CLI not found. Install with: npm install -g {self.cli}")

        result = await self._runner.run(self.cli, ["whoami"], cwd=self._path)
        if not result.success or not _reports_identity(result.output):
            raise PrerequisiteError(
                f"Not authenticated with Cloudflare. Run: {self.cli} login",
                output=result.output,
                stderr=result.error,
            )

        if self._options.environment == PRODUCTION and project.environments and not project.has_environment(PRODUCTION):
            raise PrerequisiteError(
                "Production environment not properly configured: "
                "wrangler.toml declares environments but no [env.production]"
            )

    async def _capture_rollback_point(self) -> RollbackPoint:
        result = await self._runner.run(self.cli, ["deployments", "list", "--json"], cwd=self._path)
        if not result.success:
            self._log.warning("Could not create rollback point", error=result.error.strip())
            return RollbackPoint(can_rollback=False)

        last_id = parse_last_deployment_id(result.output)
        if last_id is None:
            self._log.info("No previous deployment found; rollback unavailable")
        return RollbackPoint(can_rollback=last_id is not None, last_deployment_id=last_id)

    async def _setup_environment(self) -> StepStatus:
        options = self._options
        assert self._project is not None

        if options.install_dependencies and not options.dry_run:
            manager = self._project.package_manager
            with self._busy(f"Installing dependencies with {manager.value}..."):
                result = await self._runner.run(manager.value, manager.install_args(), cwd=self._path)
            if not result.success:
                raise EnvironmentSetupError(
                    "Failed to install dependencies",
                    output=result.output,
                    stderr=result.error,
                )

        if options.dry_run:
            return StepStatus.SUCCEEDED

        # Development has no [env.*] section: variables stay local, secrets
        # go to the top-level worker.
        pushes: list[tuple[str, dict[str, str]]] = [("secret", options.secrets)]
        if not options.is_development:
            pushes.insert(0, ("environment variable", options.environment_variables))
        elif options.environment_variables:
            self._log.info(
                "Environment variables are not pushed for development",
                names=",".join(sorted(options.environment_variables)),
            )

        for kind, values in pushes:
            for name, value in values.items():
                if not value:
                    continue
                await self._put_secret(kind, name, value)

        return StepStatus.SUCCEEDED

    async def _put_secret(self, kind: str, name: str, value: str) -> None:
        args = ["secret", "put", name]
        if not self._options.is_development:
            args += ["--env", self._options.environment]

        result = await self._runner.run(self.cli, args, cwd=self._path, input_text=value)
        if not result.success:
            raise EnvironmentSetupError(
                f"Failed to set {kind} {name}",
                output=result.output,
                stderr=result.error,
            )
        self._log.debug(f"Set {kind}", name=name)

    async def _build_and_test(self) -> StepStatus:
        options = self._options
        project = self._project
        assert project is not None
        manager = project.package_manager
        ran = False

        if options.run_tests and project.has_script("test"):
            ran = True
            with self._busy("Running tests..."):
                result = await self._runner.run(manager.value, manager.script_args("test"), cwd=self._path)
            if not result.success:
                raise TestFailureError("Tests failed", output=result.output, stderr=result.error)

        if options.build and project.has_script("build"):
            ran = True
            with self._busy("Building project..."):
                result = await self._runner.run(manager.value, manager.script_args("build"), cwd=self._path)
            if not result.success:
                raise BuildError("Build failed", output=result.output, stderr=result.error)

        return StepStatus.SUCCEEDED if ran else StepStatus.SKIPPED

    async def _configure_platform(self) -> StepStatus:
        result = await self._runner.run(self.cli, self._config.platform.validate_args, cwd=self._path)
        if not result.success:
            raise PlatformConfigError(
                "Invalid wrangler.toml",
                output=result.output,
                stderr=result.error,
            )

        environment = self._options.environment
        assert self._project is not None
        if not self._options.is_development and not self._project.has_environment(environment):
            self._log.warning(
                f"wrangler.toml has no [env.{environment}] section; top-level configuration will be used"
            )
        return StepStatus.SUCCEEDED

    async def _deploy(self) -> StepStatus:
        options = self._options
        args = ["deploy"]
        if not options.is_development:
            args += ["--env", options.environment]
        if options.dry_run:
            args.append("--dry-run")

        message = "Running dry-run deployment..." if options.dry_run else "Deploying to Cloudflare..."
        with self._busy(message):
            result = await self._runner.run(self.cli, args, cwd=self._path)
        if not result.success:
            raise DeployError("Deployment failed", output=result.output, stderr=result.error)

        self.session.url = extract_url(result.output)
        self._log.info("Deployment executed", url=self.session.url)
        return StepStatus.SUCCEEDED

    async def _verify(self) -> StepStatus:
        url = self.session.url
        if self._options.dry_run or not url:
            return StepStatus.SKIPPED

        errors = self.session.verification_errors
        try:
            health = await quick_health_check(url, transport=self._transport)
        except Exception as e:
            errors.append(self._verification_error(f"Health check errored: {e}"))
        else:
            if health.healthy:
                self._log.info("Health check passed", url=url)
            else:
                errors.append(self._verification_error(f"Health check failed: {health.status_code or health.error}"))

        if self._options.run_post_deploy_tests:
            try:
                passed = await self._tester.run(url, self._options)
            except Exception as e:
                errors.append(self._verification_error(f"Post-deployment tests errored: {e}"))
            else:
                if not passed:
                    errors.append(self._verification_error("Post-deployment tests failed"))

        for error in errors:
            self._log.warning("Post-deployment verification failed", error=str(error))
        return StepStatus.SUCCEEDED

    def _verification_error(self, message: str) -> VerificationError:
        return VerificationError(message, stage=PipelineStep.VERIFY_POST_DEPLOY)

    async def _report(self) -> StepStatus:
        session = self.session
        options = self._options
        verified = None
        if session.step_status[PipelineStep.VERIFY_POST_DEPLOY] != StepStatus.SKIPPED:
            verified = not session.verification_errors

        result = DeploymentResult(
            success=True,
            deployment_id=session.deployment_id,
            environment=options.environment,
            url=session.url,
            duration=session.elapsed,
            dry_run=options.dry_run,
            verification_passed=verified,
        )
        session.result = result

        lines = [
            f"[cyan]Deployment ID:[/cyan] {result.deployment_id}",
            f"[cyan]Environment:[/cyan] {result.environment}",
            f"[cyan]Duration:[/cyan] {format_duration(result.duration)}",
        ]
        if result.url:
            lines.append(f"[cyan]URL:[/cyan] [blue underline]{result.url}[/blue underline]")
        lines.append(f"[cyan]Timestamp:[/cyan] {result.timestamp}")
        if session.verification_errors:
            lines.append(f"[yellow]Verification warnings:[/yellow] {len(session.verification_errors)}")

        title = "Dry Run Complete" if options.dry_run else "Deployment Successful"
        self._output.print_panel("\n".join(lines), title=title, style="green")

        path = self._record_store.save(result)
        if path is not None:
            self._log.info("Deployment report saved", path=str(path))
        return StepStatus.SUCCEEDED

    # Failure handling

    async def _rollback(self) -> None:
        point = self.session.rollback_point
        assert point is not None and point.last_deployment_id is not None

        self._output.print_warning("Initiating rollback...")
        result = await self._runner.run(
            self.cli,
            [
                "rollback",
                point.last_deployment_id,
                "--message",
                f"Automatic rollback after failed deployment {self.deployment_id}",
                "-y",
            ],
            cwd=self._path,
        )
        if result.success:
            self._log.info("Deployment rolled back", to=point.last_deployment_id)
            self._output.print_success(f"Rolled back to {point.last_deployment_id}")
        else:
            self._log.error("Rollback failed", error=result.error.strip())
            self._output.print_error(f"Rollback failed: {result.error.strip() or 'unknown error'}")

    def _save_failure(self, error: Exception) -> None:
        failed = self.session.failed_step
        record = DeploymentResult(
            success=False,
            deployment_id=self.deployment_id,
            environment=self._options.environment,
            url=self.session.url,
            duration=self.session.elapsed,
            dry_run=self._options.dry_run,
            error=str(error),
            failed_step=failed.value if failed else None,
        )
        self._record_store.save(record)

    def _busy(self, message: str) -> ContextManager[Any]:
        if self._output.quiet:
            return nullcontext()
        return spinner(message, console=self._output.console)


def _reports_identity(output: str) -> bool:
    return "@" in output or "you are logged in" in output.lower()


async def deploy_project(
    project_path: str | Path,
    options: DeploymentOptions | None = None,
    **kwargs: Any,
) -> DeploymentResult:
    """Deploy a project with a fresh orchestrator.

    Keyword arguments are passed to DeploymentOrchestrator.
    """
    orchestrator = DeploymentOrchestrator(**kwargs)
    return await orchestrator.deploy(project_path, options)
