"""CI deployment wrapper around the orchestrator."""

from pathlib import Path
from typing import Any

import httpx

from edgeship.ci.resolver import CIContext, CIEnvironmentResolver, CIProvider
from edgeship.config import ProfileConfig
from edgeship.core.async_utils import settle_all
from edgeship.core.logging import StructuredLogger
from edgeship.core.output import OutputFormatter, format_duration
from edgeship.core.process import ProcessContext
from edgeship.core.runner import Runner
from edgeship.deploy.models import PRODUCTION, DeploymentResult, utc_now
from edgeship.deploy.orchestrator import DeploymentOrchestrator
from edgeship.deploy.state import DeploymentRecordStore
from edgeship.deploy.verification import HealthStatus, quick_health_check
from edgeship.notify.dispatcher import DeploymentOutcome, NotificationDispatcher

logger = StructuredLogger(__name__)


class CIDeploymentPipeline:
    """Resolve the CI context, deploy, then run best-effort CI follow-ups.

    After a run, ``exit_code`` is 0 on success and 1 on any failure.
    """

    def __init__(
        self,
        process: ProcessContext | None = None,
        config: ProfileConfig | None = None,
        runner: Runner | None = None,
        output: OutputFormatter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        dispatcher: NotificationDispatcher | None = None,
        record_store: DeploymentRecordStore | None = None,
    ):
        self._process = process or ProcessContext.from_os()
        self._config = config or ProfileConfig()
        self._runner = runner
        self._output = output or OutputFormatter()
        self._transport = transport
        self._resolver = CIEnvironmentResolver(self._process, self._config, transport=transport)
        self._dispatcher = dispatcher or NotificationDispatcher.from_config(
            self._config.notifications, self._process, transport=transport
        )
        self._record_store = record_store or DeploymentRecordStore(
            self._process.cwd / self._config.deploy.get_ci_records_dir(self._process.environ)
        )
        self.exit_code = 0
        self.orchestrator: DeploymentOrchestrator | None = None

    @property
    def resolver(self) -> CIEnvironmentResolver:
        return self._resolver

    async def run(
        self,
        project_path: str | Path | None = None,
        dry_run: bool = False,
        environment: str | None = None,
        **overrides: Any,
    ) -> DeploymentResult:
        """Run a CI deployment.

        Args:
            project_path: Project root (defaults to the working directory)
            dry_run: Ask the platform CLI not to publish
            environment: Explicit target, overriding inference
            **overrides: Further DeploymentOptions fields

        Raises:
            EdgeshipError: The original failure, after failure handling
        """
        context = self._resolver.resolve(environment)
        log = logger.bind(ci=context.provider.value, environment=context.environment)
        self._print_banner(context)

        try:
            self._resolver.validate_secrets()
            await self._resolver.verify_credentials()

            path = self._process.cwd / Path(project_path) if project_path else self._process.cwd
            self._output.print_info(f"Project path: {path}")

            options = self._resolver.build_options(context.environment, dry_run=dry_run, **overrides)
            self.orchestrator = DeploymentOrchestrator(
                runner=self._runner,
                process=self._process,
                config=self._config,
                output=self._output,
                transport=self._transport,
            )
            result = await self.orchestrator.deploy(path, options)
        except Exception as e:
            await self._handle_failure(e, context, log)
            raise

        await self._post_deploy(result, context)
        self._emit_outputs("success", result.deployment_id, result.url)
        self.exit_code = 0

        log.info("CI deployment completed", deployment_id=result.deployment_id)
        self._output.print_success(f"CI Deployment Completed Successfully ({format_duration(result.duration)})")
        return result

    def _print_banner(self, context: CIContext) -> None:
        self._output.print_header(f"CI Deployment Started ({context.provider.value.upper()})")
        self._output.print(f"[dim]Branch: {context.branch}[/dim]")
        self._output.print(f"[dim]Commit: {context.commit}[/dim]")
        self._output.print_info(f"Target environment: {context.environment}")

    async def _post_deploy(self, result: DeploymentResult, context: CIContext) -> None:
        self._track(result, context)
        await self._dispatcher.notify(DeploymentOutcome.succeeded(result, context))
        if context.environment == PRODUCTION and result.url and not result.dry_run:
            await self.warm_up(result.url)

    def _track(self, result: DeploymentResult, context: CIContext) -> Path | None:
        record = {
            "deploymentId": result.deployment_id,
            "environment": context.environment,
            "url": result.url,
            "timestamp": utc_now().isoformat(),
            "duration": round(result.duration, 3),
            "branch": context.branch,
            "commit": context.commit,
            "ci": context.provider.value,
            "success": result.success,
        }
        path = self._record_store.save(record)
        if path is not None:
            logger.info("Deployment tracked", deployment_id=result.deployment_id)
        return path

    async def warm_up(self, url: str) -> list[HealthStatus | BaseException]:
        """Hit the root and the warm-up paths concurrently, ignoring failures."""
        base = url.rstrip("/")
        probes = [quick_health_check(url, method="HEAD", transport=self._transport)]
        probes += [
            quick_health_check(f"{base}{path}", method="GET", transport=self._transport)
            for path in self._config.deploy.warmup_paths
        ]
        results = await settle_all(*probes)
        reached = sum(1 for r in results if isinstance(r, HealthStatus) and r.status_code is not None)
        logger.info("Deployment warmed up", reached=reached, total=len(results))
        return results

    def _emit_outputs(self, status: str, deployment_id: str | None, url: str | None) -> None:
        """Append step outputs for GitHub Actions."""
        if self._resolver.resolve().provider != CIProvider.GITHUB:
            return
        output_file = self._process.get("GITHUB_OUTPUT")
        if not output_file:
            return

        lines = [
            f"deployment-status={status}",
            f"deployment-id={deployment_id or 'unknown'}",
            f"deployment-url={url or ''}",
            f"deployment-timestamp={utc_now().isoformat()}",
        ]
        try:
            with open(output_file, "a") as f:
                f.write("\n".join(lines) + "\n")
        except OSError as e:
            logger.warning("Failed to set GitHub outputs", error=str(e))

    async def _handle_failure(self, error: Exception, context: CIContext, log: StructuredLogger) -> None:
        self.exit_code = 1
        deployment_id = self.orchestrator.deployment_id if self.orchestrator else None

        log.error(
            "CI deployment failed",
            error=str(error),
            error_type=type(error).__name__,
            branch=context.branch,
            commit=context.commit,
            deployment_id=deployment_id,
        )
        self._emit_outputs("failure", deployment_id, None)
        await self._dispatcher.notify(DeploymentOutcome.failed(error, context, deployment_id))


async def run_ci_deployment(
    project_path: str | Path | None = None,
    dry_run: bool = False,
    environment: str | None = None,
    process: ProcessContext | None = None,
    *,
    config: ProfileConfig | None = None,
    runner: Runner | None = None,
    output: OutputFormatter | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    dispatcher: NotificationDispatcher | None = None,
    record_store: DeploymentRecordStore | None = None,
    **overrides: Any,
) -> DeploymentResult:
    """Run a CI deployment with a fresh pipeline.

    Remaining keyword arguments are DeploymentOptions fields (``run_tests``,
    ``build``, ``enable_rollback``, ``secrets``, ...) applied over the
    environment defaults.
    """
    pipeline = CIDeploymentPipeline(
        process=process,
        config=config,
        runner=runner,
        output=output,
        transport=transport,
        dispatcher=dispatcher,
        record_store=record_store,
    )
    return await pipeline.run(project_path, dry_run=dry_run, environment=environment, **overrides)
