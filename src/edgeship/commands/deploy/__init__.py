"""Deploy command group."""

import click

from edgeship.ci.pipeline import CIDeploymentPipeline
from edgeship.core.async_utils import run_sync
from edgeship.core.context import EdgeshipContext, pass_context
from edgeship.core.exceptions import DeploymentError, EdgeshipError
from edgeship.core.output import format_duration
from edgeship.deploy.models import DEVELOPMENT, DeploymentOptions
from edgeship.deploy.orchestrator import DeploymentOrchestrator

HISTORY_HEADERS = ["deploymentId", "environment", "success", "url", "duration", "timestamp"]


def parse_assignments(values: tuple[str, ...], option: str) -> dict[str, str]:
    """Parse repeated KEY=VALUE options."""
    result: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected KEY=VALUE, got '{item}'", param_hint=option)
        result[key] = value
    return result


@click.group()
@pass_context
def deploy(ctx: EdgeshipContext) -> None:
    """Deploy projects to Cloudflare - run, ci, history, show.

    \b
    Examples:
        edgeship deploy run ./my-app --env staging
        edgeship deploy ci --dry-run
        edgeship deploy history --limit 5
        edgeship deploy show deploy_1718900000000
    """
    pass


@deploy.command("run")
@click.argument("path", type=click.Path(exists=True, file_okay=False), default=".")
@click.option("-e", "--env", "environment", default=DEVELOPMENT, show_default=True, help="Target environment")
@click.option("--dry-run", "dry_run", is_flag=True, help="Ask wrangler not to publish")
@click.option("--skip-install", is_flag=True, help="Skip dependency install")
@click.option("--skip-tests", is_flag=True, help="Skip the test script")
@click.option("--skip-build", is_flag=True, help="Skip the build script")
@click.option("--rollback/--no-rollback", default=None, help="Roll back on failure (default: production only)")
@click.option("--post-deploy-tests/--no-post-deploy-tests", default=None, help="Run post-deploy tests (default: production and staging)")
@click.option("--var", "variables", multiple=True, metavar="KEY=VALUE", help="Variable to push (repeatable)")
@click.option("--secret", "secrets", multiple=True, metavar="KEY=VALUE", help="Secret to push (repeatable)")
@pass_context
def run(
    ctx: EdgeshipContext,
    path: str,
    environment: str,
    dry_run: bool,
    skip_install: bool,
    skip_tests: bool,
    skip_build: bool,
    rollback: bool | None,
    post_deploy_tests: bool | None,
    variables: tuple[str, ...],
    secrets: tuple[str, ...],
) -> None:
    """Run the deployment pipeline for a project.

    \b
    Examples:
        edgeship deploy run .
        edgeship deploy run ./app --env production --var API_BASE=https://api.example.com
        edgeship deploy run ./app --env staging --dry-run --skip-tests
    """
    options = DeploymentOptions.for_environment(
        environment,
        install_dependencies=not skip_install,
        run_tests=not skip_tests,
        build=not skip_build,
        enable_rollback=rollback,
        dry_run=dry_run or ctx.dry_run,
        run_post_deploy_tests=post_deploy_tests,
        environment_variables=parse_assignments(variables, "--var"),
        secrets=parse_assignments(secrets, "--secret"),
    )

    orchestrator = DeploymentOrchestrator(
        runner=ctx.runner,
        process=ctx.process,
        config=ctx.profile,
        record_store=ctx.record_store(),
        output=ctx.output,
    )

    try:
        result = run_sync(orchestrator.deploy(path, options))
    except DeploymentError as e:
        ctx.output.print_error(str(e))
        if e.stderr.strip():
            ctx.output.print(f"[dim]{e.stderr.strip()}[/dim]")
        raise click.Abort()

    if ctx.output_format.value != "table":
        ctx.output.print_data(result.to_dict())


@deploy.command("ci")
@click.argument("path", type=click.Path(exists=True, file_okay=False), required=False)
@click.option("--dry-run", "dry_run", is_flag=True, help="Ask wrangler not to publish")
@click.option("-e", "--env", "environment", default=None, help="Override the inferred environment")
@pass_context
def ci(ctx: EdgeshipContext, path: str | None, dry_run: bool, environment: str | None) -> None:
    """Deploy from a CI job.

    Detects the CI provider, infers the environment from the branch and
    event, validates secrets and sends notifications. Exits non-zero on
    any failure.

    \b
    Examples:
        edgeship deploy ci
        edgeship deploy ci ./app --env staging
    """
    pipeline = CIDeploymentPipeline(
        process=ctx.process,
        config=ctx.profile,
        runner=ctx.runner,
        output=ctx.output,
        record_store=ctx.record_store(ci=True),
    )

    try:
        result = run_sync(pipeline.run(path, dry_run=dry_run or ctx.dry_run, environment=environment))
    except EdgeshipError as e:
        ctx.output.print_error(f"Deployment failed: {e}")
        raise SystemExit(pipeline.exit_code or 1)

    if ctx.output_format.value != "table":
        ctx.output.print_data(result.to_dict())


@deploy.command("history")
@click.option("--ci", "ci_records", is_flag=True, help="Show CI deployment records")
@click.option("-n", "--limit", type=int, default=20, show_default=True, help="Maximum records")
@pass_context
def history(ctx: EdgeshipContext, ci_records: bool, limit: int) -> None:
    """List past deployments, newest first.

    \b
    Examples:
        edgeship deploy history
        edgeship deploy history --ci -n 5
    """
    records = ctx.record_store(ci=ci_records).list(limit=limit)
    if not records:
        ctx.output.print_info("No deployments recorded")
        return

    rows = []
    for record in records:
        row = {key: record.get(key) for key in HISTORY_HEADERS}
        if isinstance(row["duration"], (int, float)):
            row["duration"] = format_duration(row["duration"])
        rows.append(row)

    ctx.output.print_data(rows, headers=HISTORY_HEADERS, title="Deployments")


@deploy.command("show")
@click.argument("deployment_id")
@click.option("--ci", "ci_records", is_flag=True, help="Look in CI deployment records")
@pass_context
def show(ctx: EdgeshipContext, deployment_id: str, ci_records: bool) -> None:
    """Show one deployment record.

    \b
    Examples:
        edgeship deploy show deploy_1718900000000
    """
    try:
        record = ctx.record_store(ci=ci_records).load(deployment_id)
    except DeploymentError as e:
        ctx.output.print_error(str(e))
        raise click.Abort()

    ctx.output.print_data(record, title=f"Deployment {deployment_id}")
