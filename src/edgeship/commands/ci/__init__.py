"""CI command group."""

from pathlib import Path

import click

from edgeship.ci.resolver import CIEnvironmentResolver
from edgeship.ci.templates import DEFAULT_NODE_VERSION, generate_github_workflow, generate_gitlab_ci
from edgeship.core.context import EdgeshipContext, pass_context
from edgeship.core.exceptions import MissingSecretsError
from edgeship.deploy.project import detect_package_manager

GENERATORS = {
    "github": generate_github_workflow,
    "gitlab": generate_gitlab_ci,
}


@click.group()
@pass_context
def ci(ctx: EdgeshipContext) -> None:
    """CI integration - detect, generate.

    \b
    Examples:
        edgeship ci detect
        edgeship ci generate github --output .github/workflows/deploy.yml
    """
    pass


@ci.command("detect")
@click.option("-e", "--env", "environment", default=None, help="Override the inferred environment")
@pass_context
def detect(ctx: EdgeshipContext, environment: str | None) -> None:
    """Show the detected CI context and the options a CI deploy would use.

    Secret values are never printed, only their names.

    \b
    Examples:
        edgeship ci detect
        edgeship -o json ci detect
    """
    resolver = CIEnvironmentResolver(ctx.process, ctx.profile)
    context = resolver.resolve(environment)
    options = resolver.build_options(context.environment)

    try:
        resolver.validate_secrets()
        missing: list[str] = []
    except MissingSecretsError as e:
        missing = e.missing

    data = {
        **context.to_dict(),
        "rollback": options.rollback_enabled,
        "post_deploy_tests": options.run_post_deploy_tests,
        "variables": ", ".join(options.environment_variables) or "-",
        "secrets": ", ".join(options.secrets) or "-",
        "missing_required": ", ".join(missing) or "-",
    }
    ctx.output.print_data(data, title="CI Context")

    if missing:
        ctx.output.print_warning(f"Missing required secrets: {', '.join(missing)}")


@ci.command("generate")
@click.argument("provider", type=click.Choice(sorted(GENERATORS)))
@click.option("--output", "output_file", type=click.Path(dir_okay=False), default=None, help="Write to file instead of stdout")
@click.option("--project", "project_path", default=".", show_default=True, help="Project path used in the workflow")
@click.option("--node-version", default=DEFAULT_NODE_VERSION, show_default=True, help="Node.js version")
@click.option("--branch", "branches", multiple=True, help="Deploy branch (repeatable, first is production)")
@pass_context
def generate(
    ctx: EdgeshipContext,
    provider: str,
    output_file: str | None,
    project_path: str,
    node_version: str,
    branches: tuple[str, ...],
) -> None:
    """Generate a CI workflow that runs 'edgeship deploy ci'.

    \b
    Examples:
        edgeship ci generate github
        edgeship ci generate gitlab --output .gitlab-ci.yml
        edgeship ci generate github --branch main --branch develop
    """
    generator = GENERATORS[provider]
    manager = detect_package_manager(ctx.process.cwd / project_path)
    content = generator(
        config=ctx.profile,
        package_manager=manager,
        node_version=node_version,
        project_path=project_path,
        branches=list(branches) or None,
    )

    if output_file is None:
        click.echo(content, nl=False)
        return

    if ctx.dry_run:
        ctx.log_dry_run("write workflow", {"path": output_file})
        return

    path = Path(output_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    ctx.output.print_success(f"Wrote {provider} workflow to {path}")
