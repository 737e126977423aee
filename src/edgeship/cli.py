"""edgeship command line."""

import sys
from typing import Any

import click
from rich.console import Console

from edgeship import __version__
from edgeship.commands.ci import ci
from edgeship.commands.deploy import deploy
from edgeship.config import load_config
from edgeship.core.context import EdgeshipContext, pass_context
from edgeship.core.exceptions import ConfigError, EdgeshipError
from edgeship.core.output import OutputFormat

CONTEXT_SETTINGS = {
    "help_option_names": ["-h", "--help"],
    "max_content_width": 120,
}

FORMAT_NAMES = ", ".join(f.value for f in OutputFormat)


class OutputFormatType(click.ParamType):
    """``-o`` values, case-insensitive, as OutputFormat members."""

    name = "format"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> OutputFormat:
        if isinstance(value, OutputFormat):
            return value
        try:
            return OutputFormat(str(value).lower())
        except ValueError:
            self.fail(f"Invalid format '{value}'. Choose from: {FORMAT_NAMES}", param, ctx)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option("-p", "--profile", metavar="NAME", envvar="EDGESHIP_PROFILE", help="Configuration profile")
@click.option("-o", "--output", "output_format", type=OutputFormatType(), metavar="FORMAT", help=f"Output format: {FORMAT_NAMES}")
@click.option("-v", "--verbose", count=True, help="-v logs pipeline steps, -vv adds wrangler and HTTP detail")
@click.option("-q", "--quiet", is_flag=True, help="Only print results and errors")
@click.option("--dry-run", is_flag=True, help="Deploy with wrangler's --dry-run and skip pushes")
@click.option("--no-color", is_flag=True, help="Plain output, for CI logs")
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    metavar="FILE",
    envvar="EDGESHIP_CONFIG",
    help="Config file layered over ~/.edgeship and edgeship.yaml",
)
@click.version_option(__version__, "--version", prog_name="edgeship", message="%(prog)s version %(version)s")
@click.pass_context
def cli(
    ctx: click.Context,
    profile: str | None,
    output_format: OutputFormat | None,
    verbose: int,
    quiet: bool,
    dry_run: bool,
    no_color: bool,
    config_file: str | None,
) -> None:
    """Edgeship - deployment pipeline for Cloudflare Workers and Pages.

    Validates, builds, deploys and verifies a project through wrangler,
    with rollback, CI environment detection and notifications.

    \b
    Examples:
        edgeship deploy run ./my-app --env staging
        edgeship deploy ci
        edgeship ci detect
        edgeship ci generate github

    \b
    Configuration:
        ~/.edgeship/config.yaml    User configuration
        ./edgeship.yaml            Project configuration
        EDGESHIP_*                 Setting overrides
        CLOUDFLARE_API_TOKEN       Required by deploy ci, with CLOUDFLARE_ACCOUNT_ID
    """
    try:
        ctx.obj = EdgeshipContext(
            config=load_config(config_file, profile),
            profile=profile,
            output_format=output_format,
            verbose=verbose,
            quiet=quiet,
            dry_run=dry_run,
            color=not no_color,
        )
    except ConfigError as e:
        Console(stderr=True).print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)

    if ctx.obj.dry_run and not quiet:
        ctx.obj.output.print_warning("Dry-run mode enabled - nothing will be published")


cli.add_command(deploy)
cli.add_command(ci)


@cli.command("config")
@pass_context
def show_config(ctx: EdgeshipContext) -> None:
    """Show the resolved configuration, without secret values."""
    profile = ctx.profile
    env = ctx.process.environ
    ctx.output.print_data(
        {
            "profile": ctx.profile_name,
            "output_format": ctx.output_format.value,
            "dry_run": ctx.dry_run,
            "verbose": ctx.verbose,
            "platform": {
                "cli": profile.platform.cli,
                "account_id": profile.platform.get_account_id(env),
                "has_api_token": bool(profile.platform.get_api_token(env)),
            },
            "deploy": {
                "reports_dir": profile.deploy.get_reports_dir(env),
                "ci_records_dir": profile.deploy.get_ci_records_dir(env),
                "required_secrets": profile.deploy.required_secrets,
            },
            "notifications": {
                "slack": bool(profile.notifications.get_slack_webhook_url(env)),
                "webhook": bool(profile.notifications.get_webhook_url(env)),
                "github": bool(profile.notifications.get_github_token(env)),
            },
        },
        title="Current Configuration",
    )


def main() -> None:
    """Console script entry point."""
    stderr = Console(stderr=True)
    try:
        cli()
    except EdgeshipError as e:
        stderr.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        stderr.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
