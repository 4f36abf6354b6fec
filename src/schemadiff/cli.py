"""Command-line interface for schemadiff.

Sources and targets are PostgreSQL URLs (``postgresql://...``) or paths to
JSON schema snapshots.
"""

import asyncio
import json
from typing import Any, NoReturn

import click

from schemadiff import __version__
from schemadiff.core.config import get_settings
from schemadiff.core.exceptions import SchemaDiffError
from schemadiff.core.logging import configure_logging, get_logger


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2))


@click.group()
@click.version_option(version=__version__, prog_name="schemadiff")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    default=None,
    help="Set log level (overrides SCHEMADIFF_LOG_LEVEL)",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """schemadiff - PostgreSQL schema diff, DDL synthesis and migration preview."""
    settings = get_settings()
    if log_level:
        settings = settings.model_copy(update={"log_level": log_level})
    configure_logging(settings)
    ctx.obj = settings


@cli.command()
@click.argument("source")
@click.argument("target")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["sql", "json"]),
    default="sql",
    help="Print the migration script or the structural diff",
)
@click.pass_obj
def compare(settings, source: str, target: str, output_format: str) -> None:
    """Compare SOURCE with TARGET and print the migration between them."""
    from schemadiff.application.services import PreviewOrchestrator

    logger = get_logger(__name__)

    async def run() -> None:
        orchestrator = PreviewOrchestrator(settings=settings)
        diff, script = await orchestrator.compare(source, target)
        if output_format == "json":
            _echo_json({"diff": diff.to_dict(), "psql": script})
        else:
            click.echo(script, nl=False)

    try:
        asyncio.run(run())
    except SchemaDiffError as e:
        logger.error("Compare failed", code=e.code, detail=e.detail)
        click.echo(f"Error: {e.detail}", err=True)
        raise SystemExit(1)


@cli.command()
@click.argument("script", type=click.File("r"), default="-")
def validate(script) -> None:
    """Validate a DDL SCRIPT file (stdin when omitted)."""
    from schemadiff.domain.services import validate_ddl

    result = validate_ddl(script.read())
    _echo_json(result.to_dict())
    if not result.valid:
        raise SystemExit(1)


@cli.command()
@click.argument("source")
@click.argument("target")
@click.option(
    "--script",
    "script_file",
    type=click.File("r"),
    default=None,
    help="Candidate DDL script; the migration is synthesized when omitted",
)
@click.option("--user-key", default="cli", show_default=True, help="Sandbox owner")
@click.option(
    "--backend",
    type=click.Choice(["memory", "hybrid", "container"]),
    default=None,
    help="Sandbox backend (overrides SCHEMADIFF_SANDBOX_BACKEND)",
)
@click.pass_obj
def preview(settings, source: str, target: str, script_file, user_key: str, backend: str | None) -> None:
    """Dry-run the migration from SOURCE to TARGET in a sandbox."""
    from schemadiff.application.services import PreviewOrchestrator
    from schemadiff.infrastructure.sandbox import SandboxProvisioner, SandboxRegistry

    if backend:
        settings = settings.model_copy(update={"sandbox_backend": backend})
    script = script_file.read() if script_file is not None else None

    async def run():
        registry = SandboxRegistry(provisioner=SandboxProvisioner(settings))
        orchestrator = PreviewOrchestrator(registry=registry, settings=settings)
        try:
            return await orchestrator.preview_changes(user_key, source, target, script)
        finally:
            await registry.close()

    result = asyncio.run(run())
    _echo_json(result.to_dict())
    if not result.converged:
        raise SystemExit(1)


@cli.command()
@click.pass_obj
def version(settings) -> None:
    """Display version and active configuration."""
    click.echo(f"""
schemadiff v{__version__}
{'=' * 40}

Configuration:
  Environment:  {settings.environment}
  Schema:       {settings.introspection_schema}
  Security:     {settings.include_security}

Sandbox:
  Backend:      {settings.sandbox_backend}
  Inactivity:   {settings.sandbox_inactivity_minutes:g} minutes
  Reaper:       every {settings.sandbox_reaper_interval_seconds:g} seconds
  Image:        {settings.container_image}

Logging:
  Level:        {settings.log_level}
  Format:       {settings.log_format}
""")


def main() -> NoReturn:
    """Main entry point for the CLI.

    This function is called when the `schemadiff` command is run
    or when using `python -m schemadiff`.
    """
    cli()


if __name__ == "__main__":
    main()
