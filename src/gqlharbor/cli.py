import logging
import sys
from pathlib import Path
from typing import Any

import rich_click as click
import yaml
from pydantic import ValidationError
from rich.traceback import install

from gqlharbor import __version__, log
from gqlharbor.config import load_settings
from gqlharbor.directives import default_registry
from gqlharbor.errors import SchemaConfigurationError
from gqlharbor.schema_loader import (
    load_executable_schema,
    print_executable_schema,
    resolve_graphql_files,
)
from gqlharbor.server import ServiceDefinition, load_service, run_server


class PathResolverOption(click.Option):
    def process_value(self, ctx: click.Context, value: Any) -> list[Path] | None:
        value = super().process_value(ctx, value)
        if not value:
            return None
        return resolve_graphql_files(list(set(value)))


schema_option = click.option(
    "--schema",
    "-s",
    "schemas",
    type=click.Path(exists=True, path_type=Path),
    cls=PathResolverOption,
    multiple=True,
    help="The GraphQL schema file or directory containing schema files. Can be specified multiple times.",
)


service_option = click.option(
    "--service",
    type=str,
    help="ServiceDefinition providing resolvers and resource pools, as 'package.module:attribute'.",
)


def load_service_or_exit(reference: str | None) -> ServiceDefinition:
    if reference is None:
        return ServiceDefinition()
    try:
        return load_service(reference)
    except (ImportError, AttributeError, TypeError, ValueError) as e:
        log.error(f"Cannot load service '{reference}': {e}")
        sys.exit(1)


def build_schema_or_exit(schemas: list[Path] | None, service: ServiceDefinition) -> Any:
    if not schemas:
        log.error("No GraphQL schema files given. Use --schema or the 'schema' config key.")
        sys.exit(1)
    try:
        return load_executable_schema(schemas, *service.bindables)
    except SchemaConfigurationError as e:
        log.error(f"Schema configuration error: {e}")
        log.hint("Run with --log-level DEBUG to see which schema elements were visited.")
        sys.exit(1)


@click.group(context_settings={"auto_envvar_prefix": "GQLHARBOR"})
@click.option(
    "-l",
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default="INFO",
    help="Log level",
    show_default=True,
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    help="Log file",
)
@click.version_option(__version__)
def cli(log_level: str, log_file: Path | None) -> None:
    if log_file:
        file_handler = logging.FileHandler(log_file, mode="w")
        file_handler.setFormatter(logging.Formatter("%(asctime)s:%(levelname)s:%(message)s"))
        log.addHandler(file_handler)

    log.setLevel(log_level.upper())
    if log_level.upper() == "DEBUG":
        _ = install(show_locals=True)


@click.command()
@schema_option
@service_option
def check(schemas: list[Path] | None, service: str | None) -> None:
    """Build the schema and apply its directives without serving it."""
    build_schema_or_exit(schemas, load_service_or_exit(service))
    log.success("Schema and directives are valid.")
    for definition in default_registry():
        log.list_item(f"@{definition.name}", style="dim")


@click.command(name="print-schema")
@schema_option
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    help="Output file",
)
def print_schema_command(schemas: list[Path] | None, output: Path | None) -> None:
    """Print the schema as clients see it once directives are applied."""
    schema = build_schema_or_exit(schemas, ServiceDefinition())
    sdl = print_executable_schema(schema)
    if output:
        output.write_text(sdl + "\n", encoding="utf-8")
        log.success(f"Schema written to {output}")
    else:
        click.echo(sdl)


@click.command()
@schema_option
@service_option
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML file with server settings",
)
@click.option("--host", type=str, help="Interface to bind to [default: 0.0.0.0]")
@click.option("--port", type=int, help="Port to listen on [default: 4000]")
@click.option(
    "--shutdown-timeout",
    type=float,
    help="Seconds allowed for draining after a termination signal [default: 60]",
)
@click.option("--debug/--no-debug", default=None, help="Include exception details in error payloads")
def serve(
    schemas: list[Path] | None,
    service: str | None,
    config_path: Path | None,
    host: str | None,
    port: int | None,
    shutdown_timeout: float | None,
    debug: bool | None,
) -> None:
    """Serve the GraphQL API until SIGTERM/SIGINT, then drain and exit."""
    try:
        settings = load_settings(
            config_path,
            host=host,
            port=port,
            shutdown_timeout=shutdown_timeout,
            debug=debug,
            schema=schemas,
        )
    except (OSError, TypeError, ValidationError, yaml.YAMLError) as e:
        log.error(f"Invalid server configuration: {e}")
        sys.exit(1)

    definition = load_service_or_exit(service)
    schema = build_schema_or_exit(resolve_graphql_files(settings.schema_paths), definition)

    log.key_value("Shutdown timeout", f"{settings.shutdown_timeout:g}s")
    if definition.pools:
        log.key_value("Resource pools", ", ".join(definition.pools))

    exit_code = run_server(schema, settings, definition)
    if exit_code == 0:
        log.success("Shut down cleanly.")
    sys.exit(exit_code)


cli.add_command(check)
cli.add_command(print_schema_command)
cli.add_command(serve)

if __name__ == "__main__":
    cli()
