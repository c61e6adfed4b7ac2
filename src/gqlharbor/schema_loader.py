from pathlib import Path
from typing import Any

from ariadne import load_schema_from_path, make_executable_schema
from ariadne.exceptions import GraphQLFileSyntaxError
from graphql import GraphQLError, GraphQLSchema, print_schema

from gqlharbor import log
from gqlharbor.directives import DirectiveRegistry, default_registry
from gqlharbor.errors import SchemaConfigurationError


def resolve_graphql_files(paths: list[Path]) -> list[Path]:
    """Resolve a list of paths (files and directories) into a flat list of unique GraphQL files.

    Args:
        paths: List of file or directory paths

    Returns:
        Flat list of unique GraphQL file paths (deduplicated and sorted)
    """
    resolved_files: set[Path] = set()

    for path in paths:
        if path.is_file():
            resolved_files.add(path)
        elif path.is_dir():
            resolved_files.update(path.rglob("*.graphql"))

    return sorted(resolved_files)


def load_type_defs(graphql_schema_paths: Path | list[Path]) -> str:
    """Concatenate the SDL of the given files or folders."""
    if isinstance(graphql_schema_paths, Path):
        graphql_schema_paths = [graphql_schema_paths]

    type_defs = ""
    for graphql_file in resolve_graphql_files(graphql_schema_paths):
        try:
            type_defs += load_schema_from_path(graphql_file) + "\n"
        except GraphQLFileSyntaxError as e:
            raise SchemaConfigurationError(str(e)) from e
        log.debug(f"Loaded type definitions from {graphql_file}")
    return type_defs


def build_executable_schema(
    type_defs: str | list[str],
    *bindables: Any,
    registry: DirectiveRegistry | None = None,
) -> GraphQLSchema:
    """
    Build an executable schema and apply the registered directives to it.

    The registry's directive declarations are prepended to `type_defs`, bindables
    (ariadne QueryType, ObjectType, ScalarType, ...) attach resolvers, and the
    registry then wraps the resolvers of every element carrying a directive.

    Args:
        type_defs: SDL string or list of SDL strings
        *bindables: ariadne bindables
        registry: Directives to apply, defaults to @formattableDate and @email

    Returns:
        The finalized GraphQLSchema

    Raises:
        SchemaConfigurationError: If the SDL is invalid or a directive cannot be applied.
    """
    if registry is None:
        registry = default_registry()
    if isinstance(type_defs, str):
        type_defs = [type_defs]

    try:
        schema = make_executable_schema([*registry.type_defs, *type_defs], *bindables)
    except (GraphQLError, TypeError, ValueError) as e:
        raise SchemaConfigurationError(f"Invalid schema: {e}") from e

    registry.apply(schema)
    log.info("Successfully built the executable schema.")
    return schema


def load_executable_schema(
    graphql_schema_paths: Path | list[Path],
    *bindables: Any,
    registry: DirectiveRegistry | None = None,
) -> GraphQLSchema:
    """Load SDL from files or folders and build the executable schema."""
    return build_executable_schema(load_type_defs(graphql_schema_paths), *bindables, registry=registry)


def print_executable_schema(schema: GraphQLSchema) -> str:
    """SDL of a schema after directives were applied (derived types and arguments included)."""
    return print_schema(schema)
