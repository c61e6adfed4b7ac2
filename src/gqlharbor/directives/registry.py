"""Directive registry and the resolver wrapping algorithm.

Directives are applied once, at schema build time. For every field, field argument
and input field of the schema, the directive usages found on its SDL node are
visited in declaration order. Each visitor receives a FieldDescriptor holding the
current state of the element, so a directive declared after another one wraps the
resolver produced by the earlier directive:

    type User {
      email: String @first @second
    }

Here `@first` wraps the base resolver into R1 and `@second` wraps R1 into R2.
At execution time R2 runs outermost and decides whether (and how) to call R1.
"""

import weakref
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from functools import cached_property
from inspect import isawaitable
from typing import Any

from graphql import (
    DirectiveDefinitionNode,
    DirectiveLocation,
    DirectiveNode,
    GraphQLArgument,
    GraphQLError,
    GraphQLField,
    GraphQLInputField,
    GraphQLInputObjectType,
    GraphQLInterfaceType,
    GraphQLNamedType,
    GraphQLObjectType,
    GraphQLSchema,
    GraphQLType,
    default_field_resolver,
    get_named_type,
    parse,
    print_ast,
    specified_directives,
    value_from_ast_untyped,
)
from graphql.execution.values import get_argument_values

from gqlharbor import log
from gqlharbor.errors import SchemaConfigurationError

Resolver = Callable[..., Any]

SPECIFIED_DIRECTIVE_NAMES = frozenset(directive.name for directive in specified_directives)


@dataclass
class FieldDescriptor:
    """Build-time view of a schema element a directive is attached to.

    Visitors mutate `type`, `resolve` and `args` in place. For argument and input
    field locations `resolve` is None and `args` is empty.
    """

    coordinate: str
    location: DirectiveLocation
    type: GraphQLType
    resolve: Resolver | None = None
    args: dict[str, GraphQLArgument] = field(default_factory=dict)


Visitor = Callable[[FieldDescriptor, dict[str, Any]], None]


@dataclass(frozen=True)
class DirectiveArgument:
    name: str
    type: str
    default: Any = None


@dataclass(frozen=True)
class DirectiveDefinition:
    """A named directive: its SDL declaration and one visitor per valid location.

    The SDL in `type_defs` is the single source of the argument schema, the
    defaults and the valid locations. It is added to every schema the registry
    builds.
    """

    name: str
    type_defs: str
    visitors: Mapping[DirectiveLocation, Visitor]

    def __post_init__(self) -> None:
        missing = self.locations - set(self.visitors)
        if missing:
            names = ", ".join(sorted(location.name for location in missing))
            raise SchemaConfigurationError(f"Directive '@{self.name}' has no visitor for {names}")
        undeclared = set(self.visitors) - self.locations
        if undeclared:
            names = ", ".join(sorted(location.name for location in undeclared))
            raise SchemaConfigurationError(f"Directive '@{self.name}' is not declared on {names}")

    @cached_property
    def definition_node(self) -> DirectiveDefinitionNode:
        try:
            document = parse(self.type_defs)
        except GraphQLError as e:
            raise SchemaConfigurationError(f"Invalid SDL for directive '@{self.name}': {e.message}") from e

        definitions = document.definitions
        if len(definitions) != 1 or not isinstance(definitions[0], DirectiveDefinitionNode):
            raise SchemaConfigurationError(f"SDL for '@{self.name}' must contain exactly one directive definition")
        node = definitions[0]
        if node.name.value != self.name:
            raise SchemaConfigurationError(f"SDL for '@{self.name}' declares '@{node.name.value}' instead")
        return node

    @cached_property
    def locations(self) -> frozenset[DirectiveLocation]:
        return frozenset(DirectiveLocation[location.value] for location in self.definition_node.locations)

    @cached_property
    def arguments(self) -> dict[str, DirectiveArgument]:
        return {
            arg.name.value: DirectiveArgument(
                name=arg.name.value,
                type=print_ast(arg.type),
                default=value_from_ast_untyped(arg.default_value) if arg.default_value else None,
            )
            for arg in self.definition_node.arguments or ()
        }


async def call_resolver(resolve: Resolver, obj: Any, info: Any, **kwargs: Any) -> Any:
    """Call a wrapped resolver and await its result when it is awaitable."""
    result = resolve(obj, info, **kwargs)
    if isawaitable(result):
        result = await result
    return result


class DirectiveRegistry:
    """Mapping from directive name to DirectiveDefinition.

    The registry is filled at startup and sealed the first time it is applied to a
    schema; registering afterwards raises SchemaConfigurationError.
    """

    def __init__(self, definitions: Iterable[DirectiveDefinition] = ()) -> None:
        self._definitions: dict[str, DirectiveDefinition] = {}
        self._sealed = False
        self._finalized: weakref.WeakSet[GraphQLSchema] = weakref.WeakSet()
        for definition in definitions:
            self.register(definition)

    def register(self, definition: DirectiveDefinition) -> None:
        if self._sealed:
            raise SchemaConfigurationError(
                f"Cannot register '@{definition.name}': the registry was already applied to a schema"
            )
        if definition.name in SPECIFIED_DIRECTIVE_NAMES:
            raise SchemaConfigurationError(f"'@{definition.name}' is a built-in directive")
        if definition.name in self._definitions:
            raise SchemaConfigurationError(f"Directive '@{definition.name}' is already registered")
        self._definitions[definition.name] = definition

    def get(self, name: str) -> DirectiveDefinition | None:
        return self._definitions.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __iter__(self) -> Iterator[DirectiveDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    @property
    def type_defs(self) -> list[str]:
        """SDL declarations of all registered directives."""
        return [definition.type_defs for definition in self._definitions.values()]

    def apply(self, schema: GraphQLSchema) -> GraphQLSchema:
        """
        Apply every directive usage of `schema` and finalize it.

        Fields, arguments and input fields without directives are left untouched.
        Named types introduced by visitors (e.g. derived scalars) are added to the
        schema's type map.

        Args:
            schema: A schema built from SDL that includes this registry's type_defs.

        Returns:
            The same schema object, with wrapped resolvers and updated types.

        Raises:
            SchemaConfigurationError: On unknown directives, invalid locations,
                invalid directive arguments, or when a visitor rejects an element.
        """
        if schema in self._finalized:
            raise SchemaConfigurationError("Directives were already applied to this schema")
        self._sealed = True

        introduced: list[GraphQLNamedType] = []
        applied = 0

        for type_name, named_type in list(schema.type_map.items()):
            if type_name.startswith("__"):
                continue

            if isinstance(named_type, GraphQLObjectType | GraphQLInterfaceType):
                for field_name, graphql_field in named_type.fields.items():
                    for arg_name, argument in graphql_field.args.items():
                        descriptor = self._visit_input_value(
                            schema,
                            f"{type_name}.{field_name}({arg_name}:)",
                            DirectiveLocation.ARGUMENT_DEFINITION,
                            argument,
                        )
                        if descriptor:
                            introduced.append(get_named_type(descriptor.type))
                            applied += 1
                    descriptor = self._visit_field(schema, f"{type_name}.{field_name}", graphql_field)
                    if descriptor:
                        introduced.append(get_named_type(descriptor.type))
                        introduced.extend(get_named_type(arg.type) for arg in descriptor.args.values())
                        applied += 1

            elif isinstance(named_type, GraphQLInputObjectType):
                for field_name, input_field in named_type.fields.items():
                    descriptor = self._visit_input_value(
                        schema,
                        f"{type_name}.{field_name}",
                        DirectiveLocation.INPUT_FIELD_DEFINITION,
                        input_field,
                    )
                    if descriptor:
                        introduced.append(get_named_type(descriptor.type))
                        applied += 1

        _add_named_types(schema, introduced)
        self._finalized.add(schema)
        log.info(f"Applied directives to {applied} schema element(s).")
        return schema

    def _visit_field(self, schema: GraphQLSchema, coordinate: str, graphql_field: GraphQLField) -> FieldDescriptor | None:
        usages = _directive_usages(graphql_field)
        if not usages:
            return None

        descriptor = FieldDescriptor(
            coordinate=coordinate,
            location=DirectiveLocation.FIELD_DEFINITION,
            type=graphql_field.type,
            resolve=graphql_field.resolve or default_field_resolver,
            args=dict(graphql_field.args),
        )
        self._run_visitors(schema, descriptor, usages)

        graphql_field.type = descriptor.type  # type: ignore[assignment]
        graphql_field.resolve = descriptor.resolve
        graphql_field.args = descriptor.args
        return descriptor

    def _visit_input_value(
        self,
        schema: GraphQLSchema,
        coordinate: str,
        location: DirectiveLocation,
        input_value: GraphQLArgument | GraphQLInputField,
    ) -> FieldDescriptor | None:
        usages = _directive_usages(input_value)
        if not usages:
            return None

        descriptor = FieldDescriptor(coordinate=coordinate, location=location, type=input_value.type)
        self._run_visitors(schema, descriptor, usages)

        input_value.type = descriptor.type  # type: ignore[assignment]
        return descriptor

    def _run_visitors(self, schema: GraphQLSchema, descriptor: FieldDescriptor, usages: list[DirectiveNode]) -> None:
        for usage in usages:
            name = usage.name.value
            definition = self._definitions.get(name)
            if definition is None:
                raise SchemaConfigurationError(f"Unknown directive '@{name}' on {descriptor.coordinate}")
            if descriptor.location not in definition.locations:
                raise SchemaConfigurationError(
                    f"Directive '@{name}' cannot be used on {descriptor.location.name} ({descriptor.coordinate})"
                )

            directive = schema.get_directive(name)
            if directive is None:
                raise SchemaConfigurationError(f"Directive '@{name}' is not declared in the schema")
            try:
                directive_args = get_argument_values(directive, usage)
            except GraphQLError as e:
                raise SchemaConfigurationError(
                    f"Invalid arguments for '@{name}' on {descriptor.coordinate}: {e.message}"
                ) from e

            log.debug(f"Applying @{name} to {descriptor.coordinate}")
            definition.visitors[descriptor.location](descriptor, directive_args)


def _directive_usages(element: GraphQLField | GraphQLArgument | GraphQLInputField) -> list[DirectiveNode]:
    """Directive usages of an element in declaration order, built-in ones excluded."""
    if not element.ast_node or not element.ast_node.directives:
        return []
    return [usage for usage in element.ast_node.directives if usage.name.value not in SPECIFIED_DIRECTIVE_NAMES]


def _add_named_types(schema: GraphQLSchema, named_types: Iterable[GraphQLNamedType]) -> None:
    for named_type in named_types:
        existing = schema.type_map.get(named_type.name)
        if existing is None:
            schema.type_map[named_type.name] = named_type
            log.debug(f"Added type '{named_type.name}' to the schema")
        elif existing is not named_type:
            raise SchemaConfigurationError(f"Type name '{named_type.name}' is already used by another type")
